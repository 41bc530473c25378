from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from storefront.errors import GatewayError


class RestGateway:
    """Thin wrapper around a ``requests.Session`` shared by one external service."""

    service_name = "external"

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()
        self.logger = logging.getLogger(self.__class__.__module__)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        return {}

    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        expected: tuple = (200, 201),
        **kwargs: Any,
    ) -> requests.Response:
        if not self.configured:
            raise GatewayError(f"{self.service_name} is not configured", service=self.service_name)

        merged_headers = self._headers()
        if headers:
            merged_headers.update(headers)

        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, headers=merged_headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            self.logger.error("%s request failed: %s %s (%s)", self.service_name, method, path, exc)
            raise GatewayError(str(exc), service=self.service_name) from exc

        if response.status_code not in expected:
            detail = self._error_detail(response)
            self.logger.error(
                "%s returned %s for %s %s",
                self.service_name,
                response.status_code,
                method,
                path,
                extra={"upstream_detail": detail},
            )
            raise GatewayError(detail, service=self.service_name, status=response.status_code)
        return response

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500]
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return str(error.get("message") or error)
            return str(body.get("message") or error or body)
        return str(body)
