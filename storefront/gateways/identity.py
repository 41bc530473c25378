from __future__ import annotations

from typing import Any, Dict, Optional

from storefront.errors import GatewayError
from storefront.gateways.base import RestGateway


class IdentityGateway(RestGateway):
    """Resolves end-user bearer tokens against the hosted auth service."""

    service_name = "identity"

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0, session=None) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self.service_key = service_key

    def _headers(self) -> Dict[str, str]:
        return {"apikey": self.service_key}

    def get_user(self, access_token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the user record for ``access_token`` or None when it is not valid."""
        if not access_token:
            return None
        try:
            response = self._request(
                "GET",
                "/auth/v1/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except GatewayError as exc:
            if exc.upstream_status in (400, 401, 403, 404):
                return None
            raise
        user = response.json()
        if not isinstance(user, dict) or not user.get("id"):
            return None
        return user
