from __future__ import annotations

from typing import Dict, Iterable, Optional
from urllib.parse import parse_qs, quote, urlencode, urlparse

from storefront.gateways.base import RestGateway


class StorageGateway(RestGateway):
    """Object storage: signed uploads, signed reads, listing and deletion."""

    service_name = "storage"

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0, session=None) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self.service_key = service_key

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
        }

    @staticmethod
    def _object_path(bucket: str, path: str) -> str:
        return f"{quote(bucket)}/{quote(path.lstrip('/'))}"

    def create_signed_upload_url(self, bucket: str, path: str) -> Dict[str, Optional[str]]:
        response = self._request("POST", f"/storage/v1/object/upload/sign/{self._object_path(bucket, path)}")
        relative = response.json().get("url", "")
        token = parse_qs(urlparse(relative).query).get("token", [None])[0]
        return {"signed_url": f"{self.base_url}/storage/v1{relative}", "token": token}

    def create_signed_url(
        self,
        bucket: str,
        path: str,
        expires_in: int,
        download: Optional[str] = None,
    ) -> Optional[str]:
        response = self._request(
            "POST",
            f"/storage/v1/object/sign/{self._object_path(bucket, path)}",
            json={"expiresIn": expires_in},
        )
        relative = response.json().get("signedURL") or response.json().get("signedUrl")
        if not relative:
            return None
        url = f"{self.base_url}/storage/v1{relative}"
        if download:
            url = f"{url}&{urlencode({'download': download})}"
        return url

    def object_exists(self, bucket: str, path: str) -> bool:
        folder, _, filename = path.rpartition("/")
        response = self._request(
            "POST",
            f"/storage/v1/object/list/{quote(bucket)}",
            json={"prefix": folder, "search": filename, "limit": 100, "offset": 0},
        )
        entries = response.json() or []
        return any(entry.get("name") == filename for entry in entries)

    def remove(self, bucket: str, paths: Iterable[str]) -> None:
        self._request(
            "DELETE",
            f"/storage/v1/object/{quote(bucket)}",
            json={"prefixes": list(paths)},
        )

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{path}"

    @staticmethod
    def path_from_public_url(bucket: str, url: str) -> Optional[str]:
        """Extract the object path from a public URL, or None for foreign URLs."""
        marker = f"/storage/v1/object/public/{bucket}/"
        index = (url or "").find(marker)
        if index == -1:
            return None
        path = url[index + len(marker):].split("?", 1)[0]
        return path or None
