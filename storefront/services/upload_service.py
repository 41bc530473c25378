from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.errors import ValidationError
from storefront.models import DesignUpload
from storefront.utils import epoch_millis, parse_non_negative_int, sanitize_filename

DESIGN_CONTENT_TYPES = frozenset({"image/png", "image/svg+xml", "image/jpeg", "image/webp"})
DESIGN_TYPES_HINT = "PNG, SVG, JPEG or WebP"
CATALOG_IMAGE_CONTENT_TYPES = frozenset({"image/png", "image/jpeg", "image/webp", "image/gif"})
CATALOG_TYPES_HINT = "PNG, JPEG, WebP or GIF"


class UploadService:
    """Signed direct-to-storage uploads for customer designs and catalog images."""

    def __init__(self, db_session: Session, storage, config: type[Config] = Config) -> None:
        self.db = db_session
        self.storage = storage
        self.config = config
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _require_file(filename: Optional[str], content_type: Optional[str], allowed: frozenset, hint: str) -> str:
        if not filename or not content_type:
            raise ValidationError("filename and contentType are required")
        if content_type not in allowed:
            raise ValidationError(f"File type not allowed. Use {hint}.")
        return sanitize_filename(filename)

    def sign_design_upload(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        user_id: Optional[str] = None,
        anonymous_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        safe_name = self._require_file(filename, content_type, DESIGN_CONTENT_TYPES, DESIGN_TYPES_HINT)
        owner = user_id or anonymous_id or "anonymous"
        storage_path = f"{owner}/{epoch_millis()}_{safe_name}"
        signed = self.storage.create_signed_upload_url(self.config.STORAGE_DESIGNS_BUCKET, storage_path)
        return {"signedUrl": signed["signed_url"], "token": signed.get("token"), "storagePath": storage_path}

    def confirm_design_upload(
        self,
        storage_path: Optional[str],
        filename: Optional[str],
        file_size: Any = None,
        mime_type: Optional[str] = None,
        user_id: Optional[str] = None,
        anonymous_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not storage_path or not filename:
            raise ValidationError("storagePath and filename are required")

        bucket = self.config.STORAGE_DESIGNS_BUCKET
        if not self.storage.object_exists(bucket, storage_path):
            raise ValidationError("File not found in storage")

        upload = DesignUpload(
            user_id=user_id,
            anonymous_id=None if user_id else anonymous_id,
            storage_path=storage_path,
            filename=filename,
            file_size=parse_non_negative_int(file_size),
            mime_type=mime_type,
        )
        self.db.add(upload)
        self.db.commit()

        preview_url = self.storage.create_signed_url(bucket, storage_path, self.config.SIGNED_URL_TTL_SECONDS)
        self.logger.info("Design upload %s confirmed", upload.id, extra={"storage_path": storage_path})
        return {
            "success": True,
            "storagePath": storage_path,
            "previewUrl": preview_url,
            "uploadId": upload.id,
        }

    def _sign_catalog_image(self, folder: str, filename: Optional[str], content_type: Optional[str]) -> Dict[str, Any]:
        safe_name = self._require_file(filename, content_type, CATALOG_IMAGE_CONTENT_TYPES, CATALOG_TYPES_HINT)
        bucket = self.config.STORAGE_PRODUCT_IMAGES_BUCKET
        storage_path = f"{folder}/{epoch_millis()}_{safe_name}"
        signed = self.storage.create_signed_upload_url(bucket, storage_path)
        return {
            "signedUrl": signed["signed_url"],
            "storagePath": storage_path,
            "publicUrl": self.storage.public_url(bucket, storage_path),
        }

    def sign_product_image_upload(
        self, product_id: Optional[str], filename: Optional[str], content_type: Optional[str]
    ) -> Dict[str, Any]:
        if not product_id:
            raise ValidationError("productId is required")
        return self._sign_catalog_image(product_id, filename, content_type)

    def sign_category_image_upload(self, filename: Optional[str], content_type: Optional[str]) -> Dict[str, Any]:
        return self._sign_catalog_image("categories", filename, content_type)
