from __future__ import annotations

from typing import Any, Dict

from flask import current_app, request

from storefront.errors import ValidationError


def runtime():
    """The gateways, config and session factory wired up by ``create_app``."""
    return current_app.extensions["storefront"]


def json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload
