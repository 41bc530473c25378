"""Bearer-token guards for end users (identity provider) and the back office (shared secret)."""
from __future__ import annotations

import hmac
import logging
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, g, request

from storefront.errors import AuthenticationError, GatewayError

logger = logging.getLogger(__name__)

_BEARER_PREFIX = "Bearer "


def bearer_token(req=None) -> Optional[str]:
    header = (req or request).headers.get("Authorization", "")
    if not header.startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX):].strip()
    return token or None


def _identity():
    return current_app.extensions["storefront"].identity


def _remember(user: Dict[str, Any]) -> None:
    g.current_user = user
    g.current_user_id = user.get("id")


def require_user(view):
    """Resolve the caller through the identity provider or answer 401."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        token = bearer_token()
        if not token:
            raise AuthenticationError("Missing authorization header")
        user = _identity().get_user(token)
        if not user:
            raise AuthenticationError("Unauthorized")
        _remember(user)
        return view(*args, **kwargs)

    return wrapped


def optional_user() -> Optional[Dict[str, Any]]:
    """Best-effort lookup for routes that also serve anonymous shoppers."""
    token = bearer_token()
    if not token:
        return None
    try:
        user = _identity().get_user(token)
    except GatewayError:
        logger.warning("Identity lookup failed; continuing anonymously")
        return None
    if user:
        _remember(user)
    return user


def admin_secret_matches(candidate: Optional[str]) -> bool:
    secret = current_app.extensions["storefront"].config.ADMIN_SECRET
    if not secret or not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), secret.encode("utf-8"))


def require_admin(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if not admin_secret_matches(bearer_token()):
            raise AuthenticationError("Unauthorized")
        return view(*args, **kwargs)

    return wrapped
