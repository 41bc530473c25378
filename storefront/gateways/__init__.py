"""Clients for the external collaborators: identity, object storage and payments."""

from .base import RestGateway
from .identity import IdentityGateway
from .payments import PaymentGateway
from .storage import StorageGateway

__all__ = [
    "RestGateway",
    "IdentityGateway",
    "PaymentGateway",
    "StorageGateway",
]
