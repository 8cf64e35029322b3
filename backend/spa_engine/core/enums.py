# backend/spa_engine/core/enums.py
"""
Core enums for the reservation engine.

Role names mirror the identity provider's roles; the engine only needs to
distinguish customers from operators.
"""

from enum import Enum


class RoleName(str, Enum):
    """Roles asserted by the external session layer."""

    ADMIN = "ADMIN"
    USER = "USER"


class CatalogStatus(str, Enum):
    """Publication status of a catalog service."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
