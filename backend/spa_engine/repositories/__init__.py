"""
Repository layer for the reservation engine.

Repositories own queries and row locks; services own transactions.
"""

from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .catalog_repository import CatalogRepository
from .factory import RepositoryFactory
from .gift_voucher_repository import (
    GiftVoucherRepository,
    GiftVoucherTemplateRepository,
    GiftVoucherUsageRepository,
)

__all__ = [
    "IRepository",
    "BaseRepository",
    "RepositoryFactory",
    "CatalogRepository",
    "BookingRepository",
    "GiftVoucherTemplateRepository",
    "GiftVoucherRepository",
    "GiftVoucherUsageRepository",
]
