# backend/spa_engine/repositories/factory.py
"""
Repository Factory for the reservation engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from .base_repository import BaseRepository

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .catalog_repository import CatalogRepository
    from .gift_voucher_repository import (
        GiftVoucherRepository,
        GiftVoucherTemplateRepository,
        GiftVoucherUsageRepository,
    )


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_base_repository(db: Session, model: Any) -> BaseRepository[Any]:
        """Create a generic base repository for any model."""
        return BaseRepository(db, model)

    @staticmethod
    def create_catalog_repository(db: Session) -> "CatalogRepository":
        from .catalog_repository import CatalogRepository

        return CatalogRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_gift_voucher_template_repository(db: Session) -> "GiftVoucherTemplateRepository":
        from .gift_voucher_repository import GiftVoucherTemplateRepository

        return GiftVoucherTemplateRepository(db)

    @staticmethod
    def create_gift_voucher_repository(db: Session) -> "GiftVoucherRepository":
        from .gift_voucher_repository import GiftVoucherRepository

        return GiftVoucherRepository(db)

    @staticmethod
    def create_gift_voucher_usage_repository(db: Session) -> "GiftVoucherUsageRepository":
        from .gift_voucher_repository import GiftVoucherUsageRepository

        return GiftVoucherUsageRepository(db)
