# backend/spa_engine/repositories/gift_voucher_repository.py
"""
Gift voucher repositories.

Templates, vouchers and the usage ledger. The issuance counter is advanced with
a single conditional UPDATE so the cap check and the increment are one atomic
statement on every backend.
"""

from decimal import Decimal
import logging
from typing import List, Optional, cast

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..models.gift_voucher import GiftVoucher, GiftVoucherTemplate, GiftVoucherUsage
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class GiftVoucherTemplateRepository(BaseRepository[GiftVoucherTemplate]):
    def __init__(self, db: Session):
        super().__init__(db, GiftVoucherTemplate)

    def list_templates(self, active_only: bool = False) -> List[GiftVoucherTemplate]:
        try:
            query = self.db.query(GiftVoucherTemplate)
            if active_only:
                query = query.filter(GiftVoucherTemplate.is_active.is_(True))
            return cast(
                List[GiftVoucherTemplate],
                query.order_by(GiftVoucherTemplate.price, GiftVoucherTemplate.name).all(),
            )
        except SQLAlchemyError as e:
            self._raise("listing", e)

    def list_purchasable(self) -> List[GiftVoucherTemplate]:
        """Active templates that still have issuance capacity."""
        try:
            return cast(
                List[GiftVoucherTemplate],
                self.db.query(GiftVoucherTemplate)
                .filter(
                    GiftVoucherTemplate.is_active.is_(True),
                    or_(
                        GiftVoucherTemplate.max_usage_count.is_(None),
                        GiftVoucherTemplate.current_usage_count
                        < GiftVoucherTemplate.max_usage_count,
                    ),
                )
                .order_by(GiftVoucherTemplate.price, GiftVoucherTemplate.name)
                .all(),
            )
        except SQLAlchemyError as e:
            self._raise("listing purchasable", e)

    def try_increment_usage(self, template_id: str) -> bool:
        """
        Claim one unit of issuance capacity.

        Returns:
            True if the counter moved, False if the cap was already reached
        """
        try:
            stmt = (
                update(GiftVoucherTemplate)
                .where(
                    GiftVoucherTemplate.id == template_id,
                    or_(
                        GiftVoucherTemplate.max_usage_count.is_(None),
                        GiftVoucherTemplate.current_usage_count
                        < GiftVoucherTemplate.max_usage_count,
                    ),
                )
                .values(current_usage_count=GiftVoucherTemplate.current_usage_count + 1)
                .execution_options(synchronize_session=False)
            )
            result = self.db.execute(stmt)
            return bool(result.rowcount == 1)
        except SQLAlchemyError as e:
            self._raise("incrementing usage of", e)


class GiftVoucherRepository(BaseRepository[GiftVoucher]):
    def __init__(self, db: Session):
        super().__init__(db, GiftVoucher)

    def _apply_eager_loading(self, query):
        return query.options(
            selectinload(GiftVoucher.usages),
            selectinload(GiftVoucher.template),
        )

    def get_by_code(self, code: str) -> Optional[GiftVoucher]:
        try:
            return cast(
                Optional[GiftVoucher],
                self._apply_eager_loading(self.db.query(GiftVoucher))
                .filter(GiftVoucher.code == code)
                .first(),
            )
        except SQLAlchemyError as e:
            self._raise("loading by code", e)

    def get_by_code_for_update(self, code: str) -> Optional[GiftVoucher]:
        """Load a voucher by code and lock its row for the balance check."""
        try:
            query = (
                self.db.query(GiftVoucher)
                .filter(GiftVoucher.code == code)
                .populate_existing()
            )
            if self.dialect_name != "sqlite":
                query = query.with_for_update()
            return cast(Optional[GiftVoucher], query.first())
        except SQLAlchemyError as e:
            self._raise("locking by code", e)

    def code_exists(self, code: str) -> bool:
        try:
            return (
                self.db.query(GiftVoucher.id).filter(GiftVoucher.code == code).first()
                is not None
            )
        except SQLAlchemyError as e:
            self._raise("checking code of", e)

    def get_user_vouchers(self, user_id: str) -> List[GiftVoucher]:
        try:
            return cast(
                List[GiftVoucher],
                self._apply_eager_loading(self.db.query(GiftVoucher))
                .filter(GiftVoucher.purchased_by_id == user_id)
                .order_by(GiftVoucher.created_at.desc())
                .all(),
            )
        except SQLAlchemyError as e:
            self._raise("listing user", e)

    def list_vouchers(
        self, status: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[GiftVoucher]:
        try:
            query = self._apply_eager_loading(self.db.query(GiftVoucher))
            if status:
                query = query.filter(GiftVoucher.status == status)
            return cast(
                List[GiftVoucher],
                query.order_by(GiftVoucher.created_at.desc()).offset(skip).limit(limit).all(),
            )
        except SQLAlchemyError as e:
            self._raise("listing", e)


class GiftVoucherUsageRepository(BaseRepository[GiftVoucherUsage]):
    """Append-only ledger: exposes create and reads, nothing else."""

    def __init__(self, db: Session):
        super().__init__(db, GiftVoucherUsage)

    def list_usages(
        self, voucher_id: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[GiftVoucherUsage]:
        try:
            query = self.db.query(GiftVoucherUsage).options(
                selectinload(GiftVoucherUsage.voucher)
            )
            if voucher_id:
                query = query.filter(GiftVoucherUsage.voucher_id == voucher_id)
            return cast(
                List[GiftVoucherUsage],
                query.order_by(GiftVoucherUsage.used_at.desc()).offset(skip).limit(limit).all(),
            )
        except SQLAlchemyError as e:
            self._raise("listing", e)

    def total_used(self, voucher_id: str) -> Decimal:
        """Sum of ``amount_used`` for a voucher (zero when it has no usages)."""
        try:
            total = (
                self.db.query(func.coalesce(func.sum(GiftVoucherUsage.amount_used), 0))
                .filter(GiftVoucherUsage.voucher_id == voucher_id)
                .scalar()
            )
            return Decimal(str(total)).quantize(Decimal("0.01"))
        except SQLAlchemyError as e:
            self._raise("summing", e)
