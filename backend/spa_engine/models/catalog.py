# backend/spa_engine/models/catalog.py
"""
Catalog models consumed read-only by the reservation engine.

Three tables describe what can be booked:
1. Service - a treatment with its duration and base price
2. Branch - a physical location with its own business calendar
3. BranchService - a Service offered at a Branch with its own price/availability

BranchService is the bookable unit: slots are computed per BranchService,
and booking prices are snapshotted from BranchService.price.
"""

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
import ulid

from ..core.enums import CatalogStatus
from ..database import Base
from .types import UTCDateTime, utcnow

logger = logging.getLogger(__name__)


class Service(Base):
    """
    A treatment offered by the spa.

    Attributes:
        duration: Length of one appointment in minutes
        price: Base price, used for SERVICE_SPECIFIC voucher valuation
        status: ACTIVE services can be booked, INACTIVE ones are hidden
    """

    __tablename__ = "services"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=CatalogStatus.ACTIVE.value)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime(), nullable=True, onupdate=utcnow)

    branch_services = relationship("BranchService", back_populates="service")

    __table_args__ = (CheckConstraint("price >= 0", name="ck_services_price_non_negative"),)

    def __repr__(self) -> str:
        return f"<Service {self.title} ({self.duration}min)>"

    @property
    def is_active(self) -> bool:
        return self.status == CatalogStatus.ACTIVE.value


class Branch(Base):
    """A spa location. ``timezone`` overrides the configured business timezone."""

    __tablename__ = "branches"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=False)
    address = Column(Text, nullable=True)
    timezone = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    branch_services = relationship("BranchService", back_populates="branch")

    def __repr__(self) -> str:
        return f"<Branch {self.name} active={self.is_active}>"


class BranchService(Base):
    """Per-branch price and availability override of a Service."""

    __tablename__ = "branch_services"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    branch_id = Column(String(26), ForeignKey("branches.id", ondelete="CASCADE"), nullable=False)
    service_id = Column(String(26), ForeignKey("services.id", ondelete="CASCADE"), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    branch = relationship("Branch", back_populates="branch_services")
    service = relationship("Service", back_populates="branch_services")

    __table_args__ = (
        UniqueConstraint("branch_id", "service_id", name="uq_branch_services_branch_service"),
        CheckConstraint("price >= 0", name="ck_branch_services_price_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<BranchService branch={self.branch_id} service={self.service_id} "
            f"price={self.price} available={self.is_available}>"
        )

    @property
    def is_bookable(self) -> bool:
        """Available here, and the branch and underlying service are both live."""
        return bool(
            self.is_available
            and self.service is not None
            and self.service.is_active
            and self.branch is not None
            and self.branch.is_active
        )
