# backend/spa_engine/repositories/catalog_repository.py
"""
Catalog Repository for the reservation engine.

Read-only view over Service, Branch and BranchService. The only write-side
concern here is ``lock_branch_service``: booking creation locks the
BranchService row so that overlap re-checks for one bookable unit are
serialised across concurrent writers.
"""

import logging
from typing import Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..models.catalog import BranchService, Service
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CatalogRepository(BaseRepository[BranchService]):
    """Repository for catalog lookups."""

    def __init__(self, db: Session):
        super().__init__(db, BranchService)

    def _apply_eager_loading(self, query):
        return query.options(
            joinedload(BranchService.service),
            joinedload(BranchService.branch),
        )

    def get_branch_service(self, branch_id: str, service_id: str) -> Optional[BranchService]:
        """
        Resolve the bookable unit for a (branch, service) pair.

        Returns:
            BranchService with its Service and Branch loaded, or None
        """
        try:
            query = self._apply_eager_loading(
                self.db.query(BranchService).filter(
                    BranchService.branch_id == branch_id,
                    BranchService.service_id == service_id,
                )
            )
            return cast(Optional[BranchService], query.first())
        except SQLAlchemyError as e:
            self._raise("resolving", e)

    def lock_branch_service(self, branch_service_id: str) -> Optional[BranchService]:
        """Take the per-BranchService write lock for the rest of the transaction."""
        return self.get_for_update(branch_service_id)

    def get_service(self, service_id: str) -> Optional[Service]:
        try:
            return cast(Optional[Service], self.db.get(Service, service_id))
        except SQLAlchemyError as e:
            self._raise("loading", e)
