# backend/spa_engine/repositories/base_repository.py
"""
Base Repository Pattern for the reservation engine.

Provides the foundation for all repository classes with:
- Common CRUD operations
- Type safety with generics
- Row locking helpers for check-then-write sequences
- Transaction support (managed by services)

Repositories never commit. The service layer owns the transaction boundary so
that a booking and its voucher debit are persisted together or not at all.
"""

from abc import ABC, abstractmethod
import logging
from typing import Any, Generic, NoReturn, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class IRepository(ABC, Generic[T]):
    """
    Abstract repository interface defining core data access methods.

    All repositories must implement these methods to ensure consistency
    across the engine.
    """

    @abstractmethod
    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        """
        Retrieve an entity by its primary key.

        Args:
            id: The primary key value
            load_relationships: Whether to eager load relationships

        Returns:
            The entity if found, None otherwise
        """

    @abstractmethod
    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Raises:
            RepositoryException: If creation fails
        """


class BaseRepository(IRepository[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        bind = self.db.get_bind()
        return bind.dialect.name if bind is not None else ""

    def _raise(self, action: str, exc: SQLAlchemyError) -> NoReturn:
        """
        Translate a storage error into RepositoryException.

        The original error stays attached as ``__cause__`` so the service layer
        can still recognise serialization failures and lock timeouts.
        """
        self.logger.error(f"Error {action} {self.model.__name__}: {str(exc)}")
        raise RepositoryException(f"Failed {action} {self.model.__name__}: {str(exc)}") from exc

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        """
        Retrieve an entity by its primary key.

        Implements eager loading for relationships when requested.
        """
        try:
            query = self.db.query(self.model).filter(self.model.id == id)

            if load_relationships:
                query = self._apply_eager_loading(query)

            return query.first()
        except SQLAlchemyError as e:
            self._raise("retrieving", e)

    def get_for_update(self, id: str) -> Optional[T]:
        """
        Load an entity and lock its row until the transaction ends.

        ``populate_existing`` forces a re-read, so a value cached in the identity
        map from an earlier statement is never trusted by the write path.
        SQLite has no row locks; there the immediate transaction already holds
        the database write lock.
        """
        try:
            query = (
                self.db.query(self.model)
                .filter(self.model.id == id)
                .populate_existing()
            )
            if self.dialect_name != "sqlite":
                query = query.with_for_update()
            return query.first()
        except SQLAlchemyError as e:
            self._raise("locking", e)

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except IntegrityError as exc:
            self.logger.error("Integrity error creating %s: %s", self.model.__name__, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self._raise("creating", e)

    def flush(self) -> None:
        """Flush pending ORM changes."""
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self._raise("flushing", e)

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        try:
            return self.db.query(self.model).filter_by(**kwargs).first()
        except SQLAlchemyError as e:
            self._raise("finding", e)

    # Protected helper methods for use by subclasses

    def _apply_eager_loading(self, query: Query) -> Query:
        """
        Apply eager loading to relationships.

        Override in subclasses to specify which relationships to load.
        """
        return query
