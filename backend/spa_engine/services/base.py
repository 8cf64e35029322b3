# backend/spa_engine/services/base.py
"""
Base Service Pattern for the reservation engine.

Provides common functionality for all service classes including:
- Transaction management with bounded retry of transient storage conflicts
- Logging
- Error handling
- Performance monitoring
- Post-commit event publication
"""

from contextlib import contextmanager
from functools import wraps
import logging
import random
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import DomainException, ServiceException
from ..core.timezone_utils import utc_now
from ..database import WRITE_TRANSACTION_OPTION, is_transient_db_error
from ..events.publisher import Event, EventPublisher, get_event_publisher
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Logging
    - Transaction handling
    - Performance monitoring
    """

    # Class-level metrics storage
    _class_metrics: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def __init__(
        self,
        db: Session,
        event_publisher: Optional[EventPublisher] = None,
        clock: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize base service.

        Args:
            db: Database session
            event_publisher: Receives events after commit (process default if omitted)
            clock: Returns the current aware UTC instant (``utc_now`` if omitted)
        """
        self.db = db
        self.event_publisher = event_publisher or get_event_publisher()
        self.clock = clock or utc_now
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> Any:
        return self.clock()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                # Do multiple operations
                self.db.add(entity)
                # Note: commit is handled automatically
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except DomainException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception as e:
            self.logger.error(f"Unexpected error in transaction: {str(e)}")
            self.db.rollback()
            raise

    def run_in_transaction(
        self,
        op_name: str,
        work: Callable[[], T],
        *,
        on_exhausted: Optional[Callable[[], DomainException]] = None,
    ) -> T:
        """
        Run ``work`` inside one transaction, retrying transient storage conflicts.

        ``work`` must re-read every precondition it depends on, since each
        attempt starts from a fresh transaction. Domain errors are never retried.
        When the attempts run out, ``on_exhausted`` supplies the domain conflict
        reported to the caller.
        """
        max_attempts = settings.transaction_max_attempts
        attempt = 1
        while True:
            try:
                with self.transaction():
                    self._begin_write()
                    return work()
            except Exception as exc:
                # transaction() wraps driver errors; only a transient cause is retried
                if not is_transient_db_error(exc):
                    raise
                if attempt >= max_attempts:
                    self.logger.warning(
                        "Transient DB conflict persisted, giving up",
                        extra={"event": "db_retry_exhausted", "op": op_name, "attempt": attempt},
                    )
                    if on_exhausted is not None:
                        raise on_exhausted() from exc
                    raise ServiceException(
                        f"{op_name} could not complete due to concurrent updates",
                        code="CONCURRENT_UPDATE",
                    ) from exc

                delay = self._retry_delay(attempt)
                self.logger.warning(
                    "Transient DB conflict detected, retrying",
                    extra={
                        "event": "db_retry",
                        "op": op_name,
                        "attempt": attempt,
                        "delay": delay,
                        "error": str(exc),
                    },
                )
                prometheus_metrics.inc_transaction_retry(op_name)
                time.sleep(delay)
                attempt += 1

    def _begin_write(self) -> None:
        """Open the unit of work as a write transaction.

        A clean read transaction left open by an earlier lookup is ended first so
        the write lock is taken at BEGIN rather than on the first UPDATE.
        """
        if self.db.in_transaction():
            if self.db.new or self.db.dirty or self.db.deleted:
                return
            self.db.commit()
        self.db.connection(execution_options={WRITE_TRANSACTION_OPTION: True})

    @staticmethod
    def _retry_delay(attempt: int) -> float:
        base = settings.transaction_retry_base_delay_s * (2 ** (attempt - 1))
        return base + random.uniform(0, 0.05 * attempt)

    def publish(self, *events: Event) -> None:
        """Hand committed events to the publisher; call only after commit."""
        for event in events:
            self.event_publisher.publish(event)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("create_booking")
            def create_booking(self, data):
                # Method implementation
        """

        def decorator(func: F) -> F:
            # Store the operation name on the function for later use
            func._operation_name = operation_name  # type: ignore[attr-defined]
            func._is_measured = True  # type: ignore[attr-defined]

            @wraps(func)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time

                    if hasattr(self, "_record_metric"):
                        self._record_metric(operation_name, elapsed, success)

                    # Only log if it's actually slow
                    if elapsed > 1.0 and hasattr(self, "logger"):
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log an operation with context.

        Note: This method only logs, it doesn't handle metrics.
        Use @measure_operation for timing.
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})

    def _record_metric(self, operation: str, elapsed: float, success: bool) -> None:
        """Record in-process performance metrics for ``get_metrics``."""
        class_name = self.__class__.__name__
        metrics = BaseService._class_metrics.setdefault(class_name, {})

        if operation not in metrics:
            metrics[operation] = {
                "count": 0,
                "total_time": 0.0,
                "success_count": 0,
                "failure_count": 0,
                "min_time": float("inf"),
                "max_time": 0.0,
            }

        metric_data = metrics[operation]
        metric_data["count"] += 1
        metric_data["total_time"] += elapsed
        metric_data["min_time"] = min(metric_data["min_time"], elapsed)
        metric_data["max_time"] = max(metric_data["max_time"], elapsed)

        if success:
            metric_data["success_count"] += 1
        else:
            metric_data["failure_count"] += 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Get performance metrics for this service.

        Returns:
            Dictionary with metrics for each measured operation
        """
        metrics = BaseService._class_metrics.get(self.__class__.__name__, {})
        result: Dict[str, Any] = {}

        for operation, data in metrics.items():
            count = data["count"]
            if count == 0:
                continue
            result[operation] = {
                "count": count,
                "avg_time": data["total_time"] / count,
                "min_time": data["min_time"],
                "max_time": data["max_time"],
                "success_rate": data["success_count"] / count,
                "total_time": data["total_time"],
            }

        return result
