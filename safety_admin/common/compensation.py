"""
Compensation stack for multi-system sagas.

Each completed step pushes a closure that undoes it. When a later step fails
the stack unwinds in reverse order. Compensation failures are collected and
logged but never replace the error that triggered the rollback.

Usage:
    with CompensationStack("ban_user", context={"user_id": uid}) as saga:
        repo.apply_ban(...)
        saga.push("restore profile", lambda: repo.restore(...))
        identity.disable_account(name)
        saga.push("re-enable account", lambda: identity.enable_account(name))
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from safety_admin.services.system.logger_service import get_logger

logger = get_logger(__name__)


@dataclass
class CompensationFailure:
    step: str
    error: Exception


class CompensationStack:
    def __init__(self, operation: str, context: Optional[Dict[str, Any]] = None,
                 log: Optional[logging.Logger] = None):
        self.operation = operation
        self.context = context or {}
        self._log = log or logger
        self._steps: List[Tuple[str, Callable[[], Any]]] = []
        self.failures: List[CompensationFailure] = []

    def __len__(self) -> int:
        return len(self._steps)

    def push(self, step: str, compensate: Callable[[], Any]) -> None:
        self._steps.append((step, compensate))

    def commit(self) -> None:
        """Forget every pushed compensation; the saga completed."""
        self._steps.clear()

    def rollback(self) -> List[CompensationFailure]:
        """Run compensations newest-first and return the ones that failed."""
        failures: List[CompensationFailure] = []
        while self._steps:
            step, compensate = self._steps.pop()
            try:
                compensate()
                self._log.info(
                    "Compensation step completed",
                    extra={'saga': self.operation, 'saga_step': step, **self.context}
                )
            except Exception as exc:  # noqa: BLE001
                failures.append(CompensationFailure(step=step, error=exc))
                self._log.error(
                    "Compensation step failed",
                    extra={
                        'saga': self.operation,
                        'saga_step': step,
                        'error_type': type(exc).__name__,
                        'error_message': str(exc),
                        **self.context,
                    },
                    exc_info=True
                )
        self.failures.extend(failures)
        return failures

    def __enter__(self) -> "CompensationStack":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None:
            self.commit()
            return False

        self._log.warning(
            "Saga step failed, rolling back",
            extra={
                'saga': self.operation,
                'pending_compensations': len(self._steps),
                'error_type': exc_type.__name__,
                'error_message': str(exc),
                **self.context,
            }
        )
        self.rollback()
        # The original error always propagates.
        return False
