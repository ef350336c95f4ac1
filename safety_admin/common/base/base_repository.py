"""
Base Repository Class.
Provides abstract interface for data access plus the shared Firestore plumbing.
"""
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TypeVar, Generic, Optional, Any, Dict, Iterable, Iterator, List

from google.api_core.exceptions import (
    Conflict,
    FailedPrecondition,
    GoogleAPICallError,
    NotFound,
    RetryError,
)

from safety_admin.common.errors import (
    ConflictError,
    ExternalSystemError,
    NotFoundError,
    SafetyAdminError,
)
from safety_admin.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)

T = TypeVar('T')

# Firestore rejects batches above 500 writes.
MAX_BATCH_WRITES = 500


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for all repositories.
    """

    @abstractmethod
    def find_by_id(self, id: str) -> Optional[T]:
        pass

    @abstractmethod
    def save(self, entity: T) -> T:
        pass


class FirestoreRepository(BaseRepository[T]):
    """Repository backed by one Firestore collection."""

    collection_name: str = ''

    def __init__(self, db: Any, collection_name: Optional[str] = None):
        self.db = db
        if collection_name:
            self.collection_name = collection_name

    @property
    def collection(self):
        return self.db.collection(self.collection_name)

    def _doc(self, doc_id: str):
        return self.collection.document(doc_id)

    @contextmanager
    def _store_call(self, operation: str, doc_id: Optional[str] = None) -> Iterator[None]:
        """Translate Firestore client failures into the typed error taxonomy."""
        try:
            yield
        except SafetyAdminError:
            raise
        except FailedPrecondition as exc:
            raise ConflictError(
                f"{self.collection_name}/{doc_id} was modified concurrently",
                code="CONCURRENT_MODIFICATION",
            ) from exc
        except Conflict as exc:
            raise ConflictError(
                f"{self.collection_name}/{doc_id} already exists",
                code="ALREADY_EXISTS",
            ) from exc
        except NotFound as exc:
            raise NotFoundError(self.collection_name, doc_id or '?') from exc
        except (GoogleAPICallError, RetryError) as exc:
            log_error(logger, exc, {
                'collection': self.collection_name,
                'doc_id': doc_id,
                'operation': operation,
            })
            raise ExternalSystemError('firestore', f"{operation} failed: {exc}") from exc

    def _write_option(self, snapshot_update_time: Any):
        if snapshot_update_time is None:
            return None
        return self.db.write_option(last_update_time=snapshot_update_time)

    def stamp_and_delete(self, doc_ids: Iterable[str], deletion_cause: str,
                         batch_size: int = 100) -> List[Dict[str, Any]]:
        """
        Tag documents with ``deletionCause`` and then delete them in batches.

        Returns one error entry per failed batch; successful batches are not
        rolled back.
        """
        ids = list(doc_ids)
        size = max(1, min(batch_size, MAX_BATCH_WRITES))
        errors: List[Dict[str, Any]] = []

        for start in range(0, len(ids), size):
            chunk = ids[start:start + size]
            try:
                with self._store_call('stamp_and_delete', chunk[0]):
                    stamp = self.db.batch()
                    for doc_id in chunk:
                        stamp.update(self._doc(doc_id), {'deletionCause': deletion_cause})
                    stamp.commit()

                    purge = self.db.batch()
                    for doc_id in chunk:
                        purge.delete(self._doc(doc_id))
                    purge.commit()
            except SafetyAdminError as exc:
                logger.error(
                    "Batch delete failed",
                    extra={
                        'collection': self.collection_name,
                        'batch_start': start,
                        'batch_ids': chunk,
                        'error_message': str(exc),
                    }
                )
                errors.append({'batchStart': start, 'ids': chunk, 'error': str(exc)})

        return errors
