"""
Archive Repository.

JSON archives in the Firebase Storage bucket. TTL partitions are merged in
place: read the blob, add records that are not there yet, upload with an
``if_generation_match`` precondition so a concurrent writer forces a re-read
instead of being overwritten.
"""
import json
from datetime import date, datetime
from typing import Any, Dict, Optional

from google.api_core.exceptions import GoogleAPICallError, PreconditionFailed, RetryError

from safety_admin.common.errors import ConflictError, ExternalSystemError
from safety_admin.services.system.logger_service import get_logger
from safety_admin.utils.time_utils import archive_partition, to_iso

logger = get_logger(__name__)

# Generation races retried inside a single merge call.
MAX_GENERATION_RACES = 5


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return to_iso(value) if isinstance(value, datetime) else value.isoformat()
    if hasattr(value, 'to_datetime'):
        return to_iso(value)
    return str(value)


def dump_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, default=_json_default, ensure_ascii=False, sort_keys=True)


class ArchiveRepository:
    def __init__(self, bucket: Any, prefix: str = 'archives'):
        self.bucket = bucket
        self.prefix = prefix.strip('/')

    def ttl_path(self, entity_type: str, day: date) -> str:
        return f"{self.prefix}/{entity_type}/ttl/{archive_partition(day)}.json"

    def manual_path(self, entity_type: str, now: datetime) -> str:
        stamp = now.strftime('%Y%m%dT%H%M%S%fZ')
        return f"{self.prefix}/{entity_type}/manual/{now.date().isoformat()}/{entity_type}-{stamp}.json"

    def read(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            blob = self.bucket.get_blob(path)
            if blob is None:
                return None
            return json.loads(blob.download_as_text())
        except (GoogleAPICallError, RetryError) as exc:
            raise ExternalSystemError('archive_store', f"read {path} failed: {exc}") from exc

    def write_new(self, path: str, payload: Dict[str, Any]) -> str:
        """Write a blob that must not exist yet."""
        try:
            self.bucket.blob(path).upload_from_string(
                dump_json(payload), content_type='application/json', if_generation_match=0,
            )
        except PreconditionFailed as exc:
            raise ConflictError(f"Archive {path} already exists", code='ALREADY_EXISTS') from exc
        except (GoogleAPICallError, RetryError) as exc:
            raise ExternalSystemError('archive_store', f"write {path} failed: {exc}") from exc
        logger.info("Archive written", extra={'archive_path': path})
        return path

    def merge_records(self, path: str, entity_type: str, records: Dict[str, Dict[str, Any]],
                      merged_at: datetime) -> int:
        """
        Add ``records`` (keyed by ``collection/documentId``) to the blob at ``path``.

        Keys already present are left untouched, so replaying an event is a
        no-op. Returns the number of records actually added.
        """
        for race in range(MAX_GENERATION_RACES):
            try:
                blob = self.bucket.get_blob(path)
                if blob is not None:
                    existing = json.loads(blob.download_as_text())
                    generation = blob.generation
                else:
                    existing = {'entityType': entity_type, 'records': {}}
                    generation = 0

                stored = existing.setdefault('records', {})
                fresh = {key: value for key, value in records.items() if key not in stored}
                if not fresh:
                    return 0

                stored.update(fresh)
                existing['recordCount'] = len(stored)
                existing['updatedAt'] = merged_at
                self.bucket.blob(path).upload_from_string(
                    dump_json(existing), content_type='application/json', if_generation_match=generation,
                )
                return len(fresh)
            except PreconditionFailed:
                logger.debug("Archive generation race, re-reading", extra={
                    'archive_path': path, 'attempt': race + 1
                })
                continue
            except (GoogleAPICallError, RetryError, ValueError) as exc:
                raise ExternalSystemError('archive_store', f"merge into {path} failed: {exc}") from exc

        raise ExternalSystemError('archive_store', f"merge into {path} lost {MAX_GENERATION_RACES} generation races")
