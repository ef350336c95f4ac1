"""
Audit & Archive Controller.
"""
import hmac
from typing import Optional

from flask import request

from safety_admin.common.base.base_controller import BaseController
from safety_admin.common.errors import UnauthorizedError, ValidationError
from safety_admin.features.audit.service.archive_service import ArchiveService, StreamArchiveService
from safety_admin.features.audit.service.audit_log_service import AuditLogService
from safety_admin.services.system.auth_middleware import current_actor
from safety_admin.services.system.logger_service import get_logger
from safety_admin.services.system.security import AdminRateLimiter

logger = get_logger(__name__)

ARCHIVE_TOKEN_HEADER = 'X-Archive-Token'


class AuditController(BaseController):
    def __init__(self, audit_log_service: AuditLogService, archive_service: ArchiveService,
                 stream_archive_service: StreamArchiveService, rate_limiter: AdminRateLimiter,
                 stream_token: Optional[str] = None):
        self.audit_log_service = audit_log_service
        self.archive_service = archive_service
        self.stream_archive_service = stream_archive_service
        self.rate_limiter = rate_limiter
        self.stream_token = stream_token

    def list_actions(self):
        try:
            actions = self.audit_log_service.list_actions(
                limit=self.query_int('limit', 50, maximum=200),
                action_type=request.args.get('action') or None,
            )
            return self.handle_response({'success': True, 'actions': actions, 'count': len(actions)})
        except Exception as e:
            return self.handle_exception(e)

    def archive_reports(self):
        try:
            actor = current_actor()
            self.rate_limiter.check(actor.user_id, 'archive_reports')
            result = self.archive_service.archive_resolved_reports(actor)
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)

    def archive_activity(self):
        try:
            actor = current_actor()
            body = request.get_json(silent=True) or {}
            older_than = body.get('olderThanDays', request.args.get('olderThanDays', 7))
            try:
                older_than = int(older_than)
            except (TypeError, ValueError):
                raise ValidationError("olderThanDays must be an integer", field='olderThanDays')
            self.rate_limiter.check(actor.user_id, 'archive_activity')
            result = self.archive_service.archive_activity_log(actor, older_than_days=older_than)
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)

    def receive_deletion_events(self):
        """
        Push endpoint for the Firestore deletion stream.

        Answers 500 when any record could not be archived so the stream
        redelivers the batch.
        """
        try:
            supplied = request.headers.get(ARCHIVE_TOKEN_HEADER, '')
            if not self.stream_token or not hmac.compare_digest(supplied, self.stream_token):
                raise UnauthorizedError('Invalid archive stream token')

            body = request.get_json(silent=True)
            if isinstance(body, dict):
                events = body.get('events', [body])
            elif isinstance(body, list):
                events = body
            else:
                raise ValidationError("Request body must be a deletion event or a list of them")

            stats = self.stream_archive_service.handle_deletion_events(events)
            if stats['failed']:
                return self.handle_response({'success': False, 'error': 'Archive write failed', 'stats': stats}, 500)
            return self.handle_response({'success': True, 'stats': stats})
        except Exception as e:
            return self.handle_exception(e)
