"""
Moderation Controller.
"""
from flask import request

from safety_admin.common.base.base_controller import BaseController
from safety_admin.common.errors import ValidationError
from safety_admin.features.moderation.dto.moderation_request import (
    ContentStatusChangeRequest,
    ModerationActionRequest,
)
from safety_admin.features.moderation.service.moderation_service import ModerationService
from safety_admin.services.system.auth_middleware import current_actor
from safety_admin.services.system.logger_service import get_logger
from safety_admin.services.system.security import AdminRateLimiter

logger = get_logger(__name__)


class ModerationController(BaseController):
    def __init__(self, moderation_service: ModerationService, rate_limiter: AdminRateLimiter):
        self.moderation_service = moderation_service
        self.rate_limiter = rate_limiter

    def take_action(self, content_type: str, content_id: str):
        try:
            actor = current_actor()
            body = request.get_json(silent=True) or {}
            if not isinstance(body, dict):
                raise ValidationError("Request body must be a JSON object")
            body = dict(body)
            # Path segment may be singular or plural ("post" / "posts").
            body['contentType'] = content_type.rstrip('s')
            body['contentId'] = content_id
            req_dto = self.parse_body(ModerationActionRequest, body)

            self.rate_limiter.check(actor.user_id, req_dto.action.value)
            result = self.moderation_service.take_action(actor, req_dto)
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)

    def restore_content(self, content_type: str, content_id: str):
        return self._change_status('restore', content_type, content_id, self.moderation_service.restore_content)

    def delete_content(self, content_type: str, content_id: str):
        return self._change_status('delete', content_type, content_id, self.moderation_service.delete_content)

    def _change_status(self, action: str, content_type: str, content_id: str, operation):
        try:
            actor = current_actor()
            body = request.get_json(silent=True) or {}
            if not isinstance(body, dict):
                raise ValidationError("Request body must be a JSON object")
            body = dict(body)
            body['contentType'] = content_type.rstrip('s')
            body['contentId'] = content_id
            req_dto = self.parse_body(ContentStatusChangeRequest, body)

            self.rate_limiter.check(actor.user_id, action)
            return self.handle_response(operation(actor, req_dto))
        except Exception as e:
            return self.handle_exception(e)
