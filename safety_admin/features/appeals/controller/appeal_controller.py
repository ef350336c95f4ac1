"""
Appeal Controller.
"""
from flask import request

from safety_admin.common.base.base_controller import BaseController
from safety_admin.common.errors import ValidationError
from safety_admin.features.appeals.domain.appeal_entity import AppealStatus, AppealType
from safety_admin.features.appeals.dto.appeal_request import ReviewAppealRequest, SubmitAppealRequest
from safety_admin.features.appeals.mapper.appeal_mapper import to_appeal_response
from safety_admin.features.appeals.service.appeal_service import AppealService
from safety_admin.services.system.auth_middleware import current_actor
from safety_admin.services.system.logger_service import get_logger
from safety_admin.services.system.security import AdminRateLimiter
from safety_admin.utils.time_utils import ensure_utc

logger = get_logger(__name__)


class AppealController(BaseController):
    def __init__(self, appeal_service: AppealService, rate_limiter: AdminRateLimiter):
        self.appeal_service = appeal_service
        self.rate_limiter = rate_limiter

    def submit_appeal(self):
        try:
            req_dto = self.parse_body(SubmitAppealRequest)
            appeal = self.appeal_service.submit_appeal(req_dto)
            return self.handle_response({
                'success': True,
                'message': 'Appeal submitted',
                'appeal': to_appeal_response(appeal),
            }, 201)
        except Exception as e:
            return self.handle_exception(e)

    def list_appeals(self):
        try:
            raw_status = (request.args.get('status') or AppealStatus.PENDING.value).lower()
            raw_type = request.args.get('type') or request.args.get('appealType')
            raw_before = request.args.get('before')
            try:
                status = None if raw_status == 'all' else AppealStatus(raw_status)
                appeal_type = AppealType(raw_type.lower()) if raw_type and raw_type != 'all' else None
            except ValueError:
                raise ValidationError("Unknown appeal status or type", field='status')
            before = ensure_utc(raw_before) if raw_before else None
            if raw_before and before is None:
                raise ValidationError("'before' must be an ISO timestamp", field='before')

            result = self.appeal_service.list_appeals(
                status=status,
                appeal_type=appeal_type,
                limit=self.query_int('limit', 50),
                before=before,
            )
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)

    def review_appeal(self, appeal_id: str):
        try:
            actor = current_actor()
            req_dto = self.parse_body(ReviewAppealRequest)
            self.rate_limiter.check(actor.user_id, f"appeal_{req_dto.action.value}")
            result = self.appeal_service.review_appeal(actor, appeal_id, req_dto.action, req_dto.notes)
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)
