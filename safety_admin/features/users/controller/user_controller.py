from flask import request

from safety_admin.common.base.base_controller import BaseController
from safety_admin.features.users.domain.user_entity import UnbanSource
from safety_admin.features.users.dto.user_request import BanUserRequest, UnbanUserRequest
from safety_admin.features.users.mapper.user_mapper import to_profile_response
from safety_admin.features.users.service.ban_service import BanLifecycleManager
from safety_admin.features.users.service.user_service import UserService
from safety_admin.services.system.auth_middleware import current_actor
from safety_admin.services.system.logger_service import get_logger
from safety_admin.services.system.security import AdminRateLimiter

logger = get_logger(__name__)


class UserController(BaseController):
    def __init__(self, ban_manager: BanLifecycleManager, user_service: UserService,
                 rate_limiter: AdminRateLimiter):
        self.ban_manager = ban_manager
        self.user_service = user_service
        self.rate_limiter = rate_limiter

    def ban_user(self, user_id: str):
        """Ban a user (duration 0 = permanent)."""
        try:
            actor = current_actor()
            req_dto = self.parse_body(BanUserRequest)
            self.rate_limiter.check(actor.user_id, 'ban_user')

            profile = self.ban_manager.ban_user(
                actor, user_id, req_dto.reason, req_dto.banDuration, req_dto.banDurationUnit,
                metadata={'source': 'admin'},
            )
            return self.handle_response({
                'success': True,
                'message': f"User banned ({profile.ban_duration_display})",
                'user': to_profile_response(profile),
            })
        except Exception as e:
            return self.handle_exception(e)

    def unban_user(self, user_id: str):
        try:
            actor = current_actor()
            self.parse_body(UnbanUserRequest)
            self.rate_limiter.check(actor.user_id, 'unban_user')

            profile = self.ban_manager.unban_user(user_id, source=UnbanSource.MANUAL, actor=actor)
            return self.handle_response({
                'success': True,
                'message': 'User unbanned',
                'user': to_profile_response(profile),
            })
        except Exception as e:
            return self.handle_exception(e)

    def list_banned_users(self):
        try:
            result = self.user_service.list_banned_users(
                ban_type=request.args.get('banType', 'all'),
                limit=self.query_int('limit', 100, maximum=500),
            )
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)

    def get_user_detail(self, user_id: str):
        try:
            return self.handle_response(self.user_service.get_user_detail(user_id))
        except Exception as e:
            return self.handle_exception(e)

    def get_ban_status(self, user_id: str):
        try:
            return self.handle_response(self.user_service.get_ban_status(user_id))
        except Exception as e:
            return self.handle_exception(e)

    def get_public_ban_status(self, username: str):
        """Public: lets a locked-out user see why and whether they can appeal."""
        try:
            return self.handle_response(self.user_service.get_ban_status_by_username(username))
        except Exception as e:
            return self.handle_exception(e)

    def expire_bans(self):
        try:
            actor = current_actor()
            result = self.user_service.run_expiry_sweep(actor, limit=self.query_int('limit', 100, maximum=500))
            return self.handle_response(result)
        except Exception as e:
            return self.handle_exception(e)
