"""
Users Feature Module.
"""
from flask import Blueprint

from safety_admin.features.users.controller.user_controller import UserController
from safety_admin.services.system.auth_middleware import require_admin


def create_users_blueprint(container, limiter=None, public_limit: str = '30 per minute') -> Blueprint:
    user_controller = UserController(
        ban_manager=container.ban_manager,
        user_service=container.user_service,
        rate_limiter=container.admin_rate_limiter,
    )

    public_status_view = user_controller.get_public_ban_status
    if limiter is not None:
        public_status_view = limiter.limit(public_limit)(public_status_view)

    users_bp = Blueprint('users', __name__)

    # Admin routes
    users_bp.add_url_rule(
        '/api/admin/users/banned',
        view_func=require_admin(user_controller.list_banned_users),
        methods=['GET']
    )

    users_bp.add_url_rule(
        '/api/admin/users/<user_id>',
        view_func=require_admin(user_controller.get_user_detail),
        methods=['GET']
    )

    users_bp.add_url_rule(
        '/api/admin/users/<user_id>/ban-status',
        view_func=require_admin(user_controller.get_ban_status),
        methods=['GET']
    )

    users_bp.add_url_rule(
        '/api/admin/users/<user_id>/ban',
        view_func=require_admin(user_controller.ban_user),
        methods=['POST']
    )

    users_bp.add_url_rule(
        '/api/admin/users/<user_id>/unban',
        view_func=require_admin(user_controller.unban_user),
        methods=['POST']
    )

    users_bp.add_url_rule(
        '/api/admin/bans/expire',
        view_func=require_admin(user_controller.expire_bans),
        methods=['POST']
    )

    # Public route
    users_bp.add_url_rule(
        '/api/ban-status/<username>',
        view_func=public_status_view,
        methods=['GET']
    )

    return users_bp
