"""
Moderation Feature Module.
"""
from flask import Blueprint

from safety_admin.features.moderation.controller.moderation_controller import ModerationController
from safety_admin.services.system.auth_middleware import require_admin


def create_moderation_blueprint(container) -> Blueprint:
    moderation_controller = ModerationController(
        moderation_service=container.moderation_service,
        rate_limiter=container.admin_rate_limiter,
    )

    moderation_bp = Blueprint('moderation', __name__)

    moderation_bp.add_url_rule(
        '/api/admin/moderation/<content_type>/<content_id>/action',
        view_func=require_admin(moderation_controller.take_action),
        methods=['POST']
    )

    moderation_bp.add_url_rule(
        '/api/admin/moderation/<content_type>/<content_id>/restore',
        view_func=require_admin(moderation_controller.restore_content),
        methods=['POST']
    )

    moderation_bp.add_url_rule(
        '/api/admin/moderation/<content_type>/<content_id>/delete',
        view_func=require_admin(moderation_controller.delete_content),
        methods=['POST']
    )

    return moderation_bp
