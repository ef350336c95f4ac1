"""
Appeals Feature Module.
"""
from flask import Blueprint

from safety_admin.features.appeals.controller.appeal_controller import AppealController
from safety_admin.services.system.auth_middleware import require_admin


def create_appeals_blueprint(container, limiter=None, public_limit: str = '30 per minute') -> Blueprint:
    appeal_controller = AppealController(
        appeal_service=container.appeal_service,
        rate_limiter=container.admin_rate_limiter,
    )

    submit_view = appeal_controller.submit_appeal
    if limiter is not None:
        submit_view = limiter.limit(public_limit)(submit_view)

    appeals_bp = Blueprint('appeals', __name__)

    appeals_bp.add_url_rule(
        '/api/appeals',
        view_func=submit_view,
        methods=['POST']
    )

    appeals_bp.add_url_rule(
        '/api/admin/appeals',
        view_func=require_admin(appeal_controller.list_appeals),
        methods=['GET']
    )

    appeals_bp.add_url_rule(
        '/api/admin/appeals/<appeal_id>/review',
        view_func=require_admin(appeal_controller.review_appeal),
        methods=['POST']
    )

    return appeals_bp
