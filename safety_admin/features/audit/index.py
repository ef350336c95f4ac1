"""
Audit Feature Module.
"""
from flask import Blueprint

from safety_admin.features.audit.controller.audit_controller import AuditController
from safety_admin.services.system.auth_middleware import require_admin


def create_audit_blueprint(container) -> Blueprint:
    audit_controller = AuditController(
        audit_log_service=container.audit_log_service,
        archive_service=container.archive_service,
        stream_archive_service=container.stream_archive_service,
        rate_limiter=container.admin_rate_limiter,
        stream_token=container.config.archive_stream_token,
    )

    audit_bp = Blueprint('audit', __name__)

    audit_bp.add_url_rule(
        '/api/admin/audit/actions',
        view_func=require_admin(audit_controller.list_actions),
        methods=['GET']
    )

    audit_bp.add_url_rule(
        '/api/admin/archive/reports',
        view_func=require_admin(audit_controller.archive_reports),
        methods=['POST']
    )

    audit_bp.add_url_rule(
        '/api/admin/archive/activity',
        view_func=require_admin(audit_controller.archive_activity),
        methods=['POST']
    )

    # Called by the deletion stream, authenticated by shared token
    audit_bp.add_url_rule(
        '/api/internal/archive/deletions',
        view_func=audit_controller.receive_deletion_events,
        methods=['POST']
    )

    return audit_bp
