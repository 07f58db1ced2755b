from flask import Blueprint, g, jsonify, request

from models import db
from models.audit_log import AuditLog
from models.principal import Principal, Role
from security.rbac import require_role
from utils.auth_context import get_orchestrator

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _principal_or_404(principal_id: int):
    principal = db.session.get(Principal, principal_id)
    if principal is None:
        return None, (jsonify(error="Principal not found", code="NOT_FOUND"), 404)
    return principal, None


@admin_bp.post("/principals/<int:principal_id>/unlock")
@require_role(Role.SUPER_ADMIN)
def unlock_principal(principal_id: int):
    principal, failure = _principal_or_404(principal_id)
    if failure:
        return failure

    outcome = get_orchestrator().release_lockout(principal.id, actor_id=g.principal.id)
    return jsonify(message="Lockout cleared", **outcome.data), 200


@admin_bp.get("/principals/<int:principal_id>/session")
@require_role(Role.SUPER_ADMIN)
def principal_session(principal_id: int):
    principal, failure = _principal_or_404(principal_id)
    if failure:
        return failure

    sess = get_orchestrator().sessions.active_session(principal.id)
    return jsonify(
        principal=principal.public_dict(),
        session=sess.public_dict() if sess else None,
    ), 200


@admin_bp.post("/principals/<int:principal_id>/sessions/terminate")
@require_role(Role.SUPER_ADMIN)
def terminate_principal_sessions(principal_id: int):
    principal, failure = _principal_or_404(principal_id)
    if failure:
        return failure

    outcome = get_orchestrator().terminate_principal_sessions(principal.id, actor_id=g.principal.id)
    return jsonify(message="Sessions terminated", **outcome.data), 200


@admin_bp.get("/audit-logs")
@require_role(Role.SUPER_ADMIN)
def list_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    action = request.args.get("action")
    principal_id = request.args.get("principal_id", type=int)

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if principal_id is not None:
        q = q.filter(AuditLog.principal_id == principal_id)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()

    return jsonify([
        {
            "id": r.id,
            "timestamp": r.timestamp.isoformat(),
            "principal_id": r.principal_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": r.metadata_json,
        }
        for r in rows
    ]), 200
