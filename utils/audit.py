import json

from flask import has_request_context, request

from models import db
from models.audit_log import AuditLog
from utils.logging import get_logger

logger = get_logger("audit")


def client_ip():
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # first hop is the original client
        return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def client_user_agent():
    if not has_request_context():
        return None
    return (request.headers.get("User-Agent") or "")[:255] or None


def log_event(action: str, principal_id=None, entity=None, entity_id=None, metadata=None,
              ip=None, user_agent=None):
    ip = ip or client_ip()
    user_agent = user_agent or client_user_agent()

    row = AuditLog(
        principal_id=principal_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    db.session.add(row)
    db.session.commit()

    logger.info(action.lower(), principal_id=principal_id, entity=entity, entity_id=entity_id,
                ip=ip, metadata=metadata)
