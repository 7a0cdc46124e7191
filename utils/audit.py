import json
from flask import has_request_context
from models import db
from models.audit_log import AuditLog
from utils.clock import now_ms
from utils.request_meta import client_ip, user_agent

def log_event(action: str, subject=None, entity=None, entity_id=None, metadata=None):
    row = AuditLog(
        action=action,
        subject=subject,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=client_ip() if has_request_context() else None,
        user_agent=user_agent() if has_request_context() else None,
        metadata_json=json.dumps(metadata) if metadata else None,
        created_at=now_ms(),
    )
    db.session.add(row)
    db.session.commit()
