from flask import Blueprint, request, jsonify
from models import AuditLog
from routes import paginate_query

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")


@audit_bp.get("/audit-logs")
def list_audit_logs():
    query = AuditLog.query.order_by(AuditLog.created_at.desc())
    if resource_type := request.args.get("resource_type"):
        query = query.filter_by(resource_type=resource_type)
    if resource_id := request.args.get("resource_id"):
        query = query.filter_by(resource_id=resource_id)
    if action := request.args.get("action"):
        query = query.filter_by(action=action)

    logs, pagination = paginate_query(query, default_limit=100)
    return jsonify({
        "data": [log.to_dict() for log in logs],
        "pagination": pagination,
    })
