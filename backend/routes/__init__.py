import threading
from datetime import datetime
from flask import request, jsonify
from extensions import db
from flowgraph import decode, encode
from models import AuditLog, BotConnection, BotNode, Chatbot

_write_locks = {}
_write_locks_guard = threading.Lock()


def audit(action, resource_type=None, resource_id=None, payload=None):
    """Write an audit log entry. Committed with the next db.session.commit()."""
    actor = request.headers.get("X-Actor-Id")
    db.session.add(AuditLog(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor,
        payload=payload,
    ))


def paginate_query(query, default_limit=50, max_limit=200):
    """Paginate a SQLAlchemy query using ?page= and ?limit= query params."""
    page = max(1, int(request.args.get("page", 1)))
    limit = min(max_limit, max(1, int(request.args.get("limit", default_limit))))
    total = query.count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
        "has_next": page * limit < total,
        "has_prev": page > 1,
    }


def validate_required(data, *fields):
    """Return a 400 error response if any required fields are missing."""
    missing = [f for f in fields if not data.get(f)]
    if missing:
        message = f"Missing required fields: {', '.join(missing)}"
        return jsonify({"error": message, "message": message}), 400
    return None


def graph_write_lock(chatbot_id):
    """One lock per flow; graph edits are single-writer."""
    with _write_locks_guard:
        return _write_locks.setdefault(chatbot_id, threading.Lock())


def release_write_lock(chatbot_id):
    """Drop the lock of a deleted flow."""
    with _write_locks_guard:
        _write_locks.pop(chatbot_id, None)


def reload_bot(chatbot_id):
    """Re-read a bot row under its flow lock; a writer that held the lock may have moved next_node_id."""
    return Chatbot.query.populate_existing().get_or_404(chatbot_id)


def load_graph(bot):
    return decode(bot.graph_payload(), next_id=bot.next_node_id)


def store_graph(bot, graph):
    """Replace every stored node and connection of a bot with ``graph``."""
    BotConnection.query.filter_by(chatbot_id=bot.id).delete()
    BotNode.query.filter_by(chatbot_id=bot.id).delete()

    payload = encode(graph)
    for i, n in enumerate(payload["nodes"]):
        db.session.add(BotNode(
            chatbot_id=bot.id,
            node_id=n["id"],
            node_type=n["node_type"],
            label=n["label"],
            content=n["content"],
            x=n["x"],
            y=n["y"],
            is_start=n["is_start"],
            sort_order=i,
        ))
    for i, c in enumerate(payload["connections"]):
        db.session.add(BotConnection(
            chatbot_id=bot.id,
            edge_id=c["id"],
            from_node=c["from_node"],
            to_node=c["to_node"],
            condition_value=c["condition_value"],
            label=c["label"],
            sort_order=i,
        ))
    bot.next_node_id = graph.next_id
    bot.updated_at = datetime.utcnow()
