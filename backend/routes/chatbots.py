from datetime import datetime
from flask import Blueprint, current_app, request, jsonify
from sqlalchemy import or_
from extensions import db
from flowgraph import Graph, decode, decode_canvas
from flowgraph.codec import is_canvas_payload
from models import BotConnection, BotNode, Chatbot, ChatSession
from routes import (
    audit,
    graph_write_lock,
    load_graph,
    paginate_query,
    release_write_lock,
    reload_bot,
    store_graph,
    validate_required,
)

chatbots_bp = Blueprint("chatbots", __name__, url_prefix="/api/v1")


def _bot_with_graph(bot, graph):
    data = bot.to_dict(include_graph=True)
    data["start_node_id"] = graph.start_node().id if graph.nodes else None
    data["warnings"] = graph.warnings()
    return data


# ── Chatbots ──────────────────────────────────────────────────

@chatbots_bp.get("/chatbots")
def list_chatbots():
    query = Chatbot.query

    if search := request.args.get("search", "").strip():
        query = query.filter(
            or_(Chatbot.name.ilike(f"%{search}%"), Chatbot.description.ilike(f"%{search}%"))
        )

    query = query.order_by(Chatbot.created_at.asc())

    # The editor lists bots as a plain array; paging is opt-in
    if "page" not in request.args and "limit" not in request.args:
        bots = query.all()
        resp = jsonify([b.to_dict() for b in bots])
        resp.headers["X-Total-Count"] = str(len(bots))
        return resp

    bots, pagination = paginate_query(query)
    resp = jsonify({
        "data": [b.to_dict() for b in bots],
        "pagination": pagination,
    })
    resp.headers["X-Total-Count"] = str(pagination["total"])
    return resp


@chatbots_bp.post("/chatbots")
def create_chatbot():
    data = request.get_json(silent=True) or {}
    if err := validate_required(data, "name"):
        return err
    if len(data["name"].strip()) > 255:
        return jsonify({"error": "Name must be 255 characters or fewer"}), 400

    bot = Chatbot(
        name=data["name"].strip(),
        description=(data.get("description") or "").strip() or None,
        next_node_id=Graph().next_id,
    )
    db.session.add(bot)
    db.session.flush()
    audit("chatbot.created", "chatbot", bot.id, {"name": bot.name})
    db.session.commit()
    return jsonify(bot.to_dict(include_graph=True)), 201


@chatbots_bp.get("/chatbots/<chatbot_id>")
def get_chatbot(chatbot_id):
    bot = Chatbot.query.get_or_404(chatbot_id)
    return jsonify(_bot_with_graph(bot, load_graph(bot)))


@chatbots_bp.put("/chatbots/<chatbot_id>")
def update_chatbot(chatbot_id):
    bot = Chatbot.query.get_or_404(chatbot_id)
    data = request.get_json(silent=True) or {}

    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            return jsonify({"error": "Name cannot be empty"}), 400
        bot.name = name
    if "description" in data:
        bot.description = (data["description"] or "").strip() or None

    bot.updated_at = datetime.utcnow()
    audit("chatbot.updated", "chatbot", chatbot_id, {"fields": list(data.keys())})
    db.session.commit()
    return jsonify(bot.to_dict())


@chatbots_bp.delete("/chatbots/<chatbot_id>")
def delete_chatbot(chatbot_id):
    """Hard delete: removes sessions, connections and nodes with the bot."""
    bot = Chatbot.query.get_or_404(chatbot_id)
    audit("chatbot.deleted", "chatbot", chatbot_id, {"name": bot.name})

    with graph_write_lock(bot.id):
        ChatSession.query.filter_by(chatbot_id=chatbot_id).delete(synchronize_session=False)
        BotConnection.query.filter_by(chatbot_id=chatbot_id).delete(synchronize_session=False)
        BotNode.query.filter_by(chatbot_id=chatbot_id).delete(synchronize_session=False)
        db.session.delete(bot)
        db.session.commit()
    release_write_lock(chatbot_id)
    return jsonify({"deleted": True})


# ── Whole-graph save ──────────────────────────────────────────

@chatbots_bp.post("/chatbots/<chatbot_id>/save_graph")
def save_graph(chatbot_id):
    """
    Atomically replace the stored graph.

    Accepts either the stored format (nodes + connections) or the editor's
    canvas payload (nodes + edges). A graph without a marked start node gets
    its default start node marked so every saved flow has exactly one.
    """
    bot = Chatbot.query.get_or_404(chatbot_id)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Expected a JSON object with nodes and connections"}), 400

    with graph_write_lock(bot.id):
        bot = reload_bot(chatbot_id)
        reader = decode_canvas if is_canvas_payload(data) else decode
        graph = reader(data, next_id=bot.next_node_id)
        graph.validate()
        if graph.nodes and not any(n.is_start for n in graph.nodes.values()):
            graph.set_start(graph.start_node().id)

        store_graph(bot, graph)
        audit("graph.saved", "chatbot", bot.id, {
            "node_count": len(graph.nodes),
            "edge_count": len(graph.edges),
        })
        db.session.commit()

    current_app.logger.info(
        "Saved graph for chatbot %s (%d nodes, %d connections)",
        bot.id, len(graph.nodes), len(graph.edges),
    )
    return jsonify(_bot_with_graph(bot, graph))
