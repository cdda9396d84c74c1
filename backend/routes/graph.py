from flask import Blueprint, request, jsonify
from extensions import db
from flowgraph import Position
from flowgraph.codec import VALID_NODE_TYPES, encode_edge, encode_node
from models import Chatbot
from routes import audit, graph_write_lock, load_graph, reload_bot, store_graph, validate_required

graph_bp = Blueprint("graph", __name__, url_prefix="/api/v1/chatbots/<chatbot_id>")


def _edit(chatbot_id, action, change):
    """Load the bot's graph, apply ``change`` and store the result under the flow lock."""
    bot = Chatbot.query.get_or_404(chatbot_id)
    with graph_write_lock(bot.id):
        bot = reload_bot(chatbot_id)
        graph = load_graph(bot)
        result, payload = change(graph)
        store_graph(bot, graph)
        audit(action, "chatbot", bot.id, payload)
        db.session.commit()
    return result


def _bad_coordinates(data):
    """Return a 400 response unless every given x/y is a number."""
    for key in ("x", "y"):
        if key not in data:
            continue
        try:
            float(data[key])
        except (TypeError, ValueError):
            message = "x and y must be numbers"
            return jsonify({"error": message, "message": message}), 400
    return None


def _position(data, current=None):
    if "x" not in data and "y" not in data:
        return current
    base = current or Position()
    return Position(float(data.get("x", base.x)), float(data.get("y", base.y)))


# ── Nodes ─────────────────────────────────────────────────────

@graph_bp.post("/nodes")
def create_node(chatbot_id):
    data = request.get_json(silent=True) or {}
    if err := validate_required(data, "node_type"):
        return err
    if data["node_type"] not in VALID_NODE_TYPES:
        return jsonify({"error": f"Invalid node type. Must be one of: {', '.join(sorted(VALID_NODE_TYPES))}"}), 400
    if err := _bad_coordinates(data):
        return err
    position = _position(data)

    def change(graph):
        node = graph.add_node(
            data["node_type"],
            content=data.get("content"),
            label=data.get("label"),
            position=position,
            is_start=bool(data.get("is_start")),
        )
        return node, {"node_id": node.id, "node_type": node.kind.value}

    node = _edit(chatbot_id, "node.created", change)
    return jsonify(encode_node(node)), 201


@graph_bp.put("/nodes/<node_id>")
def update_node(chatbot_id, node_id):
    data = request.get_json(silent=True) or {}
    if err := _bad_coordinates(data):
        return err

    def change(graph):
        node = graph.get_node(node_id)
        graph.update_node(
            node_id,
            label=data.get("label"),
            content=data.get("content"),
            position=_position(data, node.position),
        )
        if data.get("is_start"):
            graph.set_start(node_id)
        return node, {"node_id": node_id, "fields": list(data.keys())}

    node = _edit(chatbot_id, "node.updated", change)
    return jsonify(encode_node(node))


@graph_bp.delete("/nodes/<node_id>")
def delete_node(chatbot_id, node_id):
    def change(graph):
        removed = graph.delete_node(node_id)
        return removed, {"node_id": node_id, "removed_connections": len(removed)}

    removed = _edit(chatbot_id, "node.deleted", change)
    return jsonify({"deleted": True, "removed_connections": [e.id for e in removed]})


# ── Edges ─────────────────────────────────────────────────────

@graph_bp.post("/edges")
def create_edge(chatbot_id):
    data = request.get_json(silent=True) or {}
    if err := validate_required(data, "from_node", "to_node"):
        return err

    def change(graph):
        edge = graph.add_edge(
            str(data["from_node"]),
            str(data["to_node"]),
            condition=data.get("condition_value"),
            label=data.get("label"),
        )
        return edge, {"edge_id": edge.id, "condition_value": edge.condition}

    edge = _edit(chatbot_id, "edge.created", change)
    return jsonify(encode_edge(edge)), 201


@graph_bp.put("/edges/<edge_id>")
def update_edge(chatbot_id, edge_id):
    data = request.get_json(silent=True) or {}

    def change(graph):
        edge = graph.update_edge(
            edge_id,
            condition=data.get("condition_value"),
            label=data.get("label"),
        )
        return edge, {"edge_id": edge_id, "condition_value": edge.condition}

    edge = _edit(chatbot_id, "edge.updated", change)
    return jsonify(encode_edge(edge))


@graph_bp.delete("/edges/<edge_id>")
def delete_edge(chatbot_id, edge_id):
    def change(graph):
        graph.delete_edge(edge_id)
        return None, {"edge_id": edge_id}

    _edit(chatbot_id, "edge.deleted", change)
    return jsonify({"deleted": True})
