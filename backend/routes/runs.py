from datetime import datetime
from flask import Blueprint, current_app, request, jsonify
from extensions import db
from flowgraph import FlowRunner, TurnStatus
from models import Chatbot, ChatSession
from routes import load_graph

runs_bp = Blueprint("runs", __name__, url_prefix="/api/v1")


def _runner(graph):
    return FlowRunner(
        graph,
        max_steps=current_app.config["MAX_TURN_STEPS"],
        restart_on_end=current_app.config["RESTART_AFTER_END"],
    )


def _read_input(value):
    if value is not None and not isinstance(value, str):
        return None, (jsonify({"error": "input must be a string"}), 400)
    return value, None


def _play_turn(session, graph, user_input=None):
    """Run one turn for a stored session and append it to the transcript.

    The session row is only touched after the engine succeeded.
    """
    result = _runner(graph).run_turn(session.current_node_id, user_input)

    now = datetime.utcnow()
    stamp = now.isoformat()
    entries = list(session.transcript or [])
    if user_input and user_input.strip():
        entries.append({"from": "user", "text": user_input, "timestamp": stamp})
    entries.extend(dict(entry.to_dict(), timestamp=stamp) for entry in result.transcript)

    session.transcript = entries
    session.current_node_id = result.position
    session.turn_count = (session.turn_count or 0) + 1
    if result.status is TurnStatus.ENDED:
        session.status = "ended"
        session.ended_at = now
    else:
        session.status = "active"
        session.ended_at = None
    return result


def _session_state(session, result):
    payload = session.to_dict()
    payload["last_turn"] = result.to_dict()
    return payload


# ── Stateless run ──────────────────────────────────────────────

@runs_bp.post("/chatbots/<chatbot_id>/run")
def run_chatbot(chatbot_id):
    """One turn: the caller keeps the position and echoes it back next time."""
    bot = Chatbot.query.get_or_404(chatbot_id)
    data = request.get_json(silent=True) or {}

    user_inputs = data.get("user_inputs") or {}
    if not isinstance(user_inputs, dict):
        return jsonify({"error": "user_inputs must be an object"}), 400
    user_input, err = _read_input(user_inputs.get("input"))
    if err:
        return err

    position = data.get("current_node_id")
    if position is not None:
        position = str(position)

    result = _runner(load_graph(bot)).run_turn(position, user_input)
    return jsonify(result.to_dict())


# ── Stored chat sessions ───────────────────────────────────────

@runs_bp.post("/chatbots/<chatbot_id>/sessions")
def start_session(chatbot_id):
    bot = Chatbot.query.get_or_404(chatbot_id)
    session = ChatSession(chatbot_id=bot.id, transcript=[], turn_count=0)
    result = _play_turn(session, load_graph(bot))
    db.session.add(session)
    db.session.commit()
    return jsonify(_session_state(session, result)), 201


@runs_bp.get("/sessions/<session_id>")
def get_session(session_id):
    session = ChatSession.query.get_or_404(session_id)
    return jsonify(session.to_dict())


@runs_bp.post("/sessions/<session_id>/turn")
def submit_turn(session_id):
    session = ChatSession.query.get_or_404(session_id)
    data = request.get_json(silent=True) or {}
    user_input, err = _read_input(data.get("input"))
    if err:
        return err

    bot = Chatbot.query.get_or_404(session.chatbot_id)
    result = _play_turn(session, load_graph(bot), user_input)
    db.session.commit()
    return jsonify(_session_state(session, result))


@runs_bp.post("/sessions/<session_id>/restart")
def restart_session(session_id):
    session = ChatSession.query.get_or_404(session_id)
    bot = Chatbot.query.get_or_404(session.chatbot_id)
    graph = load_graph(bot)

    session.current_node_id = None
    session.transcript = []
    session.turn_count = 0
    result = _play_turn(session, graph)
    db.session.commit()
    return jsonify(_session_state(session, result))
