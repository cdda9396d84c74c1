import time
from datetime import datetime
from flask import Flask, jsonify, g
from sqlalchemy import text
from config import Config
from extensions import cors, db
from flowgraph import (
    ConversationEnded,
    DanglingReference,
    FlowGraphError,
    GraphCycleError,
    GraphValidationError,
    NotFound,
    UnroutableTurn,
)

ERROR_STATUS = {
    NotFound: 404,
    DanglingReference: 422,
    GraphValidationError: 422,
    UnroutableTurn: 422,
    GraphCycleError: 409,
    ConversationEnded: 409,
}

# Engine failures report the position the caller should keep using
TURN_ERRORS = (UnroutableTurn, GraphCycleError, ConversationEnded)


def _status_for(exc):
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.url_map.strict_slashes = False
    app.logger.setLevel(app.config["LOG_LEVEL"])

    db.init_app(app)
    cors.init_app(
        app,
        origins=app.config["CORS_ORIGINS"],
        expose_headers=["X-Total-Count", "X-Request-Time", "X-API-Version"],
    )

    from routes.audit_logs import audit_bp
    from routes.chatbots import chatbots_bp
    from routes.graph import graph_bp
    from routes.runs import runs_bp

    app.register_blueprint(chatbots_bp)
    app.register_blueprint(graph_bp)
    app.register_blueprint(runs_bp)
    app.register_blueprint(audit_bp)

    register_hooks(app)
    register_error_handlers(app)

    with app.app_context():
        db.create_all()
    return app


# ─── REQUEST HOOKS ────────────────────────────────────────

def register_hooks(app):
    @app.before_request
    def start_timer():
        g.start_time = time.time()

    @app.after_request
    def add_headers(response):
        if hasattr(g, "start_time"):
            elapsed = round((time.time() - g.start_time) * 1000, 2)
            response.headers["X-Request-Time"] = f"{elapsed}ms"
        response.headers["X-API-Version"] = app.config["API_VERSION"]
        return response

    @app.get("/health")
    def health():
        try:
            db.session.execute(text("SELECT 1"))
            db_ok = True
        except Exception:
            db_ok = False
        return jsonify({
            "status": "ok" if db_ok else "degraded",
            "database": "connected" if db_ok else "error",
            "timestamp": datetime.utcnow().isoformat(),
            "version": app.config["API_VERSION"],
        })


# ─── ERROR HANDLERS ───────────────────────────────────────

def register_error_handlers(app):
    @app.errorhandler(FlowGraphError)
    def flow_graph_error(e):
        db.session.rollback()
        body = {"error": e.message, "message": e.message, "code": e.code}
        if isinstance(e, TURN_ERRORS) or e.position is not None:
            body["current_node_id"] = e.position
        status = _status_for(e)
        app.logger.warning("%s (%s): %s", type(e).__name__, status, e.message)
        return jsonify(body), status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Resource not found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        return jsonify({"error": "Internal server error", "message": "Internal server error"}), 500


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
