import uuid
from datetime import datetime
from extensions import db


class Chatbot(db.Model):
    __tablename__ = "chatbots"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    # High-water mark of the graph's id generator, so ids of deleted nodes are never reissued
    next_node_id = db.Column(db.Integer, nullable=False, default=1001)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def graph_payload(self):
        nodes = (
            BotNode.query
            .filter_by(chatbot_id=self.id)
            .order_by(BotNode.sort_order)
            .all()
        )
        connections = (
            BotConnection.query
            .filter_by(chatbot_id=self.id)
            .order_by(BotConnection.sort_order)
            .all()
        )
        return {
            "nodes": [n.to_dict() for n in nodes],
            "connections": [c.to_dict() for c in connections],
        }

    def to_dict(self, include_graph=False):
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "node_count": BotNode.query.filter_by(chatbot_id=self.id).count(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_graph:
            data.update(self.graph_payload())
        return data


class BotNode(db.Model):
    __tablename__ = "bot_nodes"
    __table_args__ = (db.UniqueConstraint("chatbot_id", "node_id"),)

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chatbot_id = db.Column(db.String(36), db.ForeignKey("chatbots.id"), nullable=False)
    node_id = db.Column(db.String(64), nullable=False)
    node_type = db.Column(db.String(20), nullable=False)
    label = db.Column(db.String(500), nullable=False, default="")
    content = db.Column(db.Text, nullable=False, default="")
    x = db.Column(db.Float, default=0.0)
    y = db.Column(db.Float, default=0.0)
    is_start = db.Column(db.Boolean, default=False)
    sort_order = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            "id": self.node_id,
            "node_type": self.node_type,
            "x": self.x,
            "y": self.y,
            "label": self.label,
            "content": self.content,
            "is_start": bool(self.is_start),
        }


class BotConnection(db.Model):
    __tablename__ = "bot_connections"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chatbot_id = db.Column(db.String(36), db.ForeignKey("chatbots.id"), nullable=False)
    edge_id = db.Column(db.String(64), nullable=False)
    from_node = db.Column(db.String(64), nullable=False)
    to_node = db.Column(db.String(64), nullable=False)
    condition_value = db.Column(db.String(255), nullable=False, default="+")
    label = db.Column(db.String(255), nullable=True)
    sort_order = db.Column(db.Integer, default=0)

    def to_dict(self):
        return {
            "id": self.edge_id,
            "from_node": self.from_node,
            "to_node": self.to_node,
            "condition_value": self.condition_value,
            "label": self.label,
        }


class ChatSession(db.Model):
    __tablename__ = "chat_sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chatbot_id = db.Column(db.String(36), db.ForeignKey("chatbots.id"), nullable=False)
    status = db.Column(db.String(20), default="active")
    current_node_id = db.Column(db.String(64), nullable=True)
    transcript = db.Column(db.JSON, default=list)
    turn_count = db.Column(db.Integer, default=0)
    started_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    ended_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "chatbot_id": self.chatbot_id,
            "status": self.status,
            "current_node_id": self.current_node_id,
            "transcript": self.transcript or [],
            "turn_count": self.turn_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    action = db.Column(db.String(100), nullable=False)
    resource_type = db.Column(db.String(50), nullable=True)
    resource_id = db.Column(db.String(64), nullable=True)
    actor_id = db.Column(db.String(100), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
