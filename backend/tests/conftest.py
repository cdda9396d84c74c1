"""Pytest configuration and fixtures."""
import random

import pytest

from app import create_app
from extensions import db
from flowgraph import Graph, NodeKind


@pytest.fixture
def app(tmp_path):
    """Create an app bound to a throwaway SQLite file."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "RESTART_AFTER_END": True,
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def graph():
    """Empty graph with a seeded random source for positions."""
    return Graph(rng=random.Random(7))


@pytest.fixture
def order_graph(graph):
    """user_input A --order--> message B ; A --refund--> message C."""
    a = graph.add_node(NodeKind.USER_INPUT, "Pick order/refund")
    b = graph.add_node(NodeKind.MESSAGE, "OK order")
    c = graph.add_node(NodeKind.MESSAGE, "OK refund")
    graph.add_edge(a.id, b.id, "order")
    graph.add_edge(a.id, c.id, "refund")
    return graph


@pytest.fixture
def chatbot(client):
    """A stored chatbot with an empty graph."""
    response = client.post("/api/v1/chatbots", json={"name": "FAQ Bot"})
    assert response.status_code == 201
    return response.get_json()
