"""
Wire format for stored flows.

    nodes:       [{id, node_type, x, y, label, content, is_start}]
    connections: [{id, from_node, to_node, condition_value}]

``decode_canvas`` additionally reads the payload the visual editor posts on
save, where each node carries ``_ntype``/``position``/``data`` and each edge
``source``/``target``/``label``.
"""
from flowgraph.errors import GraphValidationError
from flowgraph.graph import DEFAULT_CONDITION, Edge, Graph, Node, NodeKind, Position

VALID_NODE_TYPES = {kind.value for kind in NodeKind}


def encode_node(node):
    return {
        "id": node.id,
        "node_type": node.kind.value,
        "x": node.position.x,
        "y": node.position.y,
        "label": node.label,
        "content": node.content,
        "is_start": node.is_start,
    }


def encode_edge(edge):
    return {
        "id": edge.id,
        "from_node": edge.source,
        "to_node": edge.target,
        "condition_value": edge.condition or DEFAULT_CONDITION,
        "label": edge.label,
    }


def encode(graph):
    return {
        "nodes": [encode_node(n) for n in graph.nodes.values()],
        "connections": [encode_edge(e) for e in graph.edges.values()],
    }


def _coordinate(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        raise GraphValidationError(f"Invalid coordinate {value!r}") from None


def _node(node_id, node_type, x, y, label, content, is_start):
    if node_id is None or str(node_id).strip() == "":
        raise GraphValidationError("Every node needs an id")
    if node_type not in VALID_NODE_TYPES:
        raise GraphValidationError(
            f"Invalid node type {node_type!r}. Must be one of: {', '.join(sorted(VALID_NODE_TYPES))}"
        )
    return Node(
        id=str(node_id),
        kind=NodeKind(node_type),
        label=label or "",
        content=content or "",
        position=Position(_coordinate(x), _coordinate(y)),
        is_start=bool(is_start),
    )


def decode(payload, next_id=None, rng=None):
    """Build a Graph from the stored format. Raises on bad or dangling data."""
    nodes = [
        _node(
            n.get("id"),
            n.get("node_type"),
            n.get("x"),
            n.get("y"),
            n.get("label"),
            n.get("content"),
            n.get("is_start"),
        )
        for n in payload.get("nodes") or []
    ]
    edges = [
        Edge(
            id=str(c.get("id") or f"edge-{i}"),
            source=str(c.get("from_node")),
            target=str(c.get("to_node")),
            condition=c.get("condition_value"),
            label=c.get("label") or None,
        )
        for i, c in enumerate(payload.get("connections") or [])
    ]
    return Graph(nodes, edges, next_id=next_id, rng=rng)


def decode_canvas(payload, next_id=None, rng=None):
    """Build a Graph from the editor's save payload."""
    nodes = []
    for n in payload.get("nodes") or []:
        position = n.get("position") or {}
        data = n.get("data") or {}
        nodes.append(_node(
            n.get("id"),
            n.get("_ntype") or n.get("node_type"),
            position.get("x"),
            position.get("y"),
            data.get("label"),
            data.get("content"),
            n.get("is_start") or data.get("is_start"),
        ))
    edges = [
        Edge(
            id=str(e.get("id") or f"edge-{i}"),
            source=str(e.get("source")),
            target=str(e.get("target")),
            condition=e.get("label"),
        )
        for i, e in enumerate(payload.get("edges") or [])
    ]
    return Graph(nodes, edges, next_id=next_id, rng=rng)


def is_canvas_payload(payload):
    return "edges" in payload and "connections" not in payload
