"""
In-memory conversation graph.

Nodes and edges live in insertion-ordered dicts keyed by id. Every graph
owns its id generator, so ids are unique per flow and never depend on
process-wide state.
"""
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from flowgraph.errors import DanglingReference, GraphValidationError, NotFound

DEFAULT_CONDITION = "+"

# Generated ids always start above this value, even for graphs whose
# imported ids are smaller.
ID_FLOOR = 1000


class NodeKind(str, Enum):
    GREETING = "greeting"
    USER_INPUT = "user_input"
    MESSAGE = "message"
    BRANCH = "branch"
    END = "end"


DEFAULT_CONTENT = {
    NodeKind.GREETING: "Welcome! What topic do you need help with?",
    NodeKind.USER_INPUT: "Type: order / refund",
    NodeKind.MESSAGE: "Here is some information…",
    NodeKind.BRANCH: "",
    NodeKind.END: "Goodbye!",
}


def normalize_condition(value):
    value = (value or "").strip()
    return value or DEFAULT_CONDITION


def _numeric(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0


@dataclass
class Node:
    id: str
    kind: NodeKind
    label: str = ""
    content: str = ""
    position: Position = field(default_factory=Position)
    is_start: bool = False

    def __post_init__(self):
        self.kind = NodeKind(self.kind)
        if not self.label:
            self.label = f"{self.kind.value} {self.id}"


@dataclass
class Edge:
    id: str
    source: str
    target: str
    condition: str = DEFAULT_CONDITION
    label: Optional[str] = None

    def __post_init__(self):
        self.condition = normalize_condition(self.condition)

    @property
    def is_default(self) -> bool:
        return self.condition == DEFAULT_CONDITION

    @property
    def display_label(self) -> str:
        return self.label or self.condition

    def matches(self, key) -> bool:
        """Case-insensitive exact comparison of the routing key."""
        return bool(key) and self.condition.casefold() == key.casefold()


class Graph:
    """A flow: nodes, directed labeled edges and the id generator state."""

    def __init__(self, nodes=(), edges=(), next_id=None, rng=None):
        self.nodes = {}
        self.edges = {}
        self._next_id = ID_FLOOR + 1
        self._next_edge = 0
        self._rng = rng or random.Random()
        for node in nodes:
            self._insert_node(node)
        for edge in edges:
            self._insert_edge(edge)
        if next_id is not None:
            self._next_id = max(self._next_id, int(next_id))

    def __eq__(self, other):
        if not isinstance(other, Graph):
            return NotImplemented
        return self.nodes == other.nodes and self.edges == other.edges

    def __repr__(self):
        return f"<Graph nodes={len(self.nodes)} edges={len(self.edges)}>"

    @property
    def next_id(self) -> int:
        """The numeric id the next ``add_node`` call will hand out."""
        return self._next_id

    # ── Nodes ─────────────────────────────────────────────────

    def _insert_node(self, node):
        if node.id in self.nodes:
            raise GraphValidationError(f"Duplicate node id {node.id}")
        self.nodes[node.id] = node
        number = _numeric(node.id)
        if number is not None and number >= self._next_id:
            self._next_id = number + 1

    def _allocate_id(self):
        while str(self._next_id) in self.nodes:
            self._next_id += 1
        node_id = str(self._next_id)
        self._next_id += 1
        return node_id

    def _random_position(self):
        return Position(
            x=120 + self._rng.random() * 320,
            y=80 + self._rng.random() * 280,
        )

    def add_node(self, kind, content=None, label=None, position=None, is_start=False):
        kind = NodeKind(kind)
        if position is None:
            position = self._random_position()
        elif not isinstance(position, Position):
            position = Position(*position)

        node = Node(
            id=self._allocate_id(),
            kind=kind,
            label=label or "",
            content=DEFAULT_CONTENT[kind] if content is None else content,
            position=position,
        )
        self.nodes[node.id] = node
        if is_start:
            self.set_start(node.id)
        return node

    def get_node(self, node_id):
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NotFound(f"Node {node_id} not found") from None

    def update_node(self, node_id, label=None, content=None, position=None):
        node = self.get_node(node_id)
        if label is not None:
            node.label = label
        if content is not None:
            node.content = content
        if position is not None:
            node.position = position if isinstance(position, Position) else Position(*position)
        return node

    def delete_node(self, node_id):
        """Remove a node and every edge touching it. Returns the removed edges."""
        self.get_node(node_id)
        removed = [
            e for e in self.edges.values()
            if e.source == node_id or e.target == node_id
        ]
        for edge in removed:
            del self.edges[edge.id]
        del self.nodes[node_id]
        return removed

    def set_start(self, node_id):
        self.get_node(node_id)
        for node in self.nodes.values():
            node.is_start = node.id == node_id

    def start_node(self):
        """
        Explicitly marked start node, else the first greeting, else the
        first node created.
        """
        if not self.nodes:
            raise GraphValidationError("Flow has no nodes")
        for node in self.nodes.values():
            if node.is_start:
                return node
        for node in self.nodes.values():
            if node.kind is NodeKind.GREETING:
                return node
        return next(iter(self.nodes.values()))

    # ── Edges ─────────────────────────────────────────────────

    def _insert_edge(self, edge):
        missing = [n for n in (edge.source, edge.target) if n not in self.nodes]
        if missing:
            raise DanglingReference(
                f"Connection {edge.source} -> {edge.target} references unknown node {', '.join(missing)}"
            )
        if edge.id in self.edges:
            raise GraphValidationError(f"Duplicate connection id {edge.id}")
        self.edges[edge.id] = edge
        if edge.id.startswith("edge-"):
            number = _numeric(edge.id[len("edge-"):])
            if number is not None and number >= self._next_edge:
                self._next_edge = number + 1

    def _allocate_edge_id(self):
        while f"edge-{self._next_edge}" in self.edges:
            self._next_edge += 1
        edge_id = f"edge-{self._next_edge}"
        self._next_edge += 1
        return edge_id

    def add_edge(self, source, target, condition=DEFAULT_CONDITION, label=None):
        missing = [n for n in (source, target) if n not in self.nodes]
        if missing:
            raise DanglingReference(
                f"Cannot connect {source} -> {target}: unknown node {', '.join(missing)}"
            )
        edge = Edge(
            id=self._allocate_edge_id(),
            source=source,
            target=target,
            condition=condition,
            label=label or None,
        )
        self.edges[edge.id] = edge
        return edge

    def get_edge(self, edge_id):
        try:
            return self.edges[edge_id]
        except KeyError:
            raise NotFound(f"Connection {edge_id} not found") from None

    def update_edge(self, edge_id, condition=None, label=None):
        """Change the routing condition and/or caption. An empty label clears it."""
        edge = self.get_edge(edge_id)
        if condition is not None:
            edge.condition = normalize_condition(condition)
        if label is not None:
            edge.label = label or None
        return edge

    def delete_edge(self, edge_id):
        edge = self.get_edge(edge_id)
        del self.edges[edge_id]
        return edge

    def outgoing(self, node_id):
        return [e for e in self.edges.values() if e.source == node_id]

    # ── Checks ────────────────────────────────────────────────

    def validate(self):
        starts = [n.id for n in self.nodes.values() if n.is_start]
        if len(starts) > 1:
            raise GraphValidationError(
                f"Only one start node is allowed, found {len(starts)}: {', '.join(starts)}"
            )
        for edge in self.edges.values():
            if edge.source not in self.nodes or edge.target not in self.nodes:
                raise DanglingReference(
                    f"Connection {edge.id} references a missing node"
                )

    def reachable_from(self, node_id):
        seen = {node_id}
        queue = deque([node_id])
        while queue:
            for edge in self.outgoing(queue.popleft()):
                if edge.target not in seen:
                    seen.add(edge.target)
                    queue.append(edge.target)
        return seen

    def warnings(self):
        """Human-readable hints about flows that will stall or never run."""
        if not self.nodes:
            return []

        issues = []
        for node in self.nodes.values():
            out = self.outgoing(node.id)
            if node.kind is not NodeKind.END and not out:
                issues.append(
                    f"{node.kind.value} node '{node.label}' has no outgoing connections and may be a dead end."
                )
            routed = node.kind in (NodeKind.USER_INPUT, NodeKind.BRANCH)
            if routed and out and not any(e.is_default for e in out):
                issues.append(
                    f"{node.kind.value} node '{node.label}' has no '+' fallback connection."
                )

        reachable = self.reachable_from(self.start_node().id)
        for node in self.nodes.values():
            if node.id not in reachable:
                issues.append(f"Node '{node.label}' is not reachable from the start node.")
        return issues
