"""
Turn-by-turn flow execution.

Running a flow is a pure function of ``(graph, position, input)``: the
runner reads the graph, walks it from the caller's position until it has to
wait for the user or the flow ends, and returns the bot transcript together
with the position the caller must send back on the next turn.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from flowgraph.errors import ConversationEnded, GraphCycleError, NotFound, UnroutableTurn
from flowgraph.graph import NodeKind

logger = logging.getLogger(__name__)

END_OF_FLOW = "__end__"
DEFAULT_MAX_STEPS = 250


class TurnStatus(str, Enum):
    WAITING = "waiting"
    DEAD_END = "dead_end"
    ENDED = "ended"


@dataclass(frozen=True)
class TranscriptEntry:
    sender: str
    text: str

    def to_dict(self):
        return {"from": self.sender, "text": self.text}


@dataclass(frozen=True)
class TurnResult:
    transcript: tuple
    position: Optional[str]
    status: TurnStatus
    visited: tuple = ()

    def to_dict(self):
        return {
            "transcript": [entry.to_dict() for entry in self.transcript],
            "current_node_id": self.position,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class _Halt:
    status: TurnStatus
    position: Optional[str]


@dataclass
class _Turn:
    prior: Optional[str]
    text: str
    pending: bool
    transcript: list = field(default_factory=list)
    visited: list = field(default_factory=list)

    def say(self, text):
        if text and text.strip():
            self.transcript.append(TranscriptEntry("bot", text))


class FlowRunner:
    """
    Executes single turns against a graph it never mutates.

    Each node kind has one handler. A handler returns the id of the next
    node, or a ``_Halt`` when the turn is over.
    """

    def __init__(self, graph, max_steps=DEFAULT_MAX_STEPS, restart_on_end=True):
        self.graph = graph
        self.max_steps = max_steps
        self.restart_on_end = restart_on_end
        self._handlers = {
            NodeKind.GREETING: self._say_and_continue,
            NodeKind.MESSAGE: self._say_and_continue,
            NodeKind.USER_INPUT: self._ask,
            NodeKind.BRANCH: self._branch,
            NodeKind.END: self._finish,
        }

    def is_terminal(self, position):
        if position == END_OF_FLOW:
            return True
        node = self.graph.nodes.get(position) if position is not None else None
        return node is not None and node.kind is NodeKind.END

    def run_turn(self, position=None, user_input=None):
        prior = position
        text = (user_input or "").strip()

        if self.is_terminal(position):
            if not self.restart_on_end:
                raise ConversationEnded("The conversation has already ended", position=prior)
            logger.debug("Position %s is terminal, restarting from the start node", position)
            position, text = None, ""

        if position is None:
            node, resumed = self.graph.start_node(), False
        else:
            if position not in self.graph.nodes:
                raise NotFound(f"Position {position} does not exist in this flow", position=prior)
            node, resumed = self.graph.nodes[position], True

        turn = _Turn(prior=prior, text=text, pending=bool(text))
        steps = 0
        while True:
            steps += 1
            if steps > self.max_steps:
                raise GraphCycleError(
                    f"Turn exceeded {self.max_steps} steps without waiting for input",
                    position=prior,
                )
            if not self._suspends(node, turn):
                if node.id in turn.visited:
                    raise GraphCycleError(
                        f"Node '{node.label}' was reached twice in one turn without waiting for input",
                        position=prior,
                    )
                turn.visited.append(node.id)

            outcome = self._handlers[node.kind](node, turn, resumed)
            if isinstance(outcome, _Halt):
                break
            node, resumed = self.graph.nodes[outcome], False

        logger.debug(
            "Turn from %s with input %r -> %s at %s (%d entries)",
            prior, text, outcome.status.value, outcome.position, len(turn.transcript),
        )
        return TurnResult(
            transcript=tuple(turn.transcript),
            position=outcome.position,
            status=outcome.status,
            visited=tuple(turn.visited),
        )

    @staticmethod
    def _suspends(node, turn):
        if node.kind is NodeKind.END:
            return True
        return node.kind is NodeKind.USER_INPUT and not turn.pending

    # ── Handlers ──────────────────────────────────────────────

    def _say_and_continue(self, node, turn, resumed):
        # A resumed node already spoke on the previous turn.
        if not resumed:
            turn.say(node.content)
        edge = self._follow(node, turn)
        if edge is None:
            return _Halt(TurnStatus.DEAD_END, node.id)
        return edge.target

    def _ask(self, node, turn, resumed):
        if turn.pending:
            turn.pending = False
            return self._route(node, turn).target
        turn.say(node.content)
        return _Halt(TurnStatus.WAITING, node.id)

    def _branch(self, node, turn, resumed):
        return self._route(node, turn).target

    def _finish(self, node, turn, resumed):
        turn.say(node.content)
        return _Halt(TurnStatus.ENDED, END_OF_FLOW)

    # ── Routing ───────────────────────────────────────────────

    def _follow(self, node, turn):
        edges = self.graph.outgoing(node.id)
        if not edges:
            return None
        for edge in edges:
            if edge.is_default:
                return edge
        if len(edges) == 1:
            return edges[0]
        raise UnroutableTurn(
            f"{node.kind.value} node '{node.label}' has several conditional connections and no '+' connection",
            position=turn.prior,
        )

    def _route(self, node, turn):
        edges = self.graph.outgoing(node.id)
        for edge in edges:
            if edge.matches(turn.text):
                return edge
        for edge in edges:
            if edge.is_default:
                return edge
        raise UnroutableTurn(
            f"No connection from '{node.label}' matches {turn.text!r} and there is no '+' fallback",
            position=turn.prior,
        )


def run_turn(graph, position=None, user_input=None, **options):
    return FlowRunner(graph, **options).run_turn(position, user_input)
