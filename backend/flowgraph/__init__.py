from flowgraph.buffer import EditBuffer
from flowgraph.codec import decode, decode_canvas, encode
from flowgraph.engine import END_OF_FLOW, FlowRunner, TranscriptEntry, TurnResult, TurnStatus, run_turn
from flowgraph.errors import (
    ConversationEnded,
    DanglingReference,
    FlowGraphError,
    GraphCycleError,
    GraphValidationError,
    NotFound,
    UnroutableTurn,
)
from flowgraph.graph import DEFAULT_CONDITION, Edge, Graph, Node, NodeKind, Position
