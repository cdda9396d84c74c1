class FlowGraphError(Exception):
    """Base class for every error raised by the flow graph core."""

    code = "flow_graph_error"

    def __init__(self, message, position=None):
        super().__init__(message)
        self.message = message
        self.position = position


class NotFound(FlowGraphError, LookupError):
    code = "not_found"


class DanglingReference(FlowGraphError):
    code = "dangling_reference"


class GraphValidationError(FlowGraphError):
    code = "graph_invalid"


class GraphCycleError(FlowGraphError):
    """A turn kept stepping through nodes without ever waiting or ending."""

    code = "graph_cycle"


class UnroutableTurn(FlowGraphError):
    """No outgoing edge matched the input and there was no "+" fallback."""

    code = "unroutable_turn"


class ConversationEnded(FlowGraphError):
    code = "conversation_ended"
