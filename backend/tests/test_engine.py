"""Tests for the turn runner."""
import pytest

from flowgraph import (
    END_OF_FLOW,
    ConversationEnded,
    FlowRunner,
    GraphCycleError,
    GraphValidationError,
    NodeKind,
    NotFound,
    TurnStatus,
    UnroutableTurn,
    encode,
    run_turn,
)


def bot_lines(result):
    assert all(entry.sender == "bot" for entry in result.transcript)
    return [entry.text for entry in result.transcript]


def test_greeting_then_end(graph):
    a = graph.add_node(NodeKind.GREETING, "Hi")
    b = graph.add_node(NodeKind.END, "Bye")
    graph.add_edge(a.id, b.id)

    result = run_turn(graph, None)

    assert result.to_dict() == {
        "transcript": [{"from": "bot", "text": "Hi"}, {"from": "bot", "text": "Bye"}],
        "current_node_id": END_OF_FLOW,
        "status": "ended",
    }


def test_user_input_prompt_then_route(order_graph):
    a, b, _ = order_graph.nodes

    first = run_turn(order_graph, None)
    assert bot_lines(first) == ["Pick order/refund"]
    assert first.position == a
    assert first.status is TurnStatus.WAITING

    second = run_turn(order_graph, first.position, "order")
    assert bot_lines(second) == ["OK order"]
    assert second.position == b
    assert second.status is TurnStatus.DEAD_END


def test_routing_is_case_insensitive(order_graph):
    a, _, c = order_graph.nodes

    result = run_turn(order_graph, a, "  REFUND ")

    assert bot_lines(result) == ["OK refund"]
    assert result.position == c


def test_unroutable_input_keeps_position(order_graph):
    a = next(iter(order_graph.nodes))
    before = encode(order_graph)

    with pytest.raises(UnroutableTurn) as excinfo:
        run_turn(order_graph, a, "unknown")

    assert excinfo.value.position == a
    assert encode(order_graph) == before


def test_user_input_falls_back_to_plus_edge(order_graph):
    a = next(iter(order_graph.nodes))
    other = order_graph.add_node(NodeKind.MESSAGE, "Sorry, try again later")
    order_graph.add_edge(a, other.id)

    result = run_turn(order_graph, a, "unknown")

    assert bot_lines(result) == ["Sorry, try again later"]


def test_branch_falls_back_to_plus_edge(graph):
    ask = graph.add_node(NodeKind.USER_INPUT, "Anything else?")
    branch = graph.add_node(NodeKind.BRANCH)
    special = graph.add_node(NodeKind.END, "Special")
    default = graph.add_node(NodeKind.END, "Default")
    graph.add_edge(ask.id, branch.id)
    graph.add_edge(branch.id, special.id, "abc")
    graph.add_edge(branch.id, default.id)

    assert bot_lines(run_turn(graph, ask.id, "xyz")) == ["Default"]
    assert bot_lines(run_turn(graph, ask.id, "ABC")) == ["Special"]


def test_branch_only_plus_edge(graph):
    ask = graph.add_node(NodeKind.USER_INPUT, "Say something")
    branch = graph.add_node(NodeKind.BRANCH)
    target = graph.add_node(NodeKind.MESSAGE, "Routed")
    graph.add_edge(ask.id, branch.id)
    graph.add_edge(branch.id, target.id)

    result = run_turn(graph, ask.id, "xyz")

    assert bot_lines(result) == ["Routed"]
    assert result.position == target.id


def test_branch_without_match_or_default_is_unroutable(graph):
    greeting = graph.add_node(NodeKind.GREETING, "Hello")
    branch = graph.add_node(NodeKind.BRANCH)
    target = graph.add_node(NodeKind.END)
    graph.add_edge(greeting.id, branch.id)
    graph.add_edge(branch.id, target.id, "yes")

    with pytest.raises(UnroutableTurn) as excinfo:
        run_turn(graph, None)

    assert excinfo.value.position is None


def test_input_is_consumed_once_per_turn(graph):
    first = graph.add_node(NodeKind.USER_INPUT, "Order or refund?")
    info = graph.add_node(NodeKind.MESSAGE, "Orders ship in two days.")
    second = graph.add_node(NodeKind.USER_INPUT, "Anything else?")
    graph.add_edge(first.id, info.id, "order")
    graph.add_edge(info.id, second.id)
    graph.add_edge(second.id, first.id, "order")

    result = run_turn(graph, first.id, "order")

    assert bot_lines(result) == ["Orders ship in two days.", "Anything else?"]
    assert result.position == second.id


def test_empty_input_reprompts(order_graph):
    a = next(iter(order_graph.nodes))

    result = run_turn(order_graph, a, "   ")

    assert bot_lines(result) == ["Pick order/refund"]
    assert result.position == a


def test_self_loop_on_user_input_suspends(graph):
    ask = graph.add_node(NodeKind.USER_INPUT, "Say 'again'")
    graph.add_edge(ask.id, ask.id, "again")

    result = run_turn(graph, ask.id, "again")

    assert bot_lines(result) == ["Say 'again'"]
    assert result.position == ask.id


def test_resumed_message_does_not_repeat(graph):
    a = graph.add_node(NodeKind.GREETING, "Hi")
    b = graph.add_node(NodeKind.MESSAGE, "Info")

    graph.add_edge(a.id, b.id)
    stuck = run_turn(graph, None)
    assert stuck.position == b.id
    assert stuck.status is TurnStatus.DEAD_END

    again = run_turn(graph, stuck.position, "hello?")
    assert again.transcript == ()
    assert again.position == b.id

    c = graph.add_node(NodeKind.END, "Bye")
    graph.add_edge(b.id, c.id)
    assert bot_lines(run_turn(graph, stuck.position)) == ["Bye"]


def test_message_cycle_detected(graph):
    a = graph.add_node(NodeKind.GREETING, "Hi")
    b = graph.add_node(NodeKind.MESSAGE, "Loop")
    graph.add_edge(a.id, b.id)
    graph.add_edge(b.id, a.id)

    with pytest.raises(GraphCycleError) as excinfo:
        run_turn(graph, None)

    assert excinfo.value.position is None


def test_step_budget_enforced(graph):
    previous = graph.add_node(NodeKind.GREETING, "0")
    for i in range(1, 6):
        node = graph.add_node(NodeKind.MESSAGE, str(i))
        graph.add_edge(previous.id, node.id)
        previous = node

    with pytest.raises(GraphCycleError):
        run_turn(graph, None, max_steps=3)
    assert len(run_turn(graph, None, max_steps=6).transcript) == 6


def test_several_conditional_edges_from_message_is_unroutable(graph):
    a = graph.add_node(NodeKind.MESSAGE, "Hi")
    b = graph.add_node(NodeKind.END)
    c = graph.add_node(NodeKind.END)
    graph.add_edge(a.id, b.id, "x")
    graph.add_edge(a.id, c.id, "y")

    with pytest.raises(UnroutableTurn):
        run_turn(graph, None)


def test_single_labeled_edge_from_message_is_followed(graph):
    a = graph.add_node(NodeKind.MESSAGE, "Hi")
    b = graph.add_node(NodeKind.END, "Bye")
    graph.add_edge(a.id, b.id, "next")

    assert bot_lines(run_turn(graph, None)) == ["Hi", "Bye"]


def test_terminal_position_restarts(graph):
    a = graph.add_node(NodeKind.GREETING, "Hi")
    b = graph.add_node(NodeKind.END, "Bye")
    graph.add_edge(a.id, b.id)

    result = run_turn(graph, END_OF_FLOW, "hello again")

    assert bot_lines(result) == ["Hi", "Bye"]
    assert result.position == END_OF_FLOW


def test_terminal_position_without_restart(graph):
    graph.add_node(NodeKind.END, "Bye")

    with pytest.raises(ConversationEnded) as excinfo:
        FlowRunner(graph, restart_on_end=False).run_turn(END_OF_FLOW, "hi")

    assert excinfo.value.position == END_OF_FLOW


def test_explicit_start_marker_is_used(order_graph):
    greeting = order_graph.add_node(NodeKind.GREETING, "Not me")
    refund = list(order_graph.nodes)[2]
    order_graph.set_start(refund)

    result = run_turn(order_graph, None)

    assert bot_lines(result) == ["OK refund"]
    assert greeting.id not in result.visited


def test_unknown_position(order_graph):
    with pytest.raises(NotFound):
        run_turn(order_graph, "9999", "order")


def test_empty_graph(graph):
    with pytest.raises(GraphValidationError):
        run_turn(graph, None)


def test_blank_content_emits_nothing(graph):
    a = graph.add_node(NodeKind.GREETING, "")
    b = graph.add_node(NodeKind.END, "Bye")
    graph.add_edge(a.id, b.id)

    assert bot_lines(run_turn(graph, None)) == ["Bye"]


def test_turns_are_deterministic(order_graph):
    a = next(iter(order_graph.nodes))
    runner = FlowRunner(order_graph)

    assert runner.run_turn(a, "refund") == runner.run_turn(a, "refund")
    assert run_turn(order_graph, None) == run_turn(order_graph, None)


def test_default_step_budget(app, graph):
    assert FlowRunner(graph).max_steps == 250
    assert app.config["MAX_TURN_STEPS"] == 250
