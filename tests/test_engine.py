"""
Tests for the graph builder, nodes and executor.
"""

import pytest
import asyncio
from typing import Any, Dict, List

from stategraph.engine.node import Node
from stategraph.engine.graph import END, ConditionalEdge, Edge, EdgeType, GraphBuilder
from stategraph.engine.executor import (
    ExecutionOptions,
    ExecutionStatus,
    WorkflowExecutor,
    execute_graph,
)
from stategraph.exceptions import (
    CycleDetectedError,
    DuplicateNodeError,
    MissingEntryPointError,
    NodeExecutionError,
    UnknownNodeError,
)


def appender(name: str):
    """Handler that records its own name in state['trail']."""
    def handler(state: Dict[str, Any]) -> Dict[str, Any]:
        return {**state, "trail": state["trail"] + [name]}
    handler.__name__ = name
    return handler


def chain(names: List[str]) -> GraphBuilder:
    builder = GraphBuilder(name="Chain")
    for name in names:
        builder.add_node(name, appender(name))
    for source, target in zip(names, names[1:]):
        builder.add_edge(source, target)
    return builder.set_entry_point(names[0])


# ============================================================
# Node Tests
# ============================================================

class TestNode:
    """Tests for Node."""

    def test_node_validation(self):
        with pytest.raises(ValueError, match="name cannot be empty"):
            Node(name="", handler=lambda s: s)

        with pytest.raises(ValueError, match="must be callable"):
            Node(name="test", handler="not a function")

    @pytest.mark.asyncio
    async def test_sync_node_execution(self):
        n = Node(name="test", handler=lambda s: {**s, "processed": True})
        result = await n.execute({"input": "data"})

        assert result == {"input": "data", "processed": True}

    @pytest.mark.asyncio
    async def test_async_node_execution(self):
        async def async_handler(state):
            await asyncio.sleep(0.01)
            return state + 1

        n = Node(name="async_test", handler=async_handler)
        assert n.is_async is True
        assert await n.execute(1) == 2

    @pytest.mark.asyncio
    async def test_callable_object_handler(self):
        class Doubler:
            async def __call__(self, state):
                return state * 2

        n = Node(name="double", handler=Doubler())
        assert n.is_async is True
        assert await n.execute(21) == 42

    @pytest.mark.asyncio
    async def test_none_result_keeps_state(self):
        n = Node(name="noop", handler=lambda s: None)
        assert await n.execute({"a": 1}) == {"a": 1}

    @pytest.mark.asyncio
    async def test_handler_error_is_wrapped(self):
        def broken(state):
            raise KeyError("missing")

        n = Node(name="broken", handler=broken)
        with pytest.raises(NodeExecutionError) as exc_info:
            await n.execute({})

        assert exc_info.value.node_name == "broken"
        assert isinstance(exc_info.value.cause, KeyError)


# ============================================================
# Graph Builder Tests
# ============================================================

class TestGraphBuilder:
    """Tests for GraphBuilder and WorkflowGraph."""

    def test_duplicate_node_fails_at_add(self):
        builder = GraphBuilder().add_node("a", lambda s: s)

        with pytest.raises(DuplicateNodeError, match="already exists"):
            builder.add_node("a", lambda s: s)

    def test_build_errors_are_value_errors(self):
        builder = GraphBuilder().add_node("a", lambda s: s)

        with pytest.raises(ValueError):
            builder.add_node("a", lambda s: s)

    def test_end_is_reserved(self):
        with pytest.raises(ValueError, match="reserved"):
            GraphBuilder().add_node(END, lambda s: s)

    def test_edge_with_unknown_endpoint(self):
        builder = GraphBuilder().add_node("a", lambda s: s)

        with pytest.raises(UnknownNodeError, match="nonexistent"):
            builder.add_edge("a", "nonexistent")
        with pytest.raises(UnknownNodeError, match="ghost"):
            builder.add_edge("ghost", "a")

    def test_conditional_edge_with_unknown_target(self):
        builder = GraphBuilder().add_node("a", lambda s: s).add_node("b", lambda s: s)

        with pytest.raises(UnknownNodeError, match="nowhere"):
            builder.add_conditional_edge("a", lambda s: "x", {"x": "b", "y": "nowhere"})

    def test_conditional_edge_with_unknown_source(self):
        builder = GraphBuilder().add_node("b", lambda s: s)

        with pytest.raises(UnknownNodeError):
            builder.add_conditional_edge("a", lambda s: "x", {"x": "b"})

    def test_unknown_entry_point_fails_at_set(self):
        builder = GraphBuilder().add_node("a", lambda s: s)

        with pytest.raises(UnknownNodeError):
            builder.set_entry_point("b")

    def test_missing_entry_point(self):
        builder = GraphBuilder().add_node("a", lambda s: s)

        with pytest.raises(MissingEntryPointError):
            builder.build()

    def test_direct_cycle_detected(self):
        builder = chain(["a", "b"]).add_edge("b", "a")

        with pytest.raises(CycleDetectedError) as exc_info:
            builder.build()
        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_cycle_through_conditional_branch(self):
        builder = (
            GraphBuilder()
            .add_node("work", lambda s: s)
            .add_conditional_edge("work", lambda s: "done", {"again": "work", "done": END})
            .set_entry_point("work")
        )

        with pytest.raises(CycleDetectedError):
            builder.build()

    def test_cycle_outside_entry_path_detected(self):
        builder = (
            GraphBuilder()
            .add_node("start", lambda s: s)
            .add_node("x", lambda s: s)
            .add_node("y", lambda s: s)
            .add_edge("x", "y")
            .add_edge("y", "x")
            .set_entry_point("start")
        )

        with pytest.raises(CycleDetectedError):
            builder.build()

    def test_diamond_is_not_a_cycle(self):
        graph = (
            GraphBuilder()
            .add_node("a", lambda s: s)
            .add_node("b", lambda s: s)
            .add_node("c", lambda s: s)
            .add_node("d", lambda s: s)
            .add_conditional_edge("a", lambda s: "left", {"left": "b", "right": "c"})
            .add_edge("b", "d")
            .add_edge("c", "d")
            .set_entry_point("a")
            .build()
        )

        assert set(graph.nodes) == {"a", "b", "c", "d"}

    def test_long_chain_builds_without_recursion(self):
        names = [f"n{i}" for i in range(5000)]
        graph = chain(names).build()

        assert len(graph.nodes) == 5000

    def test_validate_reports_without_raising(self):
        builder = GraphBuilder().add_node("a", lambda s: s).add_node("b", lambda s: s)
        errors = builder.validate()
        assert "Graph must have an entry point" in errors

        builder.set_entry_point("a")
        errors = builder.validate()
        assert errors == ["Unreachable nodes: ['b']"]

    def test_node_metadata_is_read_only(self):
        source = {"owner": "billing"}
        graph = (
            GraphBuilder()
            .add_node("a", lambda s: s, metadata=source)
            .set_entry_point("a")
            .build()
        )
        node = graph.nodes["a"]

        with pytest.raises(TypeError):
            node.metadata["owner"] = "someone else"

        source["owner"] = "changed"
        graph.to_dict()["nodes"]["a"]["metadata"]["owner"] = "changed"
        assert node.metadata == {"owner": "billing"}

    def test_built_graph_is_read_only(self):
        builder = chain(["a", "b"])
        graph = builder.build()

        with pytest.raises(TypeError):
            graph.nodes["c"] = graph.nodes["a"]

        builder.add_node("c", lambda s: s)
        assert "c" not in graph.nodes
        assert graph.edges["a"] == (Edge(source="a", target="b"),)

    def test_transition_kinds(self):
        graph = (
            GraphBuilder()
            .add_node("a", lambda s: s)
            .add_node("b", lambda s: s)
            .add_conditional_edge("a", lambda s: "go", {"go": "b"})
            .set_entry_point("a")
            .build()
        )

        transition = graph.transitions("a")[0]
        assert isinstance(transition, ConditionalEdge)
        assert transition.kind == EdgeType.CONDITIONAL
        assert graph.transitions("b") == ()

    def test_resolve_next(self):
        graph = (
            GraphBuilder()
            .add_node("check", lambda s: s)
            .add_node("yes", lambda s: s)
            .add_node("no", lambda s: s)
            .add_conditional_edge(
                "check",
                lambda s: "yes" if s.get("value") else s.get("route", "no"),
                {"yes": "yes", "no": "no"},
            )
            .set_entry_point("check")
            .build()
        )

        assert graph.resolve_next("check", {"value": True}) == ("yes", "yes")
        assert graph.resolve_next("check", {"value": False}) == ("no", "no")
        assert graph.resolve_next("check", {"route": "other"}) == (None, "other")
        assert graph.resolve_next("yes", {}) == (None, None)

    def test_reachable_nodes(self):
        graph = chain(["a", "b", "c"]).build()

        assert graph.reachable_nodes() == {"a", "b", "c"}
        assert graph.reachable_nodes("b") == {"b", "c"}

    def test_mermaid_generation(self):
        graph = chain(["a", "b"]).add_edge("b", END).build()
        mermaid = graph.to_mermaid()

        assert "graph TD" in mermaid
        assert "a --> b" in mermaid
        assert f"b --> {END}" in mermaid

    def test_to_dict(self):
        graph = chain(["a", "b"]).build(graph_id="chain-1")
        data = graph.to_dict()

        assert data["graph_id"] == "chain-1"
        assert data["entry_point"] == "a"
        assert data["edges"]["a"] == [{"source": "a", "target": "b", "type": "direct"}]
        assert data["nodes"]["b"]["handler"] == "b"


# ============================================================
# Executor Tests
# ============================================================

class TestExecutor:
    """Tests for WorkflowExecutor."""

    @pytest.mark.asyncio
    async def test_linear_execution(self):
        graph = (
            GraphBuilder()
            .add_node("start", lambda s: {**s, "value": s["value"] + 1})
            .add_node("end", lambda s: {**s, "value": s["value"] * 10})
            .add_edge("start", "end")
            .set_entry_point("start")
            .build()
        )

        result = await WorkflowExecutor().execute(graph, {"value": 1})

        assert result.status == ExecutionStatus.COMPLETED
        assert result.executed_nodes == ["start", "end"]
        assert result.final_state == {"value": 20}
        assert result.error is None

    @pytest.mark.asyncio
    async def test_conditional_routing(self):
        graph = (
            GraphBuilder()
            .add_node("check", lambda s: s)
            .add_node("positive", lambda s: {**s, "sign": "+"})
            .add_node("negative", lambda s: {**s, "sign": "-"})
            .add_conditional_edge(
                "check",
                lambda s: "positive" if s["value"] > 0 else "negative",
                {"positive": "positive", "negative": "negative"},
            )
            .set_entry_point("check")
            .build()
        )

        result = await execute_graph(graph, {"value": 5})
        assert result.executed_nodes == ["check", "positive"]
        assert result.final_state["sign"] == "+"
        assert result.execution_log[0].route_taken == "positive"

        result = await execute_graph(graph, {"value": -5})
        assert result.executed_nodes == ["check", "negative"]
        assert result.final_state["sign"] == "-"

    @pytest.mark.asyncio
    async def test_unmapped_route_completes(self):
        graph = (
            GraphBuilder()
            .add_node("check", lambda s: s)
            .add_node("next", lambda s: s)
            .add_conditional_edge("check", lambda s: "stop", {"go": "next"})
            .set_entry_point("check")
            .build()
        )

        result = await execute_graph(graph, {})

        assert result.status == ExecutionStatus.COMPLETED
        assert result.executed_nodes == ["check"]

    @pytest.mark.asyncio
    async def test_edge_to_end_completes(self):
        graph = chain(["a", "b"]).add_edge("b", END).build()

        result = await execute_graph(graph, {"trail": []})

        assert result.status == ExecutionStatus.COMPLETED
        assert result.final_state["trail"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_node(self):
        def fail(state):
            raise ValueError("Intentional error")

        graph = (
            GraphBuilder()
            .add_node("a", appender("a"))
            .add_node("b", fail)
            .add_node("c", appender("c"))
            .add_edge("a", "b")
            .add_edge("b", "c")
            .set_entry_point("a")
            .build()
        )

        result = await execute_graph(graph, {"trail": []})

        assert result.status == ExecutionStatus.FAILED
        assert result.executed_nodes == ["a", "b"]
        assert result.error.node == result.executed_nodes[-1]
        assert result.error.message == "Intentional error"
        assert result.error.error_type == "ValueError"
        assert result.error.state == {"trail": ["a"]}
        assert result.final_state == {"trail": ["a"]}
        assert result.execution_log[-1].result == "error"

    @pytest.mark.asyncio
    async def test_failing_condition_is_attributed_to_node(self):
        def route(state):
            raise RuntimeError("cannot decide")

        graph = (
            GraphBuilder()
            .add_node("a", lambda s: s + 1)
            .add_node("b", lambda s: s)
            .add_conditional_edge("a", route, {"x": "b"})
            .set_entry_point("a")
            .build()
        )

        result = await execute_graph(graph, 0)

        assert result.status == ExecutionStatus.FAILED
        assert result.error.node == "a"
        assert "cannot decide" in result.error.message
        assert result.final_state == 1

    @pytest.mark.asyncio
    async def test_max_steps_reached(self):
        graph = chain(["n1", "n2", "n3", "n4"]).build()

        result = await execute_graph(graph, {"trail": []}, max_steps=2)

        assert result.status == ExecutionStatus.MAX_STEPS_REACHED
        assert result.executed_nodes == ["n1", "n2"]
        assert result.metadata.step_count == 2
        assert result.final_state["trail"] == ["n1", "n2"]
        assert result.error is None

    @pytest.mark.asyncio
    async def test_max_steps_equal_to_path_length_completes(self):
        graph = chain(["n1", "n2"]).build()

        result = await execute_graph(graph, {"trail": []}, max_steps=2)

        assert result.status == ExecutionStatus.COMPLETED

    def test_invalid_max_steps(self):
        with pytest.raises(ValueError, match="max_steps"):
            ExecutionOptions(max_steps=0)

    @pytest.mark.asyncio
    async def test_start_node(self):
        graph = chain(["n1", "n2", "n3"]).build()

        result = await execute_graph(graph, {"trail": ["n1"]}, start_node="n2")

        assert result.executed_nodes == ["n2", "n3"]
        assert result.final_state["trail"] == ["n1", "n2", "n3"]

    @pytest.mark.asyncio
    async def test_unknown_start_node_fails(self):
        graph = chain(["n1"]).build()

        result = await execute_graph(graph, {"trail": []}, start_node="ghost")

        assert result.status == ExecutionStatus.FAILED
        assert result.executed_nodes == []
        assert result.error.node == "ghost"
        assert "not found" in result.error.message

    @pytest.mark.asyncio
    async def test_async_handlers(self):
        async def slow_add(state):
            await asyncio.sleep(0.01)
            return state + 1

        graph = (
            GraphBuilder()
            .add_node("a", slow_add)
            .add_node("b", slow_add)
            .add_edge("a", "b")
            .set_entry_point("a")
            .build()
        )

        result = await execute_graph(graph, 0)

        assert result.final_state == 2

    @pytest.mark.asyncio
    async def test_metadata_and_log(self):
        graph = chain(["step1", "step2"]).build()

        result = await execute_graph(graph, {"trail": []})

        assert result.metadata.step_count == 2
        assert result.metadata.duration_ms >= 0
        assert result.metadata.completed_at >= result.metadata.started_at
        assert [s.node for s in result.execution_log] == ["step1", "step2"]
        assert [s.next_node for s in result.execution_log] == ["step2", None]
        assert all(s.duration_ms is not None for s in result.execution_log)
        assert result.to_dict()["status"] == "completed"

    @pytest.mark.asyncio
    async def test_step_callbacks(self):
        seen = []

        async def on_step(step, state):
            seen.append((step.node, step.next_node, list(state["trail"])))

        graph = chain(["a", "b"]).build()
        options = ExecutionOptions(on_step=on_step)

        await WorkflowExecutor().execute(graph, {"trail": []}, options)

        assert seen == [("a", "b", ["a"]), ("b", None, ["a", "b"])]

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_run(self):
        def on_step(step, state):
            raise RuntimeError("callback broke")

        graph = chain(["a", "b"]).build()

        result = await execute_graph(graph, {"trail": []}, on_step=on_step)

        assert result.status == ExecutionStatus.COMPLETED
        assert result.executed_nodes == ["a", "b"]

    @pytest.mark.asyncio
    async def test_callback_errors_can_propagate(self):
        def on_step(step, state):
            raise OSError("disk full")

        graph = chain(["a", "b"]).build()
        options = ExecutionOptions(on_step=on_step, raise_callback_errors=True)

        with pytest.raises(OSError, match="disk full"):
            await WorkflowExecutor().execute(graph, {"trail": []}, options)

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self):
        async def add(state):
            await asyncio.sleep(0.01)
            return {**state, "total": state["total"] + state["inc"]}

        graph = (
            GraphBuilder()
            .add_node("first", add)
            .add_node("second", add)
            .add_edge("first", "second")
            .set_entry_point("first")
            .build()
        )

        results = await asyncio.gather(*[
            execute_graph(graph, {"total": 0, "inc": i}) for i in range(5)
        ])

        assert [r.final_state["total"] for r in results] == [0, 2, 4, 6, 8]
        assert len({r.run_id for r in results}) == 5


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
