"""Tests for order resolution."""
import pytest

from mediaflow.errors import GraphCycleError
from mediaflow.graph import Edge, GraphSnapshot, parse_node
from mediaflow.runtime import CompiledGraph


def snapshot(nodes, edges):
    return GraphSnapshot(
        nodes=tuple(parse_node({"id": node_id, "type": kind}) for node_id, kind in nodes),
        edges=tuple(
            Edge(source=source, target=target, target_handle=handle)
            for source, target, handle in edges
        ),
    )


class TestExecutionOrder:
    def test_sources_come_before_targets(self):
        graph = CompiledGraph(
            snapshot(
                [("llm", "llm"), ("crop", "crop"), ("img", "image"), ("txt", "text")],
                [
                    ("img", "crop", "image_url"),
                    ("crop", "llm", "images"),
                    ("txt", "llm", "user_message"),
                ],
            )
        )

        order = graph.execution_order
        assert order.index("img") < order.index("crop") < order.index("llm")
        assert order.index("txt") < order.index("llm")

    def test_ties_broken_by_insertion_order(self):
        graph = CompiledGraph(
            snapshot([("b", "text"), ("a", "text"), ("c", "image")], [])
        )

        assert graph.execution_order == ["b", "a", "c"]

    def test_order_is_deterministic(self):
        nodes = [("t1", "text"), ("t2", "text"), ("l1", "llm"), ("l2", "llm")]
        edges = [("t1", "l1", "user_message"), ("t2", "l2", "user_message")]

        orders = {tuple(CompiledGraph(snapshot(nodes, edges)).execution_order) for _ in range(5)}

        assert orders == {("t1", "t2", "l1", "l2")}

    def test_upstream_and_inputs(self):
        graph = CompiledGraph(
            snapshot(
                [("img", "image"), ("crop", "crop")],
                [("img", "crop", "image_url")],
            )
        )

        assert graph.upstream("crop") == ["img"]
        assert graph.downstream("img") == ["crop"]
        assert graph.input_edge("crop", "image_url").source == "img"
        assert graph.input_edge("crop", "other") is None


class TestCycles:
    def test_cycle_raises_with_members(self):
        with pytest.raises(GraphCycleError) as exc_info:
            CompiledGraph(
                snapshot(
                    [("t", "text"), ("a", "llm"), ("b", "llm")],
                    [
                        ("t", "a", "user_message"),
                        ("a", "b", "user_message"),
                        ("b", "a", "system_prompt"),
                    ],
                )
            )

        assert exc_info.value.nodes == ["a", "b"]
        assert "a, b" in str(exc_info.value)

    def test_self_loop(self):
        with pytest.raises(GraphCycleError):
            CompiledGraph(snapshot([("a", "llm")], [("a", "a", "user_message")]))
