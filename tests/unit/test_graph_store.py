"""Tests for GraphStore mutations."""
import pytest
from pydantic import ValidationError

from mediaflow.errors import InvalidEdgeError, NodeNotFoundError
from mediaflow.graph import ChangeAction, Connection, Edge, GraphStore, Workflow


@pytest.fixture
def pipeline(store):
    """image -> crop, plus an unconnected llm and text."""
    store.add_node("image", (0, 0), node_id="img")
    store.add_node("crop", (200, 0), node_id="crop")
    store.add_node("text", (0, 200), node_id="txt")
    store.add_node("llm", (200, 200), node_id="llm")
    store.connect(Edge(id="e1", source="img", target="crop", target_handle="image_url"))
    return store


class TestAddNode:
    def test_add_node_uses_kind_defaults(self, store):
        node = store.add_node("crop", (10, 20))

        assert node.kind == "crop"
        assert node.id.startswith("crop_")
        assert node.position.x == 10 and node.position.y == 20
        assert node.data.width_percent == 100
        assert node.data.is_loading is False
        assert store.get_node(node.id) is node

    def test_add_node_with_data(self, store):
        node = store.add_node("llm", node_id="llm-1", data={"prompt": "Describe {input}"})

        assert node.data.prompt == "Describe {input}"
        assert node.data.model == "gemini-2.5-flash"

    def test_duplicate_id_rejected(self, store):
        store.add_node("text", node_id="a")

        with pytest.raises(ValueError):
            store.add_node("text", node_id="a")

        assert len(store.nodes) == 1

    def test_unknown_kind_rejected(self, store):
        with pytest.raises(ValueError, match="Unknown node kind"):
            store.add_node("audio")


class TestConnect:
    def test_connect_requires_existing_endpoints(self, pipeline):
        before = pipeline.snapshot()

        with pytest.raises(InvalidEdgeError):
            pipeline.connect(Edge(source="ghost", target="crop", target_handle="image_url"))
        with pytest.raises(InvalidEdgeError):
            pipeline.connect(Edge(source="img", target="ghost", target_handle="image_url"))

        assert pipeline.snapshot() is before

    def test_connect_rejects_undeclared_target_handle(self, pipeline):
        with pytest.raises(InvalidEdgeError, match="no input handle 'video_url'"):
            pipeline.connect(Edge(source="img", target="crop", target_handle="video_url"))

    def test_connect_rejects_undeclared_source_handle(self, pipeline):
        with pytest.raises(InvalidEdgeError, match="no output handle"):
            pipeline.connect(
                Edge(source="img", source_handle="preview", target="llm", target_handle="images")
            )

    def test_text_node_has_no_inputs(self, pipeline):
        with pytest.raises(InvalidEdgeError):
            pipeline.connect(Edge(source="img", target="txt", target_handle="input"))

    def test_missing_target_handle_resolves_single_input(self, pipeline):
        pipeline.add_node("crop", node_id="crop2")

        edge = pipeline.connect({"source": "img", "target": "crop2"})

        assert edge.target_handle == "image_url"

    def test_missing_target_handle_ambiguous(self, pipeline):
        with pytest.raises(InvalidEdgeError, match="must name a target handle"):
            pipeline.connect({"source": "txt", "target": "llm"})

    def test_one_edge_per_input(self, pipeline):
        pipeline.add_node("image", node_id="img2")

        pipeline.connect(Edge(id="e2", source="img2", target="crop", target_handle="image_url"))

        into_crop = pipeline.incoming_edges("crop")
        assert [e.id for e in into_crop] == ["e2"]
        assert into_crop[0].source == "img2"

    def test_distinct_handles_coexist(self, pipeline):
        pipeline.connect(Edge(source="txt", target="llm", target_handle="user_message"))
        pipeline.connect(Edge(source="crop", target="llm", target_handle="images"))

        handles = sorted(e.target_handle for e in pipeline.incoming_edges("llm"))
        assert handles == ["images", "user_message"]

    def test_editor_keys_kept(self, pipeline):
        edge = pipeline.connect(
            {"source": "txt", "target": "llm", "targetHandle": "system_prompt", "animated": True}
        )

        assert edge.to_wire()["animated"] is True


class TestReconnect:
    def test_reconnect_keeps_id_and_position(self, pipeline):
        pipeline.connect(Edge(id="e2", source="txt", target="llm", target_handle="user_message"))

        moved = pipeline.reconnect("e1", Connection(source="img", target="llm", target_handle="images"))

        assert moved.id == "e1"
        assert [e.id for e in pipeline.edges] == ["e1", "e2"]
        assert pipeline.get_edge("e1").target == "llm"
        assert pipeline.incoming_edges("crop") == []

    def test_reconnect_validates(self, pipeline):
        before = pipeline.snapshot()

        with pytest.raises(InvalidEdgeError):
            pipeline.reconnect("e1", Connection(source="img", target="txt", target_handle="input"))

        assert pipeline.snapshot() is before

    def test_reconnect_replaces_occupant(self, pipeline):
        pipeline.connect(Edge(id="e2", source="txt", target="llm", target_handle="user_message"))

        pipeline.reconnect("e1", Connection(source="crop", target="llm", target_handle="user_message"))

        assert [e.id for e in pipeline.incoming_edges("llm")] == ["e1"]

    def test_reconnect_unknown_edge(self, pipeline):
        with pytest.raises(InvalidEdgeError):
            pipeline.reconnect("nope", Connection(source="img", target="crop"))

    def test_disconnect(self, pipeline):
        pipeline.disconnect("e1")
        pipeline.disconnect("missing")

        assert pipeline.edges == ()


class TestRemoveAndPatch:
    def test_remove_node_cascades(self, pipeline):
        pipeline.connect(Edge(source="crop", target="llm", target_handle="images"))

        pipeline.remove_node("crop")

        assert not pipeline.has_node("crop")
        assert all("crop" not in (e.source, e.target) for e in pipeline.edges)
        assert pipeline.edges == ()

    def test_unknown_node_raises_key_error(self, pipeline):
        with pytest.raises(NodeNotFoundError):
            pipeline.remove_node("ghost")
        with pytest.raises(KeyError):
            pipeline.patch_node_data("ghost", {"text": "x"})

    def test_patch_is_shallow_merge(self, pipeline):
        pipeline.patch_node_data("crop", {"x_percent": 25, "label": "Hero"})
        node = pipeline.patch_node_data("crop", {"width_percent": 40})

        assert node.data.x_percent == 25
        assert node.data.width_percent == 40
        assert node.data.to_wire()["label"] == "Hero"
        assert node.data.height_percent == 100

    def test_patch_accepts_python_and_wire_names(self, pipeline):
        pipeline.patch_node_data("img", {"isLoading": True})
        assert pipeline.get_node("img").data.is_loading is True

        pipeline.patch_node_data("img", {"is_loading": False})
        assert pipeline.get_node("img").data.is_loading is False

    def test_patch_validates_against_kind(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.patch_node_data("crop", {"x_percent": "wide"})

    def test_nodes_are_immutable(self, pipeline):
        node = pipeline.get_node("crop")

        with pytest.raises(ValidationError):
            node.data.x_percent = 50
        with pytest.raises(ValidationError):
            node.id = "other"

    def test_patch_shares_untouched_nodes(self, pipeline):
        before = pipeline.snapshot()

        pipeline.patch_node_data("crop", {"x_percent": 5})

        after = pipeline.snapshot()
        assert after.get_node("img") is before.get_node("img")
        assert after.get_node("crop") is not before.get_node("crop")
        assert after.edges is before.edges

    def test_move_node(self, pipeline):
        pipeline.move_node("txt", {"x": 50, "y": 60})

        assert pipeline.get_node("txt").position.x == 50


class TestNotifications:
    def test_every_mutation_publishes(self, store):
        changes = []
        store.subscribe(changes.append)

        store.add_node("text", node_id="t")
        store.add_node("llm", node_id="l")
        store.connect(Edge(id="e", source="t", target="l", target_handle="user_message"))
        store.patch_node_data("t", {"text": "hi"})
        store.disconnect("e")
        store.remove_node("t")

        assert [c.action for c in changes] == [
            ChangeAction.ADD_NODE,
            ChangeAction.ADD_NODE,
            ChangeAction.CONNECT,
            ChangeAction.PATCH_DATA,
            ChangeAction.DISCONNECT,
            ChangeAction.REMOVE_NODE,
        ]
        assert changes[3].fields == ("text",)
        assert changes[3].previous.get_node("t").data.text == ""

    def test_runtime_patches_are_transient(self, store):
        changes = []
        store.add_node("crop", node_id="c")
        store.subscribe(changes.append)

        store.patch_node_data("c", {"isLoading": True, "error": None, "croppedImageUrl": None})
        store.patch_node_data("c", {"x_percent": 3, "isLoading": False})

        assert changes[0].transient is True
        assert changes[1].transient is False

    def test_unsubscribe(self, store):
        changes = []
        unsubscribe = store.subscribe(changes.append)
        unsubscribe()

        store.add_node("text")

        assert changes == []


def test_store_from_workflow_round_trip():
    workflow = Workflow.model_validate(
        {
            "id": "wf-1",
            "name": "Demo",
            "nodes": [
                {"id": "t", "type": "text", "data": {"text": "hello"}},
                {"id": "l", "kind": "llm", "data": {}},
            ],
            "edges": [{"source": "t", "target": "l", "targetHandle": "user_message"}],
        }
    )

    store = GraphStore(workflow)
    result = store.to_workflow()

    assert store.workflow_id == "wf-1"
    assert result.name == "Demo"
    assert [n.kind for n in result.nodes] == ["text", "llm"]
    assert result.edges[0].target_handle == "user_message"
