"""Tests for undo/redo history."""
import pytest

from mediaflow.graph import Edge, GraphStore, HistoryManager


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(store, clock):
    manager = HistoryManager(store, limit=10, coalesce_window_s=0.5, clock=clock)
    yield manager
    manager.close()


class TestUndoRedo:
    def test_n_edits_then_n_undos_restore_snapshot(self, store, history, clock):
        store.add_node("text", node_id="seed")
        history.clear()
        original = store.snapshot()

        store.add_node("image", node_id="img")
        clock.advance(1)
        store.add_node("crop", node_id="crop")
        clock.advance(1)
        store.connect(Edge(source="img", target="crop", target_handle="image_url"))
        clock.advance(1)
        store.patch_node_data("seed", {"text": "hello"})
        clock.advance(1)
        store.remove_node("img")

        for _ in range(5):
            assert history.undo() is True

        assert store.snapshot() == original
        assert history.can_undo() is False

    def test_redo_reapplies(self, store, history):
        store.add_node("text", node_id="t")
        after_add = store.snapshot()

        history.undo()
        assert store.nodes == ()

        assert history.redo() is True
        assert store.snapshot() == after_add

    def test_empty_stacks_are_noops(self, store, history):
        before = store.snapshot()

        assert history.undo() is False
        assert history.redo() is False
        assert store.snapshot() is before

    def test_new_edit_clears_redo(self, store, history, clock):
        store.add_node("text", node_id="a")
        history.undo()
        assert history.can_redo()

        store.add_node("text", node_id="b")

        assert history.can_redo() is False

    def test_undo_restores_structurally_shared_snapshot(self, store, history, clock):
        store.add_node("text", node_id="a")
        clock.advance(1)
        store.add_node("image", node_id="b")
        node_a = store.get_node("a")

        history.undo()

        assert store.get_node("a") is node_a

    def test_restores_are_not_recorded(self, store, history):
        store.add_node("text", node_id="a")
        depth = history.undo_depth

        history.undo()
        history.redo()

        assert history.undo_depth == depth


class TestCoalescing:
    def test_same_field_edits_within_window_coalesce(self, store, history, clock):
        store.add_node("crop", node_id="c")
        clock.advance(1)
        before_drag = store.snapshot()

        for value in (10, 20, 30, 40):
            store.patch_node_data("c", {"x_percent": value})
            clock.advance(0.1)

        assert history.undo_depth == 2
        history.undo()
        assert store.snapshot() == before_drag

    def test_edits_outside_window_are_separate(self, store, history, clock):
        store.add_node("crop", node_id="c")
        clock.advance(1)

        store.patch_node_data("c", {"x_percent": 10})
        clock.advance(1)
        store.patch_node_data("c", {"x_percent": 20})

        assert history.undo_depth == 3

    def test_different_fields_do_not_coalesce(self, store, history, clock):
        store.add_node("crop", node_id="c")
        clock.advance(1)

        store.patch_node_data("c", {"x_percent": 10})
        store.patch_node_data("c", {"y_percent": 10})

        assert history.undo_depth == 3

    def test_moves_coalesce(self, store, history, clock):
        store.add_node("text", node_id="t")
        clock.advance(1)

        for x in range(5):
            store.move_node("t", (x, 0))
            clock.advance(0.05)

        assert history.undo_depth == 2

    def test_redo_entry_never_coalesces(self, store, history, clock):
        store.add_node("crop", node_id="c")
        clock.advance(1)
        store.patch_node_data("c", {"x_percent": 10})
        history.undo()
        history.redo()

        store.patch_node_data("c", {"x_percent": 20})

        assert history.undo_depth == 3


class TestBoundsAndTransients:
    def test_oldest_entries_evicted(self, store, clock):
        history = HistoryManager(store, limit=3, clock=clock)

        for i in range(5):
            store.add_node("text", node_id=f"n{i}")
            clock.advance(1)

        assert history.undo_depth == 3
        while history.undo():
            pass
        assert [n.id for n in store.nodes] == ["n0", "n1"]

    def test_runtime_patches_not_recorded(self, store, history, clock):
        store.add_node("text", node_id="t")
        depth = history.undo_depth

        store.patch_node_data("t", {"isLoading": True})
        store.patch_node_data("t", {"isLoading": False, "output": "hi"})

        assert history.undo_depth == depth

    def test_close_stops_recording(self, store, history):
        history.close()

        store.add_node("text")

        assert history.can_undo() is False

    def test_zero_limit_records_nothing(self, store, clock):
        history = HistoryManager(store, limit=0, clock=clock)

        store.add_node("text", node_id="t")

        assert history.undo_depth == 0
        assert history.can_undo() is False
        assert history.undo() is False

    def test_default_limit_from_settings(self, store, monkeypatch):
        from mediaflow.config import reset_settings

        monkeypatch.setenv("MEDIAFLOW_HISTORY_LIMIT", "2")
        reset_settings()
        history = HistoryManager(store)

        for i in range(4):
            store.add_node("text", node_id=f"n{i}")

        assert history.undo_depth == 2
