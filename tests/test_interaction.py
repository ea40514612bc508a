"""Tests for the interaction controller state machine."""

import pytest
from hypothesis import given, strategies as st

from flowcharter.backend.graph_store import GraphStore
from flowcharter.backend.interaction import (
    ConnectState,
    DeleteState,
    HitKind,
    InteractionController,
    InteractionKind,
    Mode,
    PointerDown,
    SelectState,
    TouchStart,
    Wheel,
)
from flowcharter.core.models import Corner, FlowchartSnapshot, ItemRef, Node, Point


def _click(controller, x, y):
    controller.pointer_down(x, y)
    controller.pointer_up(x, y)


class TestSelectMode:
    def test_pointer_down_on_node_selects_and_drags(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.pointer_down(100, 100)
        assert controller.selection == ItemRef.node(node.id)
        assert controller.interaction == InteractionKind.DRAGGING_NODE

        controller.pointer_move(110, 95)
        controller.pointer_move(130, 90)
        assert (node.x, node.y) == (130, 90)

        controller.pointer_up(130, 90)
        assert controller.interaction == InteractionKind.IDLE
        assert controller.selection == ItemRef.node(node.id)

    def test_drag_respects_zoom(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.camera.scale = 2
        controller.pointer_down(200, 200)
        controller.pointer_move(220, 200)
        assert node.x == pytest.approx(110)

    def test_topmost_node_wins(self, store, controller):
        store.add_node("process", 100, 100)
        top = store.add_node("process", 110, 100)
        controller.pointer_down(105, 100)
        assert controller.selection == ItemRef.node(top.id)

    def test_empty_space_pans_and_clears_selection(self, store, controller):
        store.add_node("process", 100, 100)
        _click(controller, 100, 100)
        controller.pointer_down(500, 500)
        assert controller.selection is None
        assert controller.interaction == InteractionKind.PANNING
        assert controller.cursor == "grabbing"

        controller.pointer_move(520, 490)
        assert controller.camera.offset_x == pytest.approx(20)
        assert controller.camera.offset_y == pytest.approx(-10)

        controller.pointer_up(520, 490)
        assert controller.interaction == InteractionKind.IDLE
        assert controller.cursor == "default"

    def test_pan_keeps_canvas_point_under_pointer(self, store, controller):
        controller.camera.scale = 1.5
        before = controller.camera.to_canvas(300, 300)
        controller.pointer_down(300, 300)
        controller.pointer_move(340, 260)
        after = controller.camera.to_canvas(340, 260)
        assert after == pytest.approx(before)

    def test_edge_click_selects_without_gesture(self, store, controller, simple_flow):
        edge = store.edges[0]
        controller.pointer_down(200, 101)
        assert controller.selection == ItemRef.edge(edge.id)
        assert controller.interaction == InteractionKind.IDLE


class TestResize:
    @pytest.mark.parametrize("corner", list(Corner))
    def test_handle_drag_resizes_from_opposite_corner(self, store, controller, corner):
        node = store.add_node("process", 100, 100)
        _click(controller, 100, 100)
        anchor = node.corner(corner.opposite)
        handle = node.corner(corner)

        controller.pointer_down(*handle)
        assert controller.interaction == InteractionKind.RESIZING_NODE
        controller.pointer_move(handle.x + 30 * corner.x_sign, handle.y + 20 * corner.y_sign)
        controller.pointer_up()

        assert (node.width, node.height) == (150, 80)
        assert node.corner(corner.opposite) == pytest.approx(anchor)

    def test_handles_only_on_selected_node(self, store, controller):
        node = store.add_node("process", 100, 100)
        assert controller.hit_test(*node.corner(Corner.SE)).kind == HitKind.NODE
        controller.select(node.ref())
        hit = controller.hit_test(*node.corner(Corner.SE))
        assert hit.kind == HitKind.RESIZE_HANDLE
        assert hit.corner == Corner.SE

    def test_handle_outside_node_still_hits(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.select(node.ref())
        se = node.corner(Corner.SE)
        hit = controller.hit_test(se.x + 3, se.y + 3)
        assert hit.kind == HitKind.RESIZE_HANDLE

    def test_handle_size_constant_on_screen(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.select(node.ref())
        controller.camera.scale = 4
        se = node.corner(Corner.SE)
        # 4 device pixels at scale 4 is one canvas unit
        assert controller.hit_test(se.x + 0.9, se.y + 0.9).kind == HitKind.RESIZE_HANDLE
        assert controller.hit_test(se.x + 1.5, se.y + 1.5) is None


class TestHitTest:
    def test_edge_within_tolerance(self, store, controller, simple_flow):
        assert controller.hit_test(200, 103).kind == HitKind.EDGE
        assert controller.hit_test(200, 110) is None

    def test_edge_tolerance_scales_with_zoom(self, store, controller, simple_flow):
        controller.camera.scale = 2
        assert controller.hit_test(200, 102).kind == HitKind.EDGE
        assert controller.hit_test(200, 103) is None

    def test_nodes_before_edges(self, store, controller, simple_flow):
        start = simple_flow[0]
        hit = controller.hit_test(start.x + 45, start.y)
        assert hit.kind == HitKind.NODE

    def test_unknown_type_is_not_hit(self, store, controller):
        store.load_snapshot(FlowchartSnapshot(nodes=[Node(id="node_1", node_type="cloud")], edges=[]))
        assert controller.hit_test(0, 0) is None


class TestConnectMode:
    def test_two_clicks_create_edge(self, store, controller):
        a = store.add_node("process", 100, 100)
        b = store.add_node("process", 400, 100)
        controller.set_mode(Mode.CONNECT)

        controller.pointer_down(100, 100)
        assert controller.pending_source == a.id
        assert controller.interaction == InteractionKind.PENDING_CONNECTION
        controller.pointer_up(100, 100)
        assert controller.pending_source == a.id

        controller.pointer_down(400, 100)
        assert store.find_edge(a.id, b.id) is not None
        assert controller.pending_source is None
        assert controller.preview is None

    def test_release_over_other_node_completes(self, store, controller):
        a = store.add_node("process", 100, 100)
        b = store.add_node("process", 400, 100)
        controller.set_mode("connect")
        controller.pointer_down(100, 100)
        controller.pointer_move(400, 100)
        controller.pointer_up(400, 100)
        assert store.find_edge(a.id, b.id) is not None
        assert controller.pending_source is None

    def test_same_node_keeps_pending(self, store, controller):
        a = store.add_node("process", 100, 100)
        controller.set_mode(Mode.CONNECT)
        controller.pointer_down(100, 100)
        controller.pointer_down(100, 100)
        assert controller.pending_source == a.id
        assert store.edges == ()

    def test_empty_space_does_nothing(self, store, controller):
        store.add_node("process", 100, 100)
        controller.set_mode(Mode.CONNECT)
        controller.pointer_down(600, 600)
        assert controller.pending_source is None
        assert controller.camera.offset_x == 0

    def test_duplicate_connection_clears_pending(self, store, controller):
        a = store.add_node("process", 100, 100)
        b = store.add_node("process", 400, 100)
        store.add_edge(a.id, b.id)
        controller.set_mode(Mode.CONNECT)
        controller.pointer_down(100, 100)
        controller.pointer_down(400, 100)
        assert len(store.edges) == 1
        assert controller.pending_source is None

    def test_preview_follows_pointer_and_snaps(self, store, controller):
        a = store.add_node("process", 100, 100)
        b = store.add_node("process", 400, 100)
        controller.set_mode(Mode.CONNECT)
        controller.pointer_down(100, 100)

        controller.pointer_move(250, 300)
        assert controller.preview.end == (250, 300)
        assert controller.preview.snapped is False
        assert controller.cursor == "not-allowed"

        controller.pointer_move(400, 100)
        assert controller.preview.snapped is True
        assert controller.preview.start == pytest.approx((160, 100))
        assert controller.preview.end == pytest.approx((340, 100))
        assert controller.cursor == "crosshair"

    def test_deleting_pending_source_clears_it(self, store, controller):
        a = store.add_node("process", 100, 100)
        controller.set_mode(Mode.CONNECT)
        controller.pointer_down(100, 100)
        store.delete_item(a.ref())
        assert controller.pending_source is None
        assert controller.state == ConnectState()


class TestDeleteMode:
    def test_click_node_deletes_with_edges(self, store, controller, simple_flow):
        start, process, end = simple_flow
        controller.set_mode(Mode.DELETE)
        controller.pointer_down(process.x, process.y)
        assert store.get_node(process.id) is None
        assert store.edges == ()

    def test_click_edge_deletes_edge(self, store, controller, simple_flow):
        controller.set_mode(Mode.DELETE)
        controller.pointer_down(200, 100)
        assert len(store.edges) == 1
        assert len(store.nodes) == 3

    def test_empty_click_is_noop(self, store, controller, simple_flow):
        controller.set_mode(Mode.DELETE)
        controller.pointer_down(900, 900)
        assert len(store.nodes) == 3
        assert isinstance(controller.state, DeleteState)

    def test_hover_cursor(self, store, controller, simple_flow):
        controller.set_mode(Mode.DELETE)
        controller.pointer_move(100, 100)
        assert controller.cursor == "no-drop"
        controller.pointer_move(900, 900)
        assert controller.cursor == "default"


class TestModes:
    def test_mode_switch_clears_selection_and_pending(self, store, controller):
        a = store.add_node("process", 100, 100)
        _click(controller, 100, 100)
        assert controller.selection is not None

        controller.set_mode(Mode.CONNECT)
        assert controller.selection is None
        controller.pointer_down(100, 100)
        assert controller.pending_source == a.id

        controller.set_mode(Mode.SELECT)
        assert controller.pending_source is None
        assert controller.state == SelectState()

    def test_mode_property(self, controller):
        for mode in Mode:
            controller.set_mode(mode)
            assert controller.mode == mode

    def test_invalid_mode(self, controller):
        with pytest.raises(ValueError):
            controller.set_mode("lasso")


class TestSelection:
    def test_deleted_selection_is_cleared(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.select(node.ref())
        store.delete_item(node.ref())
        assert controller.selection is None

    def test_select_missing_entity_clears(self, store, controller):
        controller.select(ItemRef.node("node_42"))
        assert controller.selection is None

    def test_selection_callbacks(self, store, controller):
        node = store.add_node("process", 100, 100)
        seen = []
        controller.on_selection_change(seen.append)
        controller.select(node.ref())
        controller.select(node.ref())
        controller.select(None)
        assert seen == [node.ref(), None]

    def test_delete_selection(self, store, controller, simple_flow):
        controller.select(simple_flow[1].ref())
        assert controller.delete_selection()
        assert len(store.nodes) == 2

    def test_node_deleted_mid_drag(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.pointer_down(100, 100)
        store.delete_item(node.ref())
        assert controller.interaction == InteractionKind.IDLE
        controller.pointer_move(150, 150)


class TestCursor:
    def test_select_mode_hover(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.pointer_move(100, 100)
        assert controller.cursor == "pointer"
        controller.pointer_move(600, 600)
        assert controller.cursor == "grab"

        controller.select(node.ref())
        controller.pointer_move(*node.corner(Corner.SE))
        assert controller.cursor == "nwse-resize"
        controller.pointer_move(*node.corner(Corner.NE))
        assert controller.cursor == "nesw-resize"


class TestView:
    def test_wheel_zoom_keeps_pointer_anchor(self, controller):
        before = controller.camera.to_canvas(320, 240)
        controller.wheel(320, 240, -120)
        assert controller.camera.scale == pytest.approx(1.1)
        assert controller.camera.to_canvas(320, 240) == pytest.approx(before)

        controller.dispatch(Wheel(100, 50, 120))
        assert controller.camera.scale == pytest.approx(0.99)

    @given(st.lists(st.tuples(st.floats(0, 800), st.floats(0, 600), st.sampled_from([-1, 1])),
                    min_size=1, max_size=15))
    def test_wheel_sequences_keep_anchor(self, events):
        controller = InteractionController(GraphStore())
        for x, y, delta in events:
            before = controller.camera.to_canvas(x, y)
            controller.wheel(x, y, delta)
            after = controller.camera.to_canvas(x, y)
            assert after.x == pytest.approx(before.x, abs=1e-6)
            assert after.y == pytest.approx(before.y, abs=1e-6)

    def test_zero_wheel_delta_ignored(self, controller):
        controller.wheel(0, 0, 0)
        assert controller.camera.scale == 1

    def test_toolbar_zoom_and_reset(self, controller):
        controller.zoom_in()
        controller.zoom_in()
        assert controller.camera.scale == pytest.approx(1.21)
        controller.zoom_out()
        assert controller.camera.scale == pytest.approx(1.089)
        controller.camera.offset_x = 40
        controller.reset_view()
        assert controller.camera.scale == 1
        assert controller.camera.offset_x == 0

    def test_drop_converts_device_to_canvas(self, store, controller):
        controller.camera.scale = 2
        controller.camera.offset_x = 10
        node = controller.drop("process", 100, 100)
        assert (node.x, node.y) == pytest.approx((40, 50))
        assert controller.drop("cloud", 0, 0) is None

    def test_reset(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.select(node.ref())
        controller.camera.scale = 3
        controller.set_mode(Mode.CONNECT)
        controller.reset()
        assert controller.mode == Mode.CONNECT
        assert controller.selection is None
        assert controller.camera.scale == 1


class TestTouch:
    def test_single_touch_drags(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.touch_start([(100, 100)])
        controller.touch_move([(140, 100)])
        controller.touch_end()
        assert node.x == 140
        assert controller.interaction == InteractionKind.IDLE

    def test_multi_touch_ignored(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.dispatch(TouchStart((Point(100, 100), Point(300, 300))))
        assert controller.selection is None
        assert controller.interaction == InteractionKind.IDLE

    def test_touch_end_completes_connection_at_last_position(self, store, controller):
        a = store.add_node("process", 100, 100)
        b = store.add_node("process", 400, 100)
        controller.set_mode(Mode.CONNECT)
        controller.touch_start([(100, 100)])
        controller.touch_move([(400, 100)])
        controller.touch_end([])
        assert store.find_edge(a.id, b.id) is not None


def test_dispatch_rejects_unknown_events(controller):
    with pytest.raises(TypeError):
        controller.dispatch(object())


def test_dispatch_pointer_down_event(store, controller):
    node = store.add_node("start", 0, 0)
    controller.dispatch(PointerDown(0, 0))
    assert controller.selection == node.ref()


def test_get_state(store, controller):
    state = controller.get_state()
    assert state["mode"] == "select"
    assert state["interaction"] == "idle"
    assert state["selection"] is None
    assert state["camera"] == {"scale": 1.0, "offset_x": 0.0, "offset_y": 0.0}
