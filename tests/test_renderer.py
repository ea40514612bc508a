"""Tests for frame rendering and PNG export."""

import io

import pytest
from PIL import Image

from flowcharter.backend.renderer import (
    PillowContext,
    Renderer,
    export_bounds,
    export_image,
    export_png,
    wrap_text,
)
from flowcharter.core.models import Camera, FlowchartSnapshot, Node


def _measure(text):
    # Ten units per character
    return len(text) * 10


class TestWrapText:
    def test_empty_text(self):
        assert wrap_text("", 100, _measure) == [""]

    def test_fits_on_one_line(self):
        assert wrap_text("Start here", 200, _measure) == ["Start here"]

    def test_wraps_on_spaces(self):
        assert wrap_text("one two three four", 101, _measure) == ["one two", "three four"]

    def test_line_must_be_strictly_narrower(self):
        # "three four" measures exactly 100
        assert wrap_text("one two three four", 100, _measure) == ["one two", "three", "four"]

    def test_long_word_keeps_its_own_line(self):
        assert wrap_text("a supercalifragilistic b", 50, _measure) == ["a", "supercalifragilistic", "b"]


class TestPillowContext:
    def test_applies_camera(self):
        image = Image.new("RGB", (100, 100), "white")
        ctx = PillowContext(image, Camera(scale=2, offset_x=-10, offset_y=-10))
        ctx.fill = "#000000"
        ctx.stroke = None
        # Canvas (10..20) maps to device (0..20)
        ctx.rect(10, 10, 10, 10)
        assert image.getpixel((5, 5)) == (0, 0, 0)
        assert image.getpixel((30, 30)) == (255, 255, 255)

    def test_dashed_line_has_gaps(self):
        image = Image.new("RGB", (40, 5), "white")
        ctx = PillowContext(image)
        ctx.stroke = "#000000"
        ctx.line(0, 2, 40, 2, dash=(5, 3))
        assert image.getpixel((2, 2)) == (0, 0, 0)
        assert image.getpixel((6, 2)) == (255, 255, 255)
        assert image.getpixel((10, 2)) == (0, 0, 0)

    def test_text_width_is_in_canvas_units(self):
        image = Image.new("RGB", (10, 10))
        plain = PillowContext(image).text_width("Hello")
        zoomed = PillowContext(image, Camera(scale=2)).text_width("Hello")
        assert plain > 0
        assert zoomed == pytest.approx(plain, rel=0.25)
        assert PillowContext(image).text_width("") == 0


class TestRenderFrame:
    def test_frame_size_and_background(self, store, controller):
        image = Renderer(store, controller).render_frame(320, 200)
        assert image.size == (320, 200)
        assert image.getpixel((3, 3)) == (255, 255, 255)

    def test_nodes_are_filled_with_type_colour(self, store, controller):
        store.add_node("process", 100, 100)
        image = Renderer(store, controller).render_frame(300, 300)
        # Off the text, inside the rectangle
        assert image.getpixel((60, 80)) == (0x34, 0x98, 0xdb)

    def test_follows_camera(self, store, controller):
        store.add_node("process", 100, 100)
        controller.camera.offset_x = 100
        image = Renderer(store, controller).render_frame(400, 300)
        assert image.getpixel((160, 80)) == (0x34, 0x98, 0xdb)
        assert image.getpixel((60, 80)) != (0x34, 0x98, 0xdb)

    def test_selected_node_gets_handles(self, store, controller):
        node = store.add_node("process", 100, 100)
        controller.select(node.ref())
        image = Renderer(store, controller).render_frame(300, 300)
        # Handle outline just outside the SE corner (160, 130)
        assert image.getpixel((163, 134)) == (255, 0, 0)

    def test_preview_is_drawn(self, store, controller):
        store.add_node("process", 100, 100)
        controller.set_mode("connect")
        controller.pointer_down(100, 100)
        controller.pointer_move(100, 250)
        assert controller.preview is not None
        image = Renderer(store, controller).render_frame(300, 300)
        column = [image.getpixel((100, y)) for y in range(140, 240)]
        assert (255, 0, 0) in column

    def test_unknown_types_are_skipped(self, store, controller):
        store.load_snapshot(FlowchartSnapshot(nodes=[Node(id="node_1", node_type="cloud", x=50, y=50)], edges=[]))
        image = Renderer(store, controller).render_frame(100, 100)
        assert image.getpixel((50, 50)) == (255, 255, 255)

    def test_png_bytes(self, store, controller):
        data = Renderer(store, controller).render_frame_png(50, 40)
        assert data.startswith(b"\x89PNG")


class TestExport:
    def test_empty_graph_gives_blank_square(self, store):
        image = export_image(store)
        assert image.size == (100, 100)
        assert image.getcolors() == [(100 * 100, (255, 255, 255))]

    def test_size_is_bounding_box_plus_padding(self, store, simple_flow):
        # Nodes span x 50..550 and y 70..130
        assert export_bounds(store) == (0, 20, 600, 180)
        image = export_image(store)
        assert image.size == (600, 160)

    def test_content_is_translated_into_view(self, store):
        store.add_node("process", -1000, -1000)
        image = export_image(store)
        assert image.size == (220, 160)
        assert image.getpixel((60, 60)) == (0x34, 0x98, 0xdb)

    def test_no_selection_chrome(self, store, controller):
        node = store.add_node("process", 0, 0)
        controller.select(node.ref())
        image = export_image(store)
        # Where the SE handle would be
        assert image.getpixel((173, 114)) == (255, 255, 255)

    def test_png_round_trip(self, store, simple_flow):
        data = export_png(store)
        image = Image.open(io.BytesIO(data))
        assert image.format == "PNG"
        assert image.size == (600, 160)

    def test_custom_padding(self, store):
        store.add_node("start", 0, 0)
        assert export_image(store, padding=10).size == (120, 70)
