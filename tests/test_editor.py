"""Tests for editorbridge.editor."""

from editorbridge._types import Position
from editorbridge.editor import InMemoryEditor, offset_to_position


class TestOffsetToPosition:
    def test_start(self):
        assert offset_to_position("abc\ndef", 0) == Position(0, 0)

    def test_second_line(self):
        assert offset_to_position("abc\ndef", 5) == Position(1, 1)

    def test_clamped(self):
        assert offset_to_position("ab", 99) == Position(0, 2)
        assert offset_to_position("ab", -3) == Position(0, 0)


class TestInMemoryEditor:
    def test_visible_files(self):
        ed = InMemoryEditor("/p")
        ed.open("file:///p/a.py")
        ed.open("file:///p/b.py")
        assert ed.visible_files("/p") == ["file:///p/a.py", "file:///p/b.py"]

    def test_other_project_sees_nothing(self):
        ed = InMemoryEditor("/p")
        ed.open("file:///p/a.py")
        assert ed.visible_files("/q") == []
        assert ed.selection_snapshot("/q") is None
        assert ed.current_selection("/q") is None

    def test_cursor_has_no_selection(self):
        ed = InMemoryEditor("/p")
        ed.open("file:///p/a.py", "hello")
        ed.select("file:///p/a.py", 2)
        snap = ed.selection_snapshot("/p")
        assert not snap.has_selection
        state = ed.current_selection("/p")
        assert state.selections[0].is_empty
        assert state.selections[0].text == ""

    def test_backwards_selection_is_normalized(self):
        ed = InMemoryEditor("/p")
        ed.open("file:///p/a.py", "hello world")
        ed.select("file:///p/a.py", 11, 6)
        state = ed.current_selection("/p")
        assert state.to_dict()["selections"][0]["text"] == "world"

    def test_close_moves_active_buffer(self):
        ed = InMemoryEditor("/p")
        ed.open("file:///p/a.py")
        ed.open("file:///p/b.py")
        ed.close("file:///p/b.py")
        assert ed.selection_snapshot("/p").uri == "file:///p/a.py"
        ed.close("file:///p/a.py")
        assert ed.selection_snapshot("/p") is None
