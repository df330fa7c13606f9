"""Tests for editorbridge.debug_log."""

from editorbridge._types import Direction
from editorbridge.debug_log import DebugSink


class TestDebugSink:
    def test_records_direction_and_project(self):
        sink = DebugSink()
        sink.inbound("/proj", '{"clientRequest": {}}')
        sink.outbound("/proj", '{"serverResponse": {}}')
        lines = sink.lines()
        assert len(lines) == 2
        assert "inbound" in lines[0] and "/proj" in lines[0]
        assert "outbound" in lines[1]

    def test_evicts_oldest_lines_first(self):
        sink = DebugSink(max_lines=3)
        for i in range(5):
            sink.event("/p", f"msg-{i}")
        lines = sink.lines()
        assert len(lines) == 3
        assert "msg-2" in lines[0]
        assert "msg-4" in lines[-1]

    def test_bounded_by_lines_not_entries(self):
        sink = DebugSink(max_lines=4)
        sink.event("/p", "first")
        sink.event("/p", "a\nb\nc")
        assert len(sink) == 4
        sink.event("/p", "last")
        lines = sink.lines()
        assert len(lines) == 4
        assert not any("first" in line for line in lines)
        assert lines[1:] == ["b", "c", lines[-1]]

    def test_default_budget_is_1000(self):
        sink = DebugSink()
        for i in range(1200):
            sink.record(Direction.EVENT, "/p", str(i))
        assert len(sink) == 1000

    def test_flush_writes_mirror(self, tmp_path):
        path = tmp_path / "logs" / "1234.log"
        sink = DebugSink(path=path)
        sink.inbound("/p", "hello")
        sink.close()
        assert "hello" in path.read_text()

    def test_close_without_keeping_file_deletes_mirror(self, tmp_path):
        path = tmp_path / "logs" / "1234.log"
        sink = DebugSink(path=path)
        sink.inbound("/p", "hello")
        sink.flush()
        sink.close(keep_file=False)
        assert not path.exists()

    def test_no_flush_scheduled_after_close(self, tmp_path):
        path = tmp_path / "logs" / "1234.log"
        sink = DebugSink(path=path)
        sink.close(keep_file=False)
        sink.event("/p", "late")
        assert sink._flush_timer is None
        assert "late" in sink.text()
        assert not path.exists()

    def test_fails_open_on_unwritable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        sink = DebugSink(path=blocker / "sub" / "log")
        sink.event("/p", "still fine")
        sink.close()
        assert len(sink) == 1
