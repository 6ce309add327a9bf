"""Tests for the on-disk history log and replay from it."""

import io

import pytest

from gridedit import (
    ChangeLoadError,
    History,
    HistoryError,
    HistoryLog,
    MassRowColumnChange,
    Project,
    Row,
    columns_from_names,
)


EMPTY_RECORD = "newColumnCount=0\noldColumnCount=0\nnewRowCount=0\noldRowCount=0\n/ec/\n"


def _grid(name, *values):
    return MassRowColumnChange(columns_from_names([name]), [Row.of(v) for v in values])


@pytest.fixture
def log(tmp_path):
    return HistoryLog(tmp_path / "logs" / "p1.history", fsync=False)


@pytest.fixture
def logged_history(project, log):
    return History(project, log)


def _recover(log):
    return History.recover(Project("p1"), log)


def _drop_last_lines(log, count):
    lines = log.path.read_text(encoding="utf-8").splitlines(keepends=True)
    log.path.write_text("".join(lines[:-count]), encoding="utf-8")


class TestHistoryLog:

    def test_missing_log_reads_empty(self, log):
        assert not log.exists()
        assert log.read() == ([], 0)

    def test_records_are_appended(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.undo()
        text = log.path.read_text(encoding="utf-8")

        assert text.startswith("entry=")
        assert "change=MassRowColumnChange\n" in text
        assert "/ec/\n" in text
        assert text.endswith("position=0\n")

    def test_read_returns_entries_and_position(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))
        logged_history.undo()

        entries, position = log.read()
        assert [(e.id, e.description) for e in entries] == [(1, "First"), (2, "Second")]
        assert position == 1
        assert entries[0].time == logged_history.past[0].time

    def test_entry_after_undo_drops_undone_records(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))
        logged_history.undo()
        logged_history.add_entry("Third", _grid("c", 3))

        entries, position = log.read()
        assert [e.description for e in entries] == ["First", "Third"]
        assert position == 3

    def test_position_for_unknown_entry(self, log):
        log.append_position(5)
        with pytest.raises(HistoryError):
            log.read()

    def test_unexpected_record(self, log):
        log.path.parent.mkdir(parents=True)
        log.path.write_text("bogus=1\n", encoding="utf-8")
        with pytest.raises(ChangeLoadError, match="Unexpected history record"):
            log.read()

    def test_options_are_applied_to_rows(self, tmp_path, project):
        from gridedit import Cell, Judgment, Recon

        log = HistoryLog(tmp_path / "p.history", fsync=False, options={"omit_recons": True})
        row = Row(cells=(Cell("Paris", Recon(1, Judgment.MATCHED, "Q90")),))
        History(project, log).add_entry("Recon", MassRowColumnChange(columns_from_names(["c"]), [row]))

        entries, _ = log.read()
        assert entries[0].change.new_rows[0].cells[0] == Cell("Paris")


class TestRecover:

    def test_replay_reproduces_final_grid(self, logged_history, project, log):
        logged_history.add_entry("First", _grid("a", 1, 2))
        logged_history.add_entry("Second", _grid("b", 3))
        logged_history.undo()
        logged_history.add_entry("Third", _grid("c", 4, 5, 6))
        logged_history.add_entry("Fourth", _grid("d"))
        logged_history.undo()

        recovered = _recover(log)
        assert recovered.project.snapshot() == project.snapshot()
        assert [e.id for e in recovered.past] == [e.id for e in logged_history.past]
        assert [e.id for e in recovered.future] == [e.id for e in logged_history.future]

    def test_recovered_history_can_undo_to_original(self, logged_history, project, log):
        original = project.snapshot()
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))

        recovered = _recover(log)
        recovered.undo_redo(0)
        assert recovered.project.snapshot() == original

    def test_recovered_history_keeps_logging(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        recovered = _recover(log)
        recovered.add_entry("Second", _grid("b", 2))

        again = _recover(log)
        assert [e.id for e in again.past] == [1, 2]
        assert again.project.column_names() == ["b"]


class TestInitialGrid:

    def test_starting_grid_survives_undo_of_everything(self, logged_history, project, log):
        logged_history.record_initial_grid()
        original = project.snapshot()
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.undo()

        recovered = _recover(log)
        assert recovered.project.snapshot() == original
        assert [e.id for e in recovered.future] == [1]

    def test_starting_grid_without_entries(self, logged_history, project, log):
        logged_history.record_initial_grid()

        contents = log.read_contents()
        assert contents.entries == []
        assert contents.initial.new_rows == tuple(project.rows)
        assert _recover(log).project.snapshot() == project.snapshot()

    def test_compaction_keeps_starting_grid(self, logged_history, project, log):
        logged_history.record_initial_grid()
        original = project.snapshot()
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.undo()
        logged_history.compact()

        assert log.path.read_text(encoding="utf-8").startswith("initial=\n")
        assert _recover(log).project.snapshot() == original

    def test_starting_grid_after_entry_is_rejected(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        log.append_initial(MassRowColumnChange.load(io.StringIO(EMPTY_RECORD)))
        with pytest.raises(ChangeLoadError, match="must come first"):
            log.read()


class TestCompact:

    def test_compact_keeps_state(self, logged_history, project, log):
        for i in range(3):
            logged_history.add_entry(str(i), _grid(f"c{i}", i))
        logged_history.undo()
        logged_history.undo()
        logged_history.redo()
        size_before = log.path.stat().st_size

        logged_history.compact()
        assert log.path.stat().st_size < size_before
        assert log.path.read_text(encoding="utf-8").count("position=") == 1
        assert not log.path.with_name("p1.history.tmp").exists()

        recovered = _recover(log)
        assert recovered.project.snapshot() == project.snapshot()
        assert [e.id for e in recovered.future] == [3]


class TestTruncatedTail:

    def _crash_mid_write(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))
        text = log.path.read_text(encoding="utf-8")
        cut = text.rindex("/ec/")
        log.path.write_text(text[:cut], encoding="utf-8")

    def test_truncated_tail_fails_by_default(self, logged_history, log):
        self._crash_mid_write(logged_history, log)
        with pytest.raises(ChangeLoadError):
            log.read()

    def test_truncated_tail_can_be_discarded(self, logged_history, log, caplog):
        self._crash_mid_write(logged_history, log)
        entries, position = log.read(tolerate_truncated_tail=True)
        assert [e.description for e in entries] == ["First"]
        assert position == 1
        assert "incomplete record" in caplog.text

    def test_discarded_tail_is_cut_from_the_file(self, logged_history, log):
        self._crash_mid_write(logged_history, log)
        log.read(tolerate_truncated_tail=True)

        text = log.path.read_text(encoding="utf-8")
        assert text.endswith("/ec/\n")
        assert text.count("entry=") == 1
        entries, _ = log.read()
        assert [e.description for e in entries] == ["First"]

    @pytest.mark.parametrize("dropped_lines", [1, 2, 3, 5])
    def test_appending_after_recovery(self, logged_history, log, dropped_lines):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))
        _drop_last_lines(log, dropped_lines)

        recovered = History.recover(Project("p1"), log, tolerate_truncated_tail=True)
        assert [e.description for e in recovered.past] == ["First"]
        recovered.add_entry("Third", _grid("c", 3))

        again = _recover(log)
        assert [(e.id, e.description) for e in again.past] == [(1, "First"), (2, "Third")]
        assert again.project.column_names() == ["c"]

    def test_unterminated_last_line(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))
        with open(log.path, "a", encoding="utf-8") as f:
            f.write("position=1")

        with pytest.raises(ChangeLoadError, match="line terminator"):
            log.read()
        entries, position = log.read(tolerate_truncated_tail=True)
        assert position == 2
        assert log.path.read_text(encoding="utf-8").endswith("/ec/\n")

    def test_corruption_before_tail_is_not_tolerated(self, logged_history, log):
        logged_history.add_entry("First", _grid("a", 1))
        logged_history.add_entry("Second", _grid("b", 2))
        text = log.path.read_text(encoding="utf-8")
        log.path.write_text(text.replace("newRowCount=1", "newRowCount=x", 1), encoding="utf-8")
        with pytest.raises(ChangeLoadError):
            log.read(tolerate_truncated_tail=True)
