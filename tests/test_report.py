"""tests for the report handoff and resultset handling"""

import json

import pytest

from shcov.core import CoverageMap
from shcov.report import (
    ReportHandoff,
    ResultSet,
    ResultSetError,
    combine_lines,
    combine_results,
    print_summary,
    print_summary_json,
    summarize,
)
from shcov.runner import RunOutcome
from shcov.xtrace import DelimiterCollision


@pytest.fixture
def project(tmp_path):
    """a project root with a covered script, an uncovered one and a non-script"""
    root = tmp_path / "project"
    (root / "lib").mkdir(parents=True)
    (root / "main.sh").write_text('x=1\nif [ "$x" = 1 ]; then\n  echo hit\nfi\n')
    (root / "lib" / "unused.sh").write_text("#!/bin/bash\necho never\n")
    (root / "notes.txt").write_text("not a script\n")
    (tmp_path / "outside.sh").write_text("echo outside\n")
    return root.resolve()


def outcome_for(project, abort_reason=None):
    coverage = CoverageMap()
    main = str(project / "main.sh")
    for line in (1, 2, 3):
        coverage.hit(main, line)
    coverage.hit(str(project.parent / "outside.sh"), 1)
    return RunOutcome(exit_status=0, coverage=coverage, abort_reason=abort_reason)


class TestCombine:
    """test line-wise merging"""

    def test_combine_lines(self):
        assert combine_lines([None, 1, 0], [None, 2, None]) == [None, 3, 0]
        assert combine_lines([1], [None, 0, 4]) == [1, 0, 4]
        assert combine_lines([], []) == []

    def test_combine_results(self):
        combined = combine_results(
            [
                {"/a.sh": [1, None], "/b.sh": [0]},
                {"/a.sh": [2, 0]},
            ]
        )
        assert combined == {"/a.sh": [3, 0], "/b.sh": [0]}


class TestReportHandoff:
    """test building report-ready results"""

    def test_result_marks_lines(self, project):
        """executable misses become 0, structural lines None"""
        handoff = ReportHandoff(project, "test", skip_uncovered=True)
        result = handoff.result(outcome_for(project))

        assert result == {str(project / "main.sh"): [1, 1, 1, None]}

    def test_result_adds_uncovered_scripts(self, project):
        handoff = ReportHandoff(project, "test")
        result = handoff.result(outcome_for(project))

        assert str(project / "lib" / "unused.sh") in result
        assert result[str(project / "lib" / "unused.sh")] == [None, 0]
        assert str(project / "notes.txt") not in result

    def test_files_outside_root_dropped(self, project):
        handoff = ReportHandoff(project, "test")
        result = handoff.result(outcome_for(project))

        assert str(project.parent / "outside.sh") not in result

    def test_deleted_files_dropped(self, project):
        outcome = outcome_for(project)
        outcome.coverage.hit(str(project / "tmp.sh"), 1)

        result = ReportHandoff(project, "test", skip_uncovered=True).result(outcome)
        assert str(project / "tmp.sh") not in result

    def test_partial_outcome_still_reported(self, project):
        """an aborted run hands off whatever was collected"""
        outcome = outcome_for(project, DelimiterCollision("line"))
        assert outcome.partial

        result = ReportHandoff(project, "test", skip_uncovered=True).result(outcome)
        assert result[str(project / "main.sh")][:3] == [1, 1, 1]

    def test_write_merges_with_existing(self, project, tmp_path):
        """other commands are kept, the same command is replaced"""
        path = tmp_path / "coverage" / ".resultset.json"
        existing = ResultSet()
        existing.store("other suite", {"/x.sh": [1]}, timestamp=1)
        existing.store("test", {"/stale.sh": [5]}, timestamp=1)
        existing.save(path)

        ReportHandoff(project, "test", skip_uncovered=True).write(
            outcome_for(project), path
        )
        reloaded = ResultSet.load(path)

        assert len(reloaded) == 2
        assert reloaded.result("other suite") == {"/x.sh": [1]}
        assert reloaded.result("test") == {str(project / "main.sh"): [1, 1, 1, None]}

    def test_write_creates_directories(self, project, tmp_path):
        path = tmp_path / "deep" / "dir" / "rs.json"
        ReportHandoff(project, "test").write(outcome_for(project), path)
        assert path.exists()


class TestResultSet:
    """test the SimpleCov-compatible resultset file"""

    def test_missing_file_is_empty(self, tmp_path):
        assert len(ResultSet.load(tmp_path / "absent.json")) == 0

    def test_file_layout(self, tmp_path):
        path = tmp_path / "rs.json"
        rs = ResultSet()
        rs.store("bats", {"/a.sh": [None, 2]}, timestamp=1700000000)
        rs.save(path)

        raw = json.loads(path.read_text())
        assert raw == {
            "bats": {
                "coverage": {"/a.sh": {"lines": [None, 2]}},
                "timestamp": 1700000000,
            }
        }

    def test_legacy_line_arrays(self, tmp_path):
        """bare arrays from older writers are accepted"""
        path = tmp_path / "rs.json"
        path.write_text(json.dumps({"old": {"coverage": {"/a.sh": [1, None]}}}))

        assert ResultSet.load(path).result("old") == {"/a.sh": [1, None]}

    def test_combined(self, tmp_path):
        rs = ResultSet()
        rs.store("one", {"/a.sh": [1, 0]})
        rs.store("two", {"/a.sh": [None, 3], "/b.sh": [0]})

        assert rs.combined() == {"/a.sh": [1, 3], "/b.sh": [0]}

    @pytest.mark.parametrize(
        "content",
        ["not json", "[]", '{"x": 1}', '{"x": {"coverage": []}}'],
    )
    def test_malformed(self, tmp_path, content):
        path = tmp_path / "rs.json"
        path.write_text(content)

        with pytest.raises(ResultSetError):
            ResultSet.load(path)


class TestSummary:
    """test summary statistics and output"""

    def test_summarize(self):
        summary = summarize({"/a.sh": [1, 0, None, 4], "/b.sh": [None]})

        a, b = summary["files"]
        assert a == {
            "path": "/a.sh",
            "relevant": 3,
            "covered": 2,
            "missed": 1,
            "percent": 66.67,
        }
        assert b["relevant"] == 0
        assert b["percent"] == 100.0
        assert summary["total"]["files"] == 2
        assert summary["total"]["covered"] == 2

    def test_print_summary(self, capsys):
        """should not crash and should mention the file"""
        print_summary({"/src/a.sh": [1, 0]}, "unit test", root="/src")
        captured = capsys.readouterr()
        assert "a.sh" in captured.out

    def test_print_summary_empty(self, capsys):
        print_summary({}, "nothing")
        assert "no shell files" in capsys.readouterr().out

    def test_print_summary_json(self, capsys):
        print_summary_json({"/a.sh": [1, 0]})
        data = json.loads(capsys.readouterr().out)
        assert data["total"]["percent"] == 50.0
