"""hand coverage over to report generation and render terminal summaries"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core import CoverageMap
from .lexer import Lexer, find_shell_scripts
from .runner import RunOutcome
from .xtrace import ShcovError

logger = logging.getLogger(__name__)

# Constants
DEFAULT_RESULTSET = Path("coverage") / ".resultset.json"
COVERAGE_BAR_WIDTH = 20

# {absolute path: [hits | None, ...]}, index i holds line i + 1
Result = Dict[str, List[Optional[int]]]


class ResultSetError(ShcovError):
    """existing coverage data could not be read"""

    pass


def combine_lines(
    first: List[Optional[int]], second: List[Optional[int]]
) -> List[Optional[int]]:
    """
    merge two line arrays the way SimpleCov does: None only survives when both
    sides are None, counts are added, and the longer array keeps its tail
    """
    combined = []
    for index in range(max(len(first), len(second))):
        a = first[index] if index < len(first) else None
        b = second[index] if index < len(second) else None
        if a is None and b is None:
            combined.append(None)
        else:
            combined.append((a or 0) + (b or 0))
    return combined


def combine_results(results: Iterable[Result]) -> Result:
    """merge several results file by file, line by line"""
    combined: Result = {}
    for result in results:
        for path, lines in result.items():
            if path in combined:
                combined[path] = combine_lines(combined[path], lines)
            else:
                combined[path] = list(lines)
    return dict(sorted(combined.items()))


class ResultSet:
    """
    SimpleCov-compatible .resultset.json: one entry per command name, each
    holding the coverage of that command and when it was recorded
    """

    def __init__(self, entries: Optional[Dict[str, Dict[str, Any]]] = None):
        self.entries = entries or {}

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ResultSet":
        """read a resultset, an absent file reads as empty"""
        path = Path(path)
        if not path.exists():
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise ResultSetError(f"cannot read {path}: {e}")

        if not isinstance(raw, dict):
            raise ResultSetError(f"malformed resultset {path}: expected an object")

        entries = {}
        for name, entry in raw.items():
            if not isinstance(entry, dict) or not isinstance(
                entry.get("coverage"), dict
            ):
                raise ResultSetError(f"malformed resultset entry {name!r} in {path}")
            entries[name] = entry
        return cls(entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def store(self, name: str, result: Result, timestamp: Optional[int] = None):
        """record the result of one command, replacing any previous run of it"""
        self.entries[name] = {
            "coverage": {path: {"lines": lines} for path, lines in result.items()},
            "timestamp": int(time.time()) if timestamp is None else timestamp,
        }

    def result(self, name: str) -> Result:
        coverage = self.entries[name]["coverage"]
        result = {}
        for path, data in coverage.items():
            # older SimpleCov versions stored the bare line array
            result[path] = list(data["lines"] if isinstance(data, dict) else data)
        return result

    def combined(self) -> Result:
        """results of every command merged together"""
        return combine_results(self.result(name) for name in self.entries)

    def save(self, path: Union[str, Path]):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.entries, f, indent=2)
            f.write("\n")


class ReportHandoff:
    """
    turn the coverage map of a finished run into a report-ready result

    files outside root are dropped, uncovered executable lines become 0,
    non-executable lines None. unless skip_uncovered is set, shell scripts
    under root that never ran are added with zero coverage.
    """

    def __init__(
        self,
        root: Union[str, Path],
        command_name: str,
        skip_uncovered: bool = False,
    ):
        self.root = Path(root).resolve()
        self.command_name = command_name
        self.skip_uncovered = skip_uncovered

    def _under_root(self, path: str) -> bool:
        try:
            return os.path.commonpath([str(self.root), path]) == str(self.root)
        except ValueError:
            return False

    def _lines_for(self, path: str, coverage: CoverageMap) -> Optional[List[Optional[int]]]:
        try:
            lexer = Lexer(path)
        except OSError as e:
            logger.debug("skipping unreadable file %s: %s", path, e)
            return None

        lines = coverage.to_list(path, len(lexer))
        for lineno in lexer.relevant_lines():
            if lines[lineno - 1] is None:
                lines[lineno - 1] = 0
        return lines

    def result(self, outcome: RunOutcome) -> Result:
        """per-file line arrays in the shape report generators consume"""
        coverage = outcome.coverage
        result: Result = {}

        for path in coverage:
            if not self._under_root(path) or not os.path.isfile(path):
                logger.debug("not reporting %s: outside %s or gone", path, self.root)
                continue
            lines = self._lines_for(path, coverage)
            if lines is not None:
                result[path] = lines

        if not self.skip_uncovered:
            for script in find_shell_scripts(self.root):
                key = str(script)
                if key in result:
                    continue
                lines = self._lines_for(key, coverage)
                if lines is not None:
                    logger.debug("adding uncovered script %s", key)
                    result[key] = lines

        return dict(sorted(result.items()))

    def write(self, outcome: RunOutcome, path: Union[str, Path] = DEFAULT_RESULTSET) -> Result:
        """merge this run into the resultset at path and return its result"""
        resultset = ResultSet.load(path)
        result = self.result(outcome)
        resultset.store(self.command_name, result)
        resultset.save(path)
        return result


def summarize(result: Result) -> Dict[str, Any]:
    """relevant/covered/missed line counts per file and in total"""
    files = []
    total_relevant = total_covered = 0

    for path, lines in sorted(result.items()):
        relevant = sum(1 for hits in lines if hits is not None)
        covered = sum(1 for hits in lines if hits)
        total_relevant += relevant
        total_covered += covered
        files.append(
            {
                "path": path,
                "relevant": relevant,
                "covered": covered,
                "missed": relevant - covered,
                "percent": _percent(covered, relevant),
            }
        )

    return {
        "files": files,
        "total": {
            "files": len(files),
            "relevant": total_relevant,
            "covered": total_covered,
            "missed": total_relevant - total_covered,
            "percent": _percent(total_covered, total_relevant),
        },
    }


def _percent(covered: int, relevant: int) -> float:
    return round(covered * 100.0 / relevant, 2) if relevant else 100.0


def _display_path(path: str, root: Optional[Path]) -> str:
    if root is not None:
        try:
            return str(Path(path).relative_to(root))
        except ValueError:
            pass
    return path


def print_summary(
    result: Result,
    title: str,
    root: Optional[Union[str, Path]] = None,
    console: Optional[Console] = None,
):
    """display per-file coverage using Rich"""
    console = console or Console()
    root = Path(root).resolve() if root is not None else None
    summary = summarize(result)
    total = summary["total"]

    console.print(
        Panel(
            f"[bold cyan]Shell Coverage[/bold cyan]\n[dim]{title}[/dim]", expand=False
        )
    )

    if not summary["files"]:
        console.print("[yellow]no shell files were covered[/yellow]")
        return

    table = Table(title="[bold]Coverage by File[/bold]")
    table.add_column("File", style="cyan")
    table.add_column("Relevant", justify="right")
    table.add_column("Covered", justify="right", style="green")
    table.add_column("Missed", justify="right", style="red")
    table.add_column("Coverage", justify="right", style="yellow")
    table.add_column("Bar", style="blue")

    for entry in summary["files"]:
        bar = "█" * int(entry["percent"] / 100 * COVERAGE_BAR_WIDTH)
        table.add_row(
            _display_path(entry["path"], root),
            f"{entry['relevant']:,}",
            f"{entry['covered']:,}",
            f"{entry['missed']:,}",
            f"{entry['percent']:.1f}%",
            f"[blue]{bar}[/blue]",
        )

    console.print(table)
    console.print(
        f"[bold]{total['covered']:,} / {total['relevant']:,} lines covered "
        f"({total['percent']:.2f}%) in {total['files']} files[/bold]"
    )


def print_summary_json(result: Result):
    """display per-file coverage as JSON"""
    typer.echo(json.dumps(summarize(result), indent=2))
