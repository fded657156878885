"""per-file, per-line hit counts collected from a traced run"""

from collections import Counter
from typing import Dict, Iterator, List, Optional


class CoverageMap:
    """
    mapping of absolute file path to line hit counts

    only positive hits are recorded: a line that is absent was either never
    executed or is not executable, the tracer cannot tell which. counts only
    ever grow during a run.
    """

    def __init__(self):
        self._files: Dict[str, Counter] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __bool__(self) -> bool:
        return bool(self._files)

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._files))

    def _table(self, path: str) -> Counter:
        table = self._files.get(path)
        if table is None:
            table = self._files[path] = Counter()
        return table

    def hit(self, path: str, line: int, count: int = 1):
        """record count executions of line in path"""
        if count < 0:
            raise ValueError("hit counts cannot decrease")
        self._table(path)[line] += count

    def hits(self, path: str, line: int) -> int:
        """number of times a line ran, 0 if never seen"""
        table = self._files.get(path)
        return table[line] if table else 0

    def lines(self, path: str) -> Dict[int, int]:
        """copy of the line -> hits table for a file"""
        return dict(self._files.get(path, {}))

    @property
    def files(self) -> List[str]:
        return sorted(self._files)

    def to_list(self, path: str, length: int = 0) -> List[Optional[int]]:
        """
        ordered hit table for a file; index i holds line i + 1 and None marks
        lines without a recorded hit
        """
        table = self._files.get(path, {})
        size = max([length, *table.keys()]) if table else length
        return [table.get(line) or None for line in range(1, size + 1)]

    def to_dict(self) -> Dict[str, List[Optional[int]]]:
        """export as {path: [count|None, ...]} for report generation"""
        return {path: self.to_list(path) for path in self.files}
