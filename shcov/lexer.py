"""decide which lines of a shell script can ever show up in a trace"""

import os
import re
from pathlib import Path
from typing import Iterator, List, Set, Union

# lines made of nothing but one of these never produce an xtrace record
IGNORE_IS = {
    "esac",
    "if",
    "then",
    "else",
    "elif",
    "fi",
    "while",
    "until",
    "do",
    "done",
    "{",
    "}",
    "(",
    ")",
    ";;",
}
IGNORE_START_WITH = ("#",)
SHELL_SUFFIXES = {".sh", ".bash"}

_FUNCTION_HEADER = re.compile(
    r"^(function\s+[\w.:-]+(\s*\(\s*\))?|[\w.:-]+\s*\(\s*\))\s*\{?\s*$"
)
_HEREDOC = re.compile(r"(?<!<)<<(?!<)(-?)\s*(['\"]?)([A-Za-z_][\w-]*)\2")
_SHEBANG = re.compile(r"^#!.*\b(ba)?sh\b")


class Lexer:
    """classify the lines of one script as relevant (executable) or not"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        with open(self.path, "r", encoding="utf-8", errors="replace") as f:
            self.lines: List[str] = f.read().splitlines()

    def __len__(self) -> int:
        return len(self.lines)

    def irrelevant_lines(self) -> Set[int]:
        """1-based numbers of lines bash never reports in a trace"""
        irrelevant = set()
        heredoc_end = None
        strip_tabs = False
        continued = False

        for lineno, text in enumerate(self.lines, 1):
            if heredoc_end is not None:
                irrelevant.add(lineno)
                body = text.lstrip("\t") if strip_tabs else text
                if body == heredoc_end:
                    heredoc_end = None
                continue

            stripped = text.strip()
            if continued or self._is_ignored(stripped):
                irrelevant.add(lineno)

            continued = stripped.endswith("\\") and not stripped.startswith("#")

            match = _HEREDOC.search(stripped)
            if match and not stripped.startswith("#"):
                strip_tabs = bool(match.group(1))
                heredoc_end = match.group(3)

        return irrelevant

    def relevant_lines(self) -> List[int]:
        irrelevant = self.irrelevant_lines()
        return [n for n in range(1, len(self.lines) + 1) if n not in irrelevant]

    @staticmethod
    def _is_ignored(stripped: str) -> bool:
        if not stripped:
            return True
        if stripped.startswith(IGNORE_START_WITH):
            return True
        if stripped in IGNORE_IS:
            return True
        return bool(_FUNCTION_HEADER.match(stripped))


def is_shell_script(path: Union[str, Path]) -> bool:
    """True for .sh/.bash files and files with an sh or bash shebang"""
    path = Path(path)
    if path.suffix in SHELL_SUFFIXES:
        return True
    try:
        with open(path, "rb") as f:
            first = f.readline(256)
    except OSError:
        return False
    return bool(_SHEBANG.match(first.decode("utf-8", errors="replace")))


def find_shell_scripts(root: Union[str, Path]) -> Iterator[Path]:
    """walk root (skipping hidden directories) and yield shell scripts"""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for name in sorted(filenames):
            candidate = Path(dirpath) / name
            if candidate.is_file() and is_shell_script(candidate):
                yield candidate.resolve()
