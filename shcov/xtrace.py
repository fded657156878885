"""
bash xtrace wire format: delimiter generation, PS4 construction and parsing.

bash is asked to prefix every traced command with an expanded PS4 that carries
the introspection variables needed to locate the command in its source file.
fields are separated by a random delimiter so that they can be split apart
without any quoting rules:

    +DELIMsource=...DELIMline=...DELIMpwd=...DELIMoldpwd=...DELIMdirstack=...DELIM cmd

the leading "+" is replicated by bash once per level of indirection (subshells,
command substitutions), so it is kept out of the delimiter itself.
"""

import dataclasses
import logging
import secrets
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# --- Constants ---
DEPTH_CHAR = "+"
DIRSTACK_SEPARATOR = "\x1f"
DEFAULT_DELIMITER_BYTES = 16

# (field name, bash expansion) in wire order
FIELDS = (
    ("source", "${BASH_SOURCE[0]-}"),
    ("line", "${LINENO-}"),
    ("pwd", "${PWD-}"),
    ("oldpwd", "${OLDPWD-}"),
    ("dirstack", "${DIRSTACK[@]/#/" + DIRSTACK_SEPARATOR + "}"),
)

# depth prefix + one piece per field + the traced command itself
_EXPECTED_PIECES = len(FIELDS) + 2


class ShcovError(Exception):
    """base class for tracer errors"""

    pass


class ExecutableNotFound(ShcovError):
    """the interpreter or the script to trace is missing or not executable"""

    pass


class DelimiterCollision(ShcovError):
    """the trace delimiter showed up inside traced data"""

    def __init__(self, line: str):
        super().__init__(
            "trace delimiter found inside traced data; "
            "field boundaries can no longer be trusted"
        )
        self.line = line


@dataclasses.dataclass(frozen=True)
class TraceRecord:
    """one parsed xtrace line"""

    source_ref: str  # raw ${BASH_SOURCE[0]}, may be relative or empty
    line: int
    pwd: str
    oldpwd: str
    dirstack: Tuple[str, ...] = ()  # most recent push last


def make_delimiter(nbytes: int = DEFAULT_DELIMITER_BYTES) -> str:
    """random hex token, safe to embed in a prompt string unquoted"""
    return secrets.token_hex(nbytes)


def make_ps4(delimiter: str) -> str:
    """build the PS4 value that makes bash emit one record per command"""
    fields = "".join(f"{delimiter}{name}={expansion}" for name, expansion in FIELDS)
    return f"{DEPTH_CHAR}{fields}{delimiter} "


def _split_dirstack(raw: str) -> Tuple[str, ...]:
    # bash joins the prefixed entries with single spaces; DIRSTACK[0] is the
    # current directory and the most recent push comes right after it
    entries = raw.split(DIRSTACK_SEPARATOR)[1:]
    cleaned = [entry[:-1] if entry.endswith(" ") else entry for entry in entries[:-1]]
    if entries:
        cleaned.append(entries[-1])
    return tuple(reversed(cleaned))


class FieldParser:
    """splits xtrace lines produced by make_ps4(delimiter) into TraceRecords"""

    def __init__(self, delimiter: str):
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        self.delimiter = delimiter

    def parse(self, line: str) -> Optional[TraceRecord]:
        """
        parse one line of trace output

        returns None for lines that are not records (continuation lines of
        multi-line commands, script output sharing the stream). raises
        DelimiterCollision if a record carries the delimiter in its data.
        """
        line = line.rstrip("\r\n")
        pieces = line.split(self.delimiter)
        if len(pieces) < 2:
            return None

        prefix = pieces[0]
        if not prefix or prefix.strip(DEPTH_CHAR):
            return None

        if len(pieces) > _EXPECTED_PIECES:
            logger.error("delimiter collision in trace line: %r", line)
            raise DelimiterCollision(line)
        if len(pieces) < _EXPECTED_PIECES:
            logger.debug("truncated trace record: %r", line)
            return None

        values = {}
        for (name, _), piece in zip(FIELDS, pieces[1:-1]):
            key, sep, value = piece.partition("=")
            if not sep or key != name:
                logger.debug("mislabelled trace field %r in %r", piece, line)
                return None
            values[name] = value

        lineno = values["line"]
        if not lineno.isdigit():
            return None

        return TraceRecord(
            source_ref=values["source"],
            line=int(lineno),
            pwd=values["pwd"],
            oldpwd=values["oldpwd"],
            dirstack=_split_dirstack(values["dirstack"]),
        )
