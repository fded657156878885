"""map trace records back to the absolute path of the file being executed"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from .xtrace import TraceRecord

logger = logging.getLogger(__name__)


class DirectoryHistory:
    """
    append-only log of every PWD and OLDPWD value seen during a run

    a value is only appended when it differs from the current top, so the
    length is bounded by the number of directory changes, not by trace volume
    """

    def __init__(self):
        self.pwd_history: List[str] = []
        self.oldpwd_history: List[str] = []

    def update(self, pwd: str, oldpwd: str) -> bool:
        """record the directories of a trace record; True if pwd_history grew"""
        grew = False
        if pwd and (not self.pwd_history or self.pwd_history[-1] != pwd):
            self.pwd_history.append(pwd)
            grew = True
        if oldpwd and (not self.oldpwd_history or self.oldpwd_history[-1] != oldpwd):
            self.oldpwd_history.append(oldpwd)
        return grew

    def newest_first(self):
        """iterate pwd values from the most recent to the oldest"""
        return reversed(self.pwd_history)


class PathResolver:
    """
    resolve ${BASH_SOURCE[0]} against the history of working directories

    BASH_SOURCE is only absolute when the script was invoked through an
    absolute path. otherwise it is relative to whatever directory was current
    when the file was opened, which may be long gone by the time one of its
    lines runs. scanning every directory ever visited, newest first, recovers
    that directory in the common cases. when several candidates exist the most
    recent one wins.
    """

    def __init__(self, history: Optional[DirectoryHistory] = None):
        self.history = history or DirectoryHistory()
        self.unresolved = 0

    def resolve(self, record: TraceRecord) -> Optional[Tuple[str, int]]:
        """return (absolute path, line) for a record, or None if unresolved"""
        self.history.update(record.pwd, record.oldpwd)

        path = self.find_script(record.source_ref)
        if path is None:
            self.unresolved += 1
            logger.debug(
                "unresolved trace record %s:%d (pwd=%s, dirstack=%s)",
                record.source_ref or "<empty>",
                record.line,
                record.pwd,
                ":".join(record.dirstack),
            )
            return None
        return path, record.line

    def find_script(self, source_ref: str) -> Optional[str]:
        """locate the file named by source_ref, scanning pwd history newest first"""
        if not source_ref:
            return None

        if os.path.isabs(source_ref):
            candidates = [Path(source_ref)]
        else:
            candidates = (Path(pwd) / source_ref for pwd in self.history.newest_first())

        for candidate in candidates:
            # no caching, a newer directory can gain a match at any time
            if candidate.is_file():
                return str(candidate.resolve())

        return None
