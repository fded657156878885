"""run options and their defaults"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from .report import DEFAULT_RESULTSET

DEFAULT_BASH_PATH = "/bin/bash"

# environment variables consulted by the command line
ENV_ROOT = "SHCOV_ROOT"
ENV_COMMAND_NAME = "SHCOV_COMMAND_NAME"
ENV_BASH_PATH = "SHCOV_BASH_PATH"
ENV_OUTPUT = "SHCOV_OUTPUT"


def first_nonempty(*values) -> Optional[str]:
    return next((v for v in values if v is not None and str(v) != ""), None)


@dataclass
class Options:
    """everything needed to trace one command and hand off its coverage"""

    skip_uncovered: bool = False
    mute: bool = False
    bash_path: str = DEFAULT_BASH_PATH
    root_directory: str = field(default_factory=os.getcwd)
    command: List[str] = field(default_factory=list)
    command_name: Optional[str] = None
    output: Path = DEFAULT_RESULTSET

    def full_command(self) -> List[str]:
        """the command line actually spawned: bash followed by the script"""
        return [self.bash_path, *self.command]

    def resolved_command_name(self) -> str:
        """name the run is stored under in the resultset"""
        return first_nonempty(self.command_name, " ".join(self.full_command()))


def configure_logging(verbose: bool = False):
    """route library logging through rich, DEBUG when verbose"""
    level = logging.DEBUG if verbose else logging.WARNING
    root_logger = logging.getLogger("shcov")
    root_logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root_logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True), show_path=False, show_time=False
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root_logger.addHandler(handler)
    for handler in root_logger.handlers:
        handler.setLevel(level)
