"""run a bash script under xtrace and turn its trace stream into coverage"""

import contextlib
import dataclasses
import logging
import os
import queue
import shlex
import shutil
import signal
import subprocess
import sys
import tempfile
import threading
from typing import BinaryIO, List, Optional, Sequence, Tuple

from .core import CoverageMap
from .resolver import PathResolver
from .xtrace import (
    DelimiterCollision,
    ExecutableNotFound,
    FieldParser,
    make_delimiter,
    make_ps4,
)

logger = logging.getLogger(__name__)

# BASH_XTRACEFD appeared in bash 4.1
XTRACEFD_MIN_VERSION = (4, 1)
FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)
ABORT_JOIN_TIMEOUT = 5.0
_VERSION_COMMAND = "echo -n ${BASH_VERSINFO[0]}.${BASH_VERSINFO[1]}"


@dataclasses.dataclass
class RunOutcome:
    """result of a traced run"""

    exit_status: int
    coverage: CoverageMap
    abort_reason: Optional[Exception] = None

    @property
    def partial(self) -> bool:
        """True if tracing stopped before the script finished"""
        return self.abort_reason is not None


def find_executable(path: str) -> str:
    """resolve an interpreter path, looking bare names up on PATH"""
    if os.sep not in path:
        found = shutil.which(path)
        if found:
            path = found
    if not (os.path.isfile(path) and os.access(path, os.X_OK)):
        raise ExecutableNotFound(f"not an executable file: {path}")
    return path


def bash_version(bash_path: str) -> Tuple[int, int]:
    """(major, minor) version of the given bash executable"""
    output = subprocess.run(
        [find_executable(bash_path), "-c", _VERSION_COMMAND],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
        check=True,
    ).stdout.decode()
    major, _, minor = output.strip().partition(".")
    return int(major), int(minor)


def _decode(raw: bytes) -> str:
    # paths are bytes on posix; surrogateescape keeps them round-trippable
    return raw.decode("utf-8", errors="surrogateescape")


def _write(sink, chunk: bytes):
    """write raw child output to a console stream, text-only streams included"""
    target = getattr(sink, "buffer", None)
    if target is None:
        sink.write(_decode(chunk))
        sink.flush()
    else:
        target.write(chunk)
        target.flush()


def _relay(source: BinaryIO, sink, mute: bool):
    """copy a child stream to the console line by line until EOF"""
    with source:
        for chunk in iter(source.readline, b""):
            if not mute:
                _write(sink, chunk)


def _pump(source: BinaryIO, lines: "queue.Queue[Optional[bytes]]"):
    """feed trace lines into the processing queue, None marks EOF"""
    try:
        with source:
            for raw in iter(source.readline, b""):
                lines.put(raw)
    finally:
        lines.put(None)


def _quote_parity(text: str) -> bool:
    """True if text holds an odd number of xtrace quote characters"""
    # xtrace renders a literal quote inside a quoted word as '\''
    return text.replace("\\'", "").count("'") % 2 == 1


def _exit_status(returncode: int) -> int:
    # mirror the shell: death by signal N exits with 128 + N
    return 128 - returncode if returncode < 0 else returncode


@contextlib.contextmanager
def _forward_signals(process: subprocess.Popen):
    """deliver termination signals received by us to the traced child"""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def forward(signum, frame):
        logger.debug("forwarding signal %d to pid %d", signum, process.pid)
        process.send_signal(signum)

    previous = {sig: signal.signal(sig, forward) for sig in FORWARDED_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


class Runner:
    """
    trace one bash command and collect line coverage for every file it runs

    command is [bash_path, script, *args]. the trace goes through a dedicated
    pipe named by BASH_XTRACEFD when bash supports it; older versions write it
    to stderr, where it is separated from the script's own output by the
    delimiter.
    """

    def __init__(
        self,
        command: Sequence[str],
        mute: bool = False,
        delimiter: Optional[str] = None,
        bash_version: Optional[Tuple[int, int]] = None,
    ):
        if not command:
            raise ValueError("command must name the bash executable")
        self.command = list(command)
        self.mute = mute
        self.delimiter = delimiter or make_delimiter()
        self._bash_version = bash_version

    def _check_command(self) -> List[str]:
        bash = find_executable(self.command[0])
        if len(self.command) > 1:
            script = self.command[1]
            if not os.path.isfile(script):
                raise ExecutableNotFound(f"no such script: {script}")
        return [bash, *self.command[1:]]

    @contextlib.contextmanager
    def _startup_file(self):
        """
        BASH_ENV file that installs PS4

        bash ignores PS4 from the environment when running as root, but every
        non-interactive bash, nested ones included, sources BASH_ENV
        """
        lines = [f"PS4={shlex.quote(make_ps4(self.delimiter))}"]
        original = os.environ.get("BASH_ENV")
        if original:
            lines.append(f". {shlex.quote(original)}")

        fd, path = tempfile.mkstemp(prefix="shcov-", suffix=".bash")
        try:
            with os.fdopen(fd, "w") as f:
                f.write("\n".join(lines) + "\n")
            yield path
        finally:
            os.unlink(path)

    def _environment(self, trace_fd: Optional[int], startup_file: str) -> dict:
        env = dict(os.environ)
        env["PS4"] = make_ps4(self.delimiter)
        env["BASH_ENV"] = startup_file
        shellopts = [opt for opt in env.get("SHELLOPTS", "").split(":") if opt]
        if "xtrace" not in shellopts:
            shellopts.append("xtrace")
        env["SHELLOPTS"] = ":".join(shellopts)
        if trace_fd is None:
            env.pop("BASH_XTRACEFD", None)
        else:
            env["BASH_XTRACEFD"] = str(trace_fd)
        return env

    def run(self) -> RunOutcome:
        """run the command to completion (or abort) and return its outcome"""
        command = self._check_command()
        version = self._bash_version or bash_version(command[0])
        dedicated = version >= XTRACEFD_MIN_VERSION
        logger.debug("bash %d.%d: %s", version[0], version[1], command)
        if not dedicated:
            logger.warning(
                "bash %d.%d has no BASH_XTRACEFD, tracing through stderr", *version
            )

        with self._startup_file() as startup_file:
            if dedicated:
                return self._run_with_trace_fd(command, startup_file)
            return self._run_on_stderr(command, startup_file)

    def _run_with_trace_fd(self, command: List[str], startup_file: str) -> RunOutcome:
        read_fd, write_fd = os.pipe()
        try:
            process = subprocess.Popen(
                command,
                env=self._environment(write_fd, startup_file),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                pass_fds=(write_fd,),
            )
        except BaseException:
            os.close(read_fd)
            raise
        finally:
            # the child owns the write end now; EOF arrives once every
            # process that inherited it has exited
            os.close(write_fd)

        trace_stream = os.fdopen(read_fd, "rb")
        relays = [
            (process.stdout, sys.stdout),
            (process.stderr, sys.stderr),
        ]
        return self._trace(
            process, trace_stream, relays, startup_file, relay_other=False
        )

    def _run_on_stderr(self, command: List[str], startup_file: str) -> RunOutcome:
        process = subprocess.Popen(
            command,
            env=self._environment(None, startup_file),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        relays = [(process.stdout, sys.stdout)]
        return self._trace(
            process, process.stderr, relays, startup_file, relay_other=True
        )

    def _trace(
        self, process, trace_stream, relays, startup_file: str, relay_other: bool
    ) -> RunOutcome:
        """drain every stream of a spawned child and collect its coverage"""
        lines: "queue.Queue[Optional[bytes]]" = queue.Queue()
        pump = threading.Thread(target=_pump, args=(trace_stream, lines), daemon=True)
        relay_threads = [
            threading.Thread(target=_relay, args=(source, sink, self.mute), daemon=True)
            for source, sink in relays
        ]
        for thread in (pump, *relay_threads):
            thread.start()

        with _forward_signals(process):
            try:
                coverage, abort_reason = self._process(lines, startup_file, relay_other)
            except BaseException:
                process.kill()
                process.wait()
                raise
            if abort_reason is not None:
                process.terminate()
            returncode = process.wait()

        for thread in relay_threads:
            thread.join(ABORT_JOIN_TIMEOUT if abort_reason else None)

        return RunOutcome(
            exit_status=_exit_status(returncode),
            coverage=coverage,
            abort_reason=abort_reason,
        )

    def _process(
        self,
        lines: "queue.Queue[Optional[bytes]]",
        startup_file: str,
        relay_other: bool,
    ):
        """parse, resolve and count trace lines in emission order"""
        parser = FieldParser(self.delimiter)
        resolver = PathResolver()
        coverage = CoverageMap()
        # inside a quoted word that spans lines of the traced command
        in_argument = False

        while True:
            raw = lines.get()
            if raw is None:
                break

            line = _decode(raw)
            try:
                record = parser.parse(line)
            except DelimiterCollision as e:
                return coverage, e

            if record is None:
                if in_argument:
                    in_argument ^= _quote_parity(line)
                    continue
                # script output sharing stderr with the trace; the PS4
                # assignment from the startup file is ours, not the script's
                if relay_other and not self.mute and self.delimiter not in line:
                    _write(sys.stderr, raw)
                continue

            in_argument = _quote_parity(line.rsplit(self.delimiter, 1)[1])

            # our own PS4 assignment, traced when bash did import PS4
            if record.source_ref == startup_file:
                continue

            hit = resolver.resolve(record)
            if hit is not None:
                coverage.hit(*hit)

        if resolver.unresolved:
            logger.debug("%d trace records could not be resolved", resolver.unresolved)
        return coverage, None


def run(command: Sequence[str], mute: bool = False) -> RunOutcome:
    """convenience wrapper: trace command with a fresh delimiter"""
    return Runner(command, mute=mute).run()
