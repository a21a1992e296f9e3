"""Invocations of the external CLI tool against the control plane.

A CommandSession is an immutable template: every builder method returns a
new session and never touches the one it was called on, so sessions derived
from a shared template can be run independently. ``run()`` assembles the
argument vector in a fixed order:

1. ``--kubeconfig=<path>`` when a config path is set, otherwise
   ``--token=<token>`` when a token is set
2. ``--namespace=<ns>`` unless the namespace is suppressed
3. the verb and its positional arguments
4. arguments added with ``args()``
"""

from __future__ import annotations

import io
import shlex
import subprocess
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import IO

import click

from .errors import ExecError, ExitError
from .shared.logging import get_logger, redact

logger = get_logger(__name__)

DEFAULT_EXEC_PATH = "oc"
_CHUNK_SIZE = 64 * 1024


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace").strip()


@dataclass(frozen=True)
class CommandSession:
    """One CLI invocation template."""

    exec_path: str = DEFAULT_EXEC_PATH
    admin_config_path: str = ""
    config_path: str = ""
    token: str = ""
    username: str = "admin"
    namespace: str = ""
    namespace_suppressed: bool = False
    verbose_output: bool = False
    verb: str = ""
    global_args: tuple[str, ...] = ()
    command_args: tuple[str, ...] = ()
    stdin: bytes = b""

    # -------------------------------------------------------------------------
    # Builders
    # -------------------------------------------------------------------------

    def as_admin(self) -> CommandSession:
        """Use the admin kubeconfig."""
        return replace(self, config_path=self.admin_config_path)

    def with_config_path(self, config_path: str | Path, username: str) -> CommandSession:
        """Act as ``username`` through the given kubeconfig."""
        return replace(self, config_path=str(config_path), token="", username=username)

    def with_token(self, token: str) -> CommandSession:
        """Authenticate with ``--token`` instead of ``--kubeconfig``."""
        return replace(self, config_path="", token=token)

    def with_namespace(self, namespace: str) -> CommandSession:
        return replace(self, namespace=namespace)

    def without_namespace(self) -> CommandSession:
        """Do not pass ``--namespace``."""
        return replace(self, namespace_suppressed=True)

    def verbose(self) -> CommandSession:
        """Echo each command line before running it."""
        return replace(self, verbose_output=True)

    def run(self, verb: str, *args: str) -> CommandSession:
        """Prepare ``<exec_path> <verb> <args...>`` with the selector flags.

        Returns:
            Independent session with empty input and no command arguments
        """
        selectors: list[str] = []
        if self.config_path:
            selectors.append(f"--kubeconfig={self.config_path}")
        elif self.token:
            selectors.append(f"--token={self.token}")
        if not self.namespace_suppressed:
            selectors.append(f"--namespace={self.namespace}")
        return replace(
            self,
            verb=verb,
            global_args=(*selectors, verb, *args),
            command_args=(),
            stdin=b"",
        )

    def args(self, *args: str) -> CommandSession:
        """Set the additional arguments of the command."""
        return replace(self, command_args=tuple(args))

    def input_string(self, data: str) -> CommandSession:
        """Append ``data`` to the command's standard input."""
        return replace(self, stdin=self.stdin + data.encode("utf-8"))

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @property
    def final_args(self) -> list[str]:
        return [*self.global_args, *self.command_args]

    def command_line(self) -> str:
        return shlex.join([self.exec_path, *self.final_args])

    def _start(self, stdout: int, stderr: int) -> subprocess.Popen:
        if self.verbose_output:
            click.echo(f"DEBUG: {redact(self.command_line())}")
        logger.info("running command", cmd=self.command_line())
        try:
            return subprocess.Popen(
                [self.exec_path, *self.final_args],
                stdin=subprocess.PIPE,
                stdout=stdout,
                stderr=stderr,
            )
        except OSError as e:
            raise ExecError(f"unable to execute {self.exec_path!r}: {e}") from e

    def _communicate(self, stderr: int) -> tuple[str, str]:
        proc = self._start(subprocess.PIPE, stderr)
        out, err = proc.communicate(self.stdin)
        stdout_text, stderr_text = _decode(out), _decode(err)
        if proc.returncode != 0:
            logger.error(
                "command failed",
                cmd=self.command_line(),
                returncode=proc.returncode,
                stdout=stdout_text,
                stderr=stderr_text,
            )
            raise ExitError(self.command_line(), proc.returncode, stdout_text, stderr_text)
        return stdout_text, stderr_text

    def output(self) -> str:
        """Run the command and return stdout and stderr combined.

        Raises:
            ExitError: If the command exits non-zero (stdout and stderr
                both carry the combined output)
            ExecError: If the command cannot be started
        """
        try:
            combined, _ = self._communicate(subprocess.STDOUT)
        except ExitError as e:
            raise ExitError(e.cmd, e.returncode, e.stdout, e.stdout) from None
        return combined

    def outputs(self) -> tuple[str, str]:
        """Run the command and return (stdout, stderr) separately.

        Raises:
            ExitError: If the command exits non-zero
            ExecError: If the command cannot be started
        """
        return self._communicate(subprocess.PIPE)

    def background(self) -> tuple[BackgroundProcess, io.BytesIO, io.BytesIO]:
        """Start the command without waiting for it.

        The returned buffers are complete only after ``BackgroundProcess.wait()``.

        Raises:
            ExecError: If the command cannot be started
        """
        proc = self._start(subprocess.PIPE, subprocess.PIPE)
        stdout_buffer, stderr_buffer = io.BytesIO(), io.BytesIO()
        handle = BackgroundProcess(proc, self.stdin, stdout_buffer, stderr_buffer)
        return handle, stdout_buffer, stderr_buffer

    def execute(self) -> None:
        """Run the command and log its output.

        Raises:
            ExitError: If the command exits non-zero
        """
        try:
            out = self.output()
        except ExitError as e:
            logger.info("command output", cmd=e.cmd, output=e.stdout)
            raise
        logger.info("command output", cmd=self.command_line(), output=out)

    def output_to_file(self, filename: str, output_dir: str | Path) -> Path:
        """Run the command and store its stdout in ``<output_dir>/<namespace>-<filename>``."""
        content, _ = self.outputs()
        path = Path(output_dir) / f"{self.namespace}-{filename}"
        path.write_text(content)
        return path


class BackgroundProcess:
    """A running CLI process whose output is pumped into in-memory buffers."""

    def __init__(
        self,
        proc: subprocess.Popen,
        stdin: bytes,
        stdout_buffer: io.BytesIO,
        stderr_buffer: io.BytesIO,
    ):
        self.proc = proc
        self._threads = [
            threading.Thread(target=self._feed, args=(proc.stdin, stdin), daemon=True),
            threading.Thread(target=self._pump, args=(proc.stdout, stdout_buffer), daemon=True),
            threading.Thread(target=self._pump, args=(proc.stderr, stderr_buffer), daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    @staticmethod
    def _feed(dst: IO[bytes] | None, data: bytes) -> None:
        if dst is None:
            return
        # The process may exit without reading its input
        try:
            if data:
                dst.write(data)
            dst.close()
        except BrokenPipeError:
            pass

    @staticmethod
    def _pump(src: IO[bytes] | None, dst: io.BytesIO) -> None:
        if src is None:
            return
        with src:
            for chunk in iter(lambda: src.read(_CHUNK_SIZE), b""):
                dst.write(chunk)

    @property
    def pid(self) -> int:
        return self.proc.pid

    def wait(self, timeout: float | None = None) -> int:
        """Join the process and its output pumps; return the exit status."""
        returncode = self.proc.wait(timeout=timeout)
        for thread in self._threads:
            thread.join()
        return returncode

    def kill(self) -> None:
        self.proc.kill()
