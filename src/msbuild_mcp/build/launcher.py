"""Build launcher - runs the build tool and relays its output line by line.

State machine per build process:
CREATED → STARTED → RUNNING → EXITED | TIMED_OUT

Output delivery:
- BuildProcess (blocking path): one daemon reader thread per stream, so sinks
  run on reader threads, never on the thread blocked in wait().
- AsyncBuildProcess (asyncio path): one reader task per stream on the running
  event loop.
Lines of one stream arrive in the order the tool wrote them. There is no
ordering between stdout and stderr.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Mapping
from typing import IO, Any

from .arguments import build_arguments, command_line
from .environment import sanitize_environment
from .errors import BuildTimeoutError, ProcessStartError, ToolNotFoundError
from .resolver import ToolResolver
from .state import BuildLoggerSpec, BuildRequest, BuildState, BuildTool

logger = logging.getLogger(__name__)

LineSink = Callable[[str], None]

# Hard limit for the blocking build path
BUILD_TIMEOUT_SECONDS: float = 32.0

# Grace period for output readers once the process has exited
READER_JOIN_TIMEOUT: float = 5.0

# asyncio stream buffer limit; longer lines are read in pieces of this size
MAX_LINE_BYTES: int = 1_048_576


def _spawn_options() -> dict[str, Any]:
    """Process creation options.

    Windows: no console window. POSIX: a new session, so the build tool and
    the worker nodes it spawns share one process group.
    """
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}


def _kill_tree(pid: int) -> None:
    """Kill a build tool process and every process it started.

    Raises:
        OSError: If the process group could not be signalled
        subprocess.CalledProcessError: If taskkill failed
    """
    if os.name == "nt":
        subprocess.run(
            ["taskkill", "/F", "/T", "/PID", str(pid)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            creationflags=subprocess.CREATE_NO_WINDOW,
            check=True,
        )
    else:
        os.killpg(pid, signal.SIGKILL)


def _decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


def _deliver(sink: LineSink | None, line: str, stream_name: str) -> None:
    """Hand one line to a sink. Sink errors are logged, not propagated."""
    if sink is None:
        return
    try:
        sink(line)
    except Exception:
        logger.exception(f"Build {stream_name} sink error")


class _BuildProcessBase:
    """State tracking shared by the blocking and asyncio process handles."""

    def __init__(
        self,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ):
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self._state = BuildState.CREATED
        self._state_listeners: list[Callable[[BuildState], None]] = []
        self._command: list[str] = []

    @property
    def state(self) -> BuildState:
        """Current process state."""
        return self._state

    @property
    def command(self) -> list[str]:
        """Executable and arguments the process was started with."""
        return list(self._command)

    def on_state_change(self, listener: Callable[[BuildState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: BuildState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Build process state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    def _begin_start(self, command: list[str]) -> None:
        if self._state != BuildState.CREATED:
            raise RuntimeError(f"Build process already {self._state.value}")
        self._command = list(command)


class BuildProcess(_BuildProcessBase):
    """Blocking handle owning one build tool process and its two pipes.

    Use as a context manager: leaving the block kills and reaps the process
    if it is still running and closes its pipes.
    """

    def __init__(
        self,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ):
        super().__init__(on_stdout, on_stderr)
        self._process: subprocess.Popen[bytes] | None = None
        self._readers: list[tuple[threading.Thread, IO[bytes]]] = []

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    def start(self, command: list[str], env: Mapping[str, str]) -> None:
        """Start the process and its output readers.

        Args:
            command: Executable followed by its arguments (no shell)
            env: Complete environment for the process

        Raises:
            ProcessStartError: If the OS cannot start the executable
        """
        self._begin_start(command)
        try:
            self._process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=dict(env),
                shell=False,
                **_spawn_options(),
            )
        except OSError as e:
            raise ProcessStartError(f"Failed to start {command[0]}: {e}") from e
        self._set_state(BuildState.STARTED)

        try:
            self._start_reader(self._process.stdout, self._on_stdout, "stdout")
            self._start_reader(self._process.stderr, self._on_stderr, "stderr")
        except BaseException:
            self.close()
            raise
        self._set_state(BuildState.RUNNING)

    def _start_reader(
        self,
        stream: IO[bytes] | None,
        sink: LineSink | None,
        stream_name: str,
    ) -> None:
        if stream is None:
            return
        thread = threading.Thread(
            target=self._read_stream,
            args=(stream, sink, stream_name),
            name=f"build-{stream_name}-{self.pid}",
            daemon=True,
        )
        thread.start()
        self._readers.append((thread, stream))

    @staticmethod
    def _read_stream(stream: IO[bytes], sink: LineSink | None, stream_name: str) -> None:
        # Drain even without a sink so the tool never blocks on a full pipe
        try:
            for raw in iter(stream.readline, b""):
                _deliver(sink, _decode_line(raw), stream_name)
        except (OSError, ValueError) as e:
            logger.debug(f"Build {stream_name} reader stopped: {e}")

    def _join_readers(self) -> None:
        deadline = time.monotonic() + READER_JOIN_TIMEOUT
        for thread, stream in self._readers:
            thread.join(max(0.0, deadline - time.monotonic()))
            if thread.is_alive():
                # A child of the build tool inherited the pipe and keeps it open
                logger.warning(
                    f"{thread.name} still reading after {READER_JOIN_TIMEOUT}s, detaching"
                )
            else:
                stream.close()
        self._readers = []

    def _kill(self) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        try:
            _kill_tree(process.pid)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(f"Tree kill failed for process {process.pid}: {e}")
            process.kill()
        process.wait()

    def wait(self, timeout: float | None = BUILD_TIMEOUT_SECONDS) -> int:
        """Block until the process exits.

        Every line written before exit has been delivered when this returns.

        Args:
            timeout: Seconds to wait, None for no limit

        Returns:
            Process exit code

        Raises:
            BuildTimeoutError: If the process is still running after timeout.
                The process tree is killed and reaped before this is raised.
        """
        if self._process is None:
            raise RuntimeError("Build process not started")

        try:
            exit_code = self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            self._set_state(BuildState.TIMED_OUT)
            logger.warning(f"Build timeout after {timeout}s, killing process {self.pid}")
            self._kill()
            raise BuildTimeoutError(f"Build timeout after {timeout}s", timeout=timeout) from e

        self._join_readers()
        self._set_state(BuildState.EXITED)
        return exit_code

    def close(self) -> None:
        """Kill the process if still running and release its pipes."""
        if self._process is None:
            return
        self._kill()
        self._join_readers()

    def __enter__(self) -> BuildProcess:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncBuildProcess(_BuildProcessBase):
    """Asyncio handle owning one build tool process and its two pipes.

    Use as an async context manager: leaving the block (including through
    task cancellation) kills and reaps the process if it is still running.
    """

    def __init__(
        self,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ):
        super().__init__(on_stdout, on_stderr)
        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task[None]] = []

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    async def start(self, command: list[str], env: Mapping[str, str]) -> None:
        """Start the process and its output reader tasks.

        Raises:
            ProcessStartError: If the OS cannot start the executable
        """
        self._begin_start(command)
        try:
            # Never use shell=True
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env),
                limit=MAX_LINE_BYTES,
                **_spawn_options(),
            )
        except OSError as e:
            raise ProcessStartError(f"Failed to start {command[0]}: {e}") from e
        self._set_state(BuildState.STARTED)

        self._readers = [
            asyncio.create_task(
                self._read_stream(self._process.stdout, self._on_stdout, "stdout")
            ),
            asyncio.create_task(
                self._read_stream(self._process.stderr, self._on_stderr, "stderr")
            ),
        ]
        self._set_state(BuildState.RUNNING)

    @staticmethod
    async def _read_line(stream: asyncio.StreamReader) -> bytes:
        """Read one line of any length, b"" at EOF.

        readline() discards data beyond the stream limit, so overlong lines
        are collected in limit-sized pieces.
        """
        line = bytearray()
        while True:
            try:
                line += await stream.readuntil(b"\n")
                return bytes(line)
            except asyncio.IncompleteReadError as e:
                # EOF: final line without a newline
                line += e.partial
                return bytes(line)
            except asyncio.LimitOverrunError as e:
                line += await stream.readexactly(e.consumed)

    @classmethod
    async def _read_stream(
        cls,
        stream: asyncio.StreamReader | None,
        sink: LineSink | None,
        stream_name: str,
    ) -> None:
        if stream is None:
            return
        while True:
            raw = await cls._read_line(stream)
            if not raw:
                break
            _deliver(sink, _decode_line(raw), stream_name)

    async def _join_readers(self) -> None:
        if not self._readers:
            return
        _, pending = await asyncio.wait(self._readers, timeout=READER_JOIN_TIMEOUT)
        for task in pending:
            logger.warning(f"Build output reader still open after {READER_JOIN_TIMEOUT}s, cancelling")
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._readers = []

    async def wait(self) -> int:
        """Suspend until the process exits. No timeout.

        Returns:
            Process exit code
        """
        if self._process is None:
            raise RuntimeError("Build process not started")

        exit_code = await self._process.wait()
        await self._join_readers()
        self._set_state(BuildState.EXITED)
        return exit_code

    async def close(self) -> None:
        """Kill the process if still running and stop its readers."""
        if self._process is None:
            return
        if self._process.returncode is None:
            try:
                _kill_tree(self._process.pid)
            except (OSError, subprocess.SubprocessError) as e:
                logger.debug(f"Tree kill failed for process {self._process.pid}: {e}")
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
            await self._process.wait()
        for task in self._readers:
            task.cancel()
        await asyncio.gather(*self._readers, return_exceptions=True)
        self._readers = []

    async def __aenter__(self) -> AsyncBuildProcess:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class BuildLauncher:
    """Launches the build tool for build requests.

    Holds only its collaborators. Every launch gets its own process handle,
    so concurrent builds through one launcher are independent.

    Usage:
        launcher = BuildLauncher(EnvironmentToolResolver(), logger_spec)
        exit_code = launcher.build(request, on_stdout=print)
    """

    def __init__(
        self,
        resolver: ToolResolver,
        logger_spec: BuildLoggerSpec,
        environ: Mapping[str, str] | None = None,
    ):
        """Initialize launcher.

        Args:
            resolver: Locates the build tool executable
            logger_spec: Custom logger registered on every build
            environ: Base environment (os.environ at launch time if None)
        """
        self._resolver = resolver
        self._logger_spec = logger_spec
        self._environ = environ

    @property
    def logger_spec(self) -> BuildLoggerSpec:
        return self._logger_spec

    def resolve_build_tool(self) -> tuple[str, BuildTool]:
        """Resolve the build tool executable.

        Raises:
            ToolNotFoundError: If the resolver finds no executable
        """
        resolved = self._resolver.resolve()
        if resolved is None:
            raise ToolNotFoundError("Cannot find the MSBuild executable.")
        return resolved

    def _prepare(
        self, request: BuildRequest, on_stdout: LineSink | None
    ) -> tuple[list[str], dict[str, str]]:
        executable, tool = self.resolve_build_tool()

        arguments = build_arguments(tool, request, self._logger_spec)
        launch_message = f'Running: "{executable}" {arguments}'
        logger.info(launch_message)
        _deliver(on_stdout, launch_message, "stdout")

        env = sanitize_environment(os.environ if self._environ is None else self._environ)
        return command_line(executable, tool, request, self._logger_spec), env

    def start(
        self,
        request: BuildRequest,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ) -> BuildProcess:
        """Start a build and return its running process handle.

        Raises:
            ToolNotFoundError: If no build tool was found
            ProcessStartError: If the build tool could not be started
        """
        command, env = self._prepare(request, on_stdout)
        process = BuildProcess(on_stdout, on_stderr)
        process.start(command, env)
        return process

    async def start_async(
        self,
        request: BuildRequest,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ) -> AsyncBuildProcess:
        """Asyncio variant of start()."""
        command, env = self._prepare(request, on_stdout)
        process = AsyncBuildProcess(on_stdout, on_stderr)
        await process.start(command, env)
        return process

    def build(
        self,
        request: BuildRequest,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
        timeout: float | None = BUILD_TIMEOUT_SECONDS,
    ) -> int:
        """Run a build, blocking the calling thread.

        Args:
            request: Build request
            on_stdout: Sink for stdout lines (called from a reader thread)
            on_stderr: Sink for stderr lines (called from a reader thread)
            timeout: Hard limit in seconds

        Returns:
            Build tool exit code (non-zero means the build failed)

        Raises:
            ToolNotFoundError: If no build tool was found
            ProcessStartError: If the build tool could not be started
            BuildTimeoutError: If the build exceeded timeout (process killed)
        """
        with self.start(request, on_stdout, on_stderr) as process:
            exit_code = process.wait(timeout)
        logger.info(f"Build exited with code {exit_code}")
        return exit_code

    async def build_async(
        self,
        request: BuildRequest,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
    ) -> int:
        """Run a build without blocking the event loop. No timeout.

        Returns:
            Build tool exit code (non-zero means the build failed)

        Raises:
            ToolNotFoundError: If no build tool was found
            ProcessStartError: If the build tool could not be started
        """
        process = await self.start_async(request, on_stdout, on_stderr)
        async with process:
            exit_code = await process.wait()
        logger.info(f"Build exited with code {exit_code}")
        return exit_code
