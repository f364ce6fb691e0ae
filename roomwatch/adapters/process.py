"""
Process adapter - the line stream coming out of the external script.

Two sources share one contract:
- ScriptProcess: spawns the script and reads its stdout and stderr
- PipeSource: attaches to a pre-existing named pipe (or file)

Both produce RawLine objects lazily and raise ProcessLost when the stream
ends. Blocking reads happen only in the sources' own reader threads; the
consumer polls a queue, so close() always unblocks it promptly.

Usage:
    with ScriptProcess(["python3", "-u", "server.py"]) as proc:
        proc.open()
        for raw in proc.lines():
            ...
"""

from __future__ import annotations

import logging
import os
import queue
import signal
import stat
import subprocess
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO, BinaryIO, Callable, Iterable, Iterator

from roomwatch.domain import RawLine, StreamSource
from roomwatch.errors import ProcessLost
from roomwatch.logging_config import log_process

logger = logging.getLogger(__name__)

# How often a blocked consumer re-checks for close()
POLL_INTERVAL = 0.1


class _EndOfStream:
    """Queue marker: one reader thread reached EOF."""

    def __init__(self, source: StreamSource, error: str | None = None):
        self.source = source
        self.error = error


class LineSource:
    """
    Base for line sources. Subclasses start reader threads in open() that
    feed self._queue, and report how many streams they read.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[RawLine | _EndOfStream] = queue.Queue()
        self._closing = threading.Event()
        self._readers: list[threading.Thread] = []
        self._stream_count = 0
        self._ended = 0
        self._errors: list[str] = []
        self.started_at: datetime | None = None

    def __enter__(self) -> "LineSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def pid(self) -> int | None:
        return None

    def describe(self) -> str:
        raise NotImplementedError

    def open(self) -> datetime:
        """Acquire the stream. Returns the attach time. Raises ProcessLost on failure."""
        raise NotImplementedError

    def close(self, timeout: float = 5.0) -> None:
        raise NotImplementedError

    def _exit_code(self) -> int | None:
        return None

    def _start_reader(self, stream_opener: Callable[[], Iterable[str]], source: StreamSource) -> None:
        thread = threading.Thread(
            target=self._pump,
            args=(stream_opener, source),
            daemon=True,
            name=f"{type(self).__name__}-{source.value}",
        )
        self._readers.append(thread)
        self._stream_count += 1
        thread.start()

    def _pump(self, stream_opener: Callable[[], Iterable[str]], source: StreamSource) -> None:
        """Reader thread: blocking reads, one RawLine per line, then an EOF marker."""
        error = None
        try:
            stream = stream_opener()
            for line in stream:
                if self._closing.is_set():
                    break
                self._queue.put(RawLine(
                    text=line.rstrip("\r\n"),
                    source=source,
                    received_at=datetime.now(),
                ))
        except (OSError, ValueError) as e:
            # ValueError: stream closed underneath us during shutdown
            error = str(e)
        finally:
            self._queue.put(_EndOfStream(source, error))

    def read(self, timeout: float = POLL_INTERVAL) -> RawLine | None:
        """
        Next line, or None if nothing arrived within timeout.

        Raises:
            ProcessLost: When every stream has ended, failed, or the source was closed
        """
        if self._closing.is_set():
            raise ProcessLost("stream closed by monitor", exit_code=self._exit_code())

        while True:
            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                return None

            if not isinstance(item, _EndOfStream):
                return item

            self._ended += 1
            if item.error:
                self._errors.append(f"{item.source.value}: {item.error}")
            if self._ended >= self._stream_count:
                exit_code = self._exit_code()
                reason = "; ".join(self._errors) if self._errors else "stream ended"
                if exit_code is not None:
                    reason = f"{reason} (exit code {exit_code})"
                raise ProcessLost(reason, exit_code=exit_code)

    def lines(self) -> Iterator[RawLine]:
        """Lazy, unbounded sequence of lines; ends by raising ProcessLost."""
        while True:
            raw = self.read()
            if raw is not None:
                yield raw


class ScriptProcess(LineSource):
    """Spawns the external script and reads its stdout and stderr."""

    def __init__(
        self,
        command: list[str],
        cwd: Path | str | None = None,
        env: dict[str, str] | None = None,
    ):
        super().__init__()
        if not command:
            raise ValueError("ScriptProcess needs a command")
        self.command = list(command)
        self.cwd = Path(cwd) if cwd is not None else None
        self._env = env
        self._proc: subprocess.Popen[str] | None = None
        self._new_session = os.name == "posix"

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    def describe(self) -> str:
        return " ".join(self.command)

    def open(self) -> datetime:
        if self._proc is not None:
            raise RuntimeError("ScriptProcess already opened; create a new one to restart")

        env = dict(os.environ if self._env is None else self._env)
        env.setdefault("PYTHONUNBUFFERED", "1")

        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                cwd=self.cwd,
                env=env,
                start_new_session=self._new_session,
            )
        except OSError as e:
            log_process(logger, "spawn failed", details=f"{self.describe()} | {e}")
            raise ProcessLost(f"failed to start {self.describe()}: {e}") from e

        self.started_at = datetime.now()
        log_process(logger, "spawned", pid=self._proc.pid, details=self.describe())

        proc = self._proc
        self._start_reader(lambda: proc.stdout, StreamSource.STDOUT)
        self._start_reader(lambda: proc.stderr, StreamSource.STDERR)
        return self.started_at

    def _exit_code(self) -> int | None:
        if self._proc is None:
            return None
        code = self._proc.poll()
        if code is None:
            # Streams closed but the process lingers; give it a moment
            try:
                code = self._proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                return None
        return code

    def _send(self, sig: int) -> None:
        """Signal the whole process group so children of the script go too."""
        if self._proc is None:
            return
        try:
            if self._new_session:
                os.killpg(self._proc.pid, sig)
            elif sig == signal.SIGTERM:
                self._proc.terminate()
            else:
                self._proc.kill()
        except ProcessLookupError:
            pass

    def close(self, timeout: float = 5.0) -> None:
        """Terminate the script (SIGTERM, then SIGKILL after timeout). Idempotent."""
        self._closing.set()
        proc = self._proc
        if proc is None:
            return

        if proc.poll() is None:
            log_process(logger, "terminating", pid=proc.pid)
            self._send(signal.SIGTERM)
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                log_process(logger, "killing", pid=proc.pid, details=f"no exit after {timeout}s")
                self._send(getattr(signal, "SIGKILL", signal.SIGTERM))
                proc.wait(timeout=timeout)

        for reader in self._readers:
            reader.join(timeout=1.0)
        for stream in (proc.stdout, proc.stderr):
            if stream is not None:
                stream.close()
        log_process(logger, "closed", pid=proc.pid, exit_code=proc.returncode)


@dataclass
class FileCursor:
    """Byte offset reached in an attached regular file, shared across reconnects."""

    offset: int = 0


class PipeSource(LineSource):
    """
    Attaches to a pre-existing named pipe (FIFO) or file written by the script.

    Opening a FIFO blocks until a writer appears, so the open happens in the
    reader thread. A regular file is read to its end, then reported lost.
    With a FileCursor, a reconnect to the same file continues where the last
    session stopped instead of replaying it.
    """

    def __init__(self, path: Path | str, cursor: FileCursor | None = None):
        super().__init__()
        self.path = Path(path)
        self._cursor = cursor
        self._stream: IO[str] | BinaryIO | None = None

    def describe(self) -> str:
        return f"pipe {self.path}"

    def open(self) -> datetime:
        if not self.path.exists():
            raise ProcessLost(f"pipe {self.path} does not exist")

        def opener() -> Iterable[str]:
            if self.path.is_file():
                return self._open_file()
            self._stream = open(self.path, "r", encoding="utf-8", errors="replace")
            return self._stream

        self.started_at = datetime.now()
        log_process(logger, "attaching", details=self.describe())
        self._start_reader(opener, StreamSource.STDOUT)
        return self.started_at

    def _open_file(self) -> Iterator[str]:
        handle = open(self.path, "rb")
        self._stream = handle
        if self._cursor is not None:
            if self._cursor.offset > os.fstat(handle.fileno()).st_size:
                # Truncated or replaced since the last session
                logger.info(f"{self.path} shrank; reading from the start")
                self._cursor.offset = 0
            handle.seek(self._cursor.offset)
        return self._file_lines(handle)

    def _file_lines(self, handle: BinaryIO) -> Iterator[str]:
        for chunk in handle:
            if self._cursor is not None:
                self._cursor.offset += len(chunk)
            yield chunk.decode("utf-8", errors="replace")

    def close(self, timeout: float = 5.0) -> None:
        self._closing.set()
        if self._stream is None and self._is_fifo() and hasattr(os, "O_NONBLOCK"):
            # Reader may be parked in open() waiting for a writer; be that writer
            try:
                fd = os.open(self.path, os.O_WRONLY | os.O_NONBLOCK)
                os.close(fd)
            except OSError:
                pass
        for reader in self._readers:
            reader.join(timeout=min(timeout, 1.0))
        if self._stream is not None:
            try:
                self._stream.close()
            except OSError:
                pass
        log_process(logger, "detached", details=self.describe())

    def _is_fifo(self) -> bool:
        try:
            return stat.S_ISFIFO(self.path.stat().st_mode)
        except OSError:
            return False


def make_source_factory(
    command: list[str] | None = None,
    attach: Path | None = None,
    cwd: Path | None = None,
) -> Callable[[], LineSource]:
    """Build the factory the runner calls for every (re)connect."""
    if attach is not None:
        cursor = FileCursor()
        return lambda: PipeSource(attach, cursor)
    if not command:
        raise ValueError("Either a command or an attach path is required")
    return lambda: ScriptProcess(command, cwd=cwd)
