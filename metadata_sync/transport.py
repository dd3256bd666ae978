"""Audio output transports.

The playback controller talks to a real, fallible audio output through
:class:`AudioTransport`. Starting playback is asynchronous and may be
refused; the transport reports that by raising :class:`PlaybackRejected`.
End of stream and mid-stream failures arrive later as events.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import PlaybackRejected

logger = logging.getLogger(__name__)

EndedHandler = Callable[[], None]
ErrorHandler = Callable[[Exception], None]


class AudioTransport:
    """Interface to an audio output that can play a channel's stream."""

    def __init__(self) -> None:
        self._on_ended: Optional[EndedHandler] = None
        self._on_error: Optional[ErrorHandler] = None

    def set_event_handlers(self, on_ended: EndedHandler, on_error: ErrorHandler) -> None:
        """Register callbacks for end-of-stream and playback failure."""
        self._on_ended = on_ended
        self._on_error = on_error

    async def play(self) -> None:
        """Start or resume output.

        Raises:
            PlaybackRejected: If output could not be started.
        """
        raise NotImplementedError

    async def pause(self) -> None:
        raise NotImplementedError

    async def set_volume(self, volume: float) -> None:
        """Set the output level in [0, 1]."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release the output. Safe to call repeatedly."""

    def _emit_ended(self) -> None:
        if self._on_ended:
            self._on_ended()

    def _emit_error(self, error: Exception) -> None:
        if self._on_error:
            self._on_error(error)


class MpvTransport(AudioTransport):
    """Audio output backed by an ``mpv`` process controlled over JSON IPC.

    The process is started lazily on the first ``play()``. Each source URL
    is tried in order until one loads.
    """

    def __init__(
        self,
        sources: List[str],
        mpv_path: str = "mpv",
        start_timeout: float = 15.0,
        volume: float = 0.7,
        socket_path: Optional[str] = None,
    ):
        """Initialize the transport.

        Args:
            sources: Stream URLs in preference order.
            mpv_path: mpv executable.
            start_timeout: Seconds to wait for the IPC socket and for each
                source to load.
            volume: Initial output level in [0, 1].
            socket_path: IPC socket path. Defaults to a per-instance temp path.
        """
        super().__init__()
        if not sources:
            raise ValueError("At least one stream source is required")
        self.sources = list(sources)
        self.mpv_path = mpv_path
        self.start_timeout = start_timeout
        self.volume = volume
        self.socket_path = socket_path or str(
            Path(tempfile.gettempdir()) / f"relay-mpv-{os.getpid()}-{id(self):x}.sock"
        )

        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._request_id = 0
        self._load_waiter: Optional[asyncio.Future] = None
        self._loaded = False
        self._closing = False

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def play(self) -> None:
        await self._ensure_process()

        if self._loaded:
            await self._set_property("pause", False)
            logger.info("Resumed output")
            return

        for url in self.sources:
            if await self._load(url):
                await self._set_property("pause", False)
                logger.info(f"Playing {url}")
                return

        raise PlaybackRejected(f"None of the stream sources could be played: {self.sources}")

    async def pause(self) -> None:
        if self._loaded and self.is_running:
            await self._set_property("pause", True)

    async def set_volume(self, volume: float) -> None:
        self.volume = volume
        if self.is_running and self._writer is not None:
            await self._set_property("volume", round(volume * 100))

    async def close(self) -> None:
        self._closing = True
        self._loaded = False

        if self._writer is not None and self.is_running:
            try:
                await self._send({"command": ["quit"]})
            except (ConnectionError, OSError):
                pass

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._writer is not None:
            self._writer.close()
            self._writer = None

        if self._process is not None:
            if self._process.returncode is None:
                self._process.terminate()
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=2.0)
                except asyncio.TimeoutError:
                    logger.warning(f"mpv {self._process.pid} did not exit, killing it")
                    self._process.kill()
                    await self._process.wait()
            self._process = None

        self._fail_pending(ConnectionError("mpv transport closed"))
        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError:
                pass

    async def _ensure_process(self) -> None:
        """Start mpv and connect to its IPC socket if not already running.

        Raises:
            PlaybackRejected: If mpv cannot be started or never opens its socket.
        """
        if self.is_running and self._writer is not None:
            return

        self._closing = False
        self._loaded = False
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)

        cmd = [
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            f"--volume={round(self.volume * 100)}",
            "--load-scripts=no",
        ]
        logger.info(f"Starting mpv with socket: {self.socket_path}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise PlaybackRejected(f"Cannot start {self.mpv_path}: {e}") from e

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.start_timeout
        while True:
            if self._process.returncode is not None:
                raise PlaybackRejected(f"mpv exited during startup ({self._process.returncode})")
            try:
                self._reader, self._writer = await asyncio.open_unix_connection(self.socket_path)
                break
            except (FileNotFoundError, ConnectionRefusedError):
                if loop.time() > deadline:
                    await self._kill_process()
                    raise PlaybackRejected(
                        f"mpv IPC socket not ready after {self.start_timeout}s"
                    ) from None
                await asyncio.sleep(0.1)
            except OSError as e:
                await self._kill_process()
                raise PlaybackRejected(f"Cannot connect to mpv IPC socket: {e}") from e

        self._reader_task = asyncio.create_task(self._read_messages(), name="mpv-ipc-reader")

    async def _kill_process(self) -> None:
        """Kill a half-started mpv and reap it."""
        if self._process is None:
            return
        if self._process.returncode is None:
            self._process.kill()
        await self._process.wait()
        self._process = None

    async def _load(self, url: str) -> bool:
        """Load one source and wait until it starts or fails."""
        loop = asyncio.get_running_loop()
        self._load_waiter = loop.create_future()
        try:
            await self._command("loadfile", url, "replace")
            result = await asyncio.wait_for(self._load_waiter, timeout=self.start_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out loading {url}")
            return False
        except PlaybackRejected as e:
            logger.warning(f"mpv refused {url}: {e}")
            return False
        finally:
            self._load_waiter = None

        if result is True:
            self._loaded = True
            return True

        logger.warning(f"Could not load {url}: {result}")
        return False

    async def _set_property(self, name: str, value: Any) -> None:
        await self._command("set_property", name, value)

    async def _command(self, *args: Any) -> Any:
        """Send an IPC command and wait for its reply.

        Raises:
            PlaybackRejected: If mpv reports an error or the connection is gone.
        """
        if self._writer is None:
            raise PlaybackRejected("mpv is not running")

        self._request_id += 1
        request_id = self._request_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send({"command": list(args), "request_id": request_id})
            reply = await asyncio.wait_for(future, timeout=self.start_timeout)
        except (ConnectionError, OSError, asyncio.TimeoutError) as e:
            raise PlaybackRejected(f"mpv command {args[0]} failed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

        if reply.get("error") != "success":
            raise PlaybackRejected(f"mpv command {args[0]} failed: {reply.get('error')}")
        return reply.get("data")

    async def _send(self, message: Dict[str, Any]) -> None:
        assert self._writer is not None
        self._writer.write((json.dumps(message) + "\n").encode("utf-8"))
        await self._writer.drain()

    async def _read_messages(self) -> None:
        assert self._reader is not None
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                try:
                    message = json.loads(line)
                except ValueError:
                    logger.debug(f"Ignoring non-JSON IPC line: {line!r}")
                    continue
                self._handle_message(message)
        finally:
            self._fail_pending(ConnectionError("mpv IPC connection closed"))
            if not self._closing:
                was_loaded = self._loaded
                self._loaded = False
                self._writer = None
                if was_loaded:
                    self._emit_error(ConnectionError("mpv exited unexpectedly"))

    def _handle_message(self, message: Dict[str, Any]) -> None:
        """Route one IPC message to a pending command or an event handler."""
        request_id = message.get("request_id")
        if request_id is not None and "event" not in message:
            future = self._pending.get(request_id)
            if future is not None and not future.done():
                future.set_result(message)
            return

        event = message.get("event")
        if event == "file-loaded":
            if self._load_waiter is not None and not self._load_waiter.done():
                self._load_waiter.set_result(True)
        elif event == "end-file":
            reason = message.get("reason")
            if self._load_waiter is not None and not self._load_waiter.done():
                if reason == "error":
                    self._load_waiter.set_result(message.get("file_error", "error"))
                return
            if not self._loaded:
                return
            if reason == "eof":
                self._loaded = False
                logger.info("Stream ended")
                self._emit_ended()
            elif reason == "error":
                self._loaded = False
                error = ConnectionError(message.get("file_error", "playback error"))
                logger.error(f"Stream failed: {error}")
                self._emit_error(error)

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        if self._load_waiter is not None and not self._load_waiter.done():
            self._load_waiter.set_result(str(error))
