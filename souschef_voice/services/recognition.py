"""Streaming speech recognition over a websocket transcription server."""

from __future__ import annotations

import asyncio
import base64
import json
from typing import TYPE_CHECKING, Any, Callable, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

from ..errors import NETWORK, RecognitionStartError
from ..runtime.events import RecognitionEnded, RecognitionError, RecognitionEvent, VoiceEvent
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..audio.capture import MicrophoneCapture

logger = get_logger("voice")

Emit = Callable[[VoiceEvent], None]

_END = b""


def parse_message(raw: str | bytes) -> Optional[VoiceEvent]:
    """Turn one server message into a recognition event, or None to ignore it."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return RecognitionEvent(transcript=raw, is_final=False)
    if not isinstance(payload, dict):
        return None
    kind = payload.get("type")
    if kind == "transcript":
        return RecognitionEvent(transcript=str(payload.get("text") or ""), is_final=bool(payload.get("final", False)))
    if kind == "error":
        return RecognitionError(code=str(payload.get("code") or NETWORK), message=str(payload.get("message") or ""))
    return None


class StreamingRecognizer:
    """Continuous recognition: microphone frames out, transcripts in.

    One ``start`` opens one recognition session; when the server closes the
    socket a :class:`RecognitionEnded` is emitted and the controller decides
    whether to start again. ``abort`` ends the session without emitting
    anything.
    """

    def __init__(
        self,
        url: str,
        *,
        language: str = "en-US",
        sample_rate: int = 16_000,
        token: Optional[str] = None,
        capture: Optional["MicrophoneCapture"] = None,
        input_device: Optional[str] = None,
        max_pending_frames: int = 200,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.url = url
        self.language = language
        self.sample_rate = sample_rate
        self._token = token
        self._capture = capture
        self._input_device = input_device
        self._max_pending = max_pending_frames
        self._loop = loop
        self._task: Optional[asyncio.Task[Any]] = None
        self._aborted = False
        self._frames: Optional[asyncio.Queue[bytes]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, emit: Emit) -> None:
        if self.running:
            if self._frames is not None:
                raise RecognitionStartError("Recognition is already running.")
            # A stopped session still flushing is dropped for the new one.
            self.abort()
        loop = self._loop or asyncio.get_running_loop()
        capture = self._ensure_capture()
        frames: asyncio.Queue[bytes] = asyncio.Queue(maxsize=self._max_pending)
        capture.bind(lambda frame: loop.call_soon_threadsafe(self._enqueue, frames, frame))
        capture.start()
        self._aborted = False
        self._frames = frames
        self._task = loop.create_task(self._session(emit, frames))
        logger.info("recognition started (%s)", self.language)

    def stop(self) -> None:
        """Stop sending audio; the server flushes its last result and closes."""
        if self._capture is not None:
            self._capture.stop()
        if self._frames is not None:
            self._enqueue(self._frames, _END)
            self._frames = None

    def abort(self) -> None:
        self._aborted = True
        self._frames = None
        if self._capture is not None:
            self._capture.stop()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _ensure_capture(self) -> "MicrophoneCapture":
        if self._capture is None:
            from ..audio.capture import CaptureConfig, MicrophoneCapture

            self._capture = MicrophoneCapture(
                CaptureConfig(sample_rate=self.sample_rate, device_name=self._input_device)
            )
        return self._capture

    async def _session(self, emit: Emit, frames: asyncio.Queue[bytes]) -> None:
        headers = [("Authorization", f"Bearer {self._token}")] if self._token else None
        try:
            async with ws_connect(self.url, additional_headers=headers) as websocket:
                await websocket.send(
                    json.dumps({"type": "start", "language": self.language, "sample_rate": self.sample_rate})
                )
                sender = asyncio.create_task(self._send_frames(websocket, frames))
                try:
                    async for message in websocket:
                        event = parse_message(message)
                        if event is not None:
                            emit(event)
                finally:
                    sender.cancel()
        except asyncio.CancelledError:
            raise
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            logger.warning("recognition connection failed: %s", exc)
            if not self._aborted:
                emit(RecognitionError(code=NETWORK, message=str(exc)))
        finally:
            # A replaced session must not stop the capture its successor uses.
            if self._capture is not None and self._task is asyncio.current_task():
                self._capture.stop()
        if not self._aborted:
            emit(RecognitionEnded())

    async def _send_frames(self, websocket: Any, frames: asyncio.Queue[bytes]) -> None:
        while True:
            frame = await frames.get()
            if not frame:
                await websocket.send(json.dumps({"type": "end"}))
                return
            payload = {
                "type": "frame",
                "format": "pcm_s16le",
                "sample_rate": self.sample_rate,
                "data": base64.b64encode(frame).decode("ascii"),
            }
            await websocket.send(json.dumps(payload))

    @staticmethod
    def _enqueue(frames: asyncio.Queue[bytes], frame: bytes) -> None:
        """Push a frame, dropping the oldest one when the queue is full."""
        if frames.full():
            try:
                frames.get_nowait()
            except asyncio.QueueEmpty:
                pass
        frames.put_nowait(frame)
