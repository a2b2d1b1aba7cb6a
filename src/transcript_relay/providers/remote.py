"""Streaming recognition over a websocket (AssemblyAI realtime protocol).

Outbound frames are ``{"audio_data": <base64 pcm16>}`` followed by a final
``{"terminate_session": true}``. Inbound frames carry a ``message_type`` of
``SessionBegins``, ``PartialTranscript`` or ``FinalTranscript``; only the
transcript messages are surfaced.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import urlencode

import websockets

from transcript_relay.audio.audio_io import AudioStream, resample_pcm16
from transcript_relay.errors import ErrorKind, ProviderError
from transcript_relay.providers.base import ProviderAdapter
from transcript_relay.schemas import TranscriptEvent

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "wss://api.assemblyai.com/v2/realtime/ws"

SocketFactory = Callable[[str], Awaitable[Any]]


async def _open_socket(url: str) -> Any:
    return await websockets.connect(url, open_timeout=10)


class RemoteStreamingClient(ProviderAdapter):
    """Socket-based provider with an explicit lifecycle and no internal retry."""

    name = "remote"

    def __init__(
        self,
        *,
        token: str,
        endpoint: str = DEFAULT_ENDPOINT,
        speaker_labels: bool = True,
        socket_factory: SocketFactory | None = None,
        drain_timeout: float = 5.0,
    ) -> None:
        super().__init__()
        self._token = token
        self._endpoint = endpoint
        self._speaker_labels = speaker_labels
        self._socket_factory = socket_factory or _open_socket
        self._drain_timeout = drain_timeout

        self._ws: Any = None
        self._socket_open = False
        self._receive_task: asyncio.Task | None = None
        self._relay_task: asyncio.Task | None = None

    def build_url(self, sample_rate: int, language: str | None) -> str:
        params: dict[str, Any] = {"sample_rate": sample_rate, "token": self._token}
        if self._speaker_labels:
            params["speaker_labels"] = "true"
        if language and language != "auto":
            params["language_code"] = language
        return f"{self._endpoint}?{urlencode(params)}"

    async def _start(
        self,
        session_id: int,
        sample_rate: int,
        language: str,
        stream: AudioStream | None,
    ) -> None:
        url = self.build_url(sample_rate, language)
        try:
            ws = await self._socket_factory(url)
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as e:
            self._fail(session_id, ProviderError(ErrorKind.PROVIDER_SOCKET_ERROR, f"Could not connect: {e}"))
            return

        if not self._is_current(session_id):
            # disconnect() arrived while the handshake was in flight.
            logger.debug(f"[{self.name}] closing socket of superseded session {session_id}")
            await ws.close()
            return

        self._ws = ws
        self._socket_open = True
        self._receive_task = asyncio.create_task(self._receive_loop(session_id, ws))
        if not self._opened(session_id):
            return

        if stream is None:
            logger.warning(f"[{self.name}] no audio stream given; nothing will be relayed")
            return
        self._relay_task = asyncio.create_task(self._relay(session_id, ws, stream, sample_rate))

    def _stop(self, *, graceful: bool) -> Awaitable[None] | None:
        relay, self._relay_task = self._relay_task, None
        if relay is not None:
            relay.cancel()

        ws, self._ws = self._ws, None
        receive, self._receive_task = self._receive_task, None
        send_terminate = graceful and self._socket_open
        self._socket_open = False
        if ws is None:
            return None
        return self._close_socket(ws, send_terminate, receive)

    async def _close_socket(self, ws: Any, send_terminate: bool, receive: asyncio.Task | None) -> None:
        try:
            if send_terminate:
                await ws.send(json.dumps({"terminate_session": True}))
            await ws.close()
        except (OSError, websockets.ConnectionClosed) as e:
            logger.debug(f"[{self.name}] socket already closed: {e}")
        finally:
            if receive is not None and receive is not asyncio.current_task():
                receive.cancel()

    async def _relay(self, session_id: int, ws: Any, stream: AudioStream, sample_rate: int) -> None:
        frames = 0
        try:
            async for chunk in stream.chunks():
                if not self._is_current(session_id) or not self._socket_open:
                    return
                pcm = resample_pcm16(chunk, stream.sample_rate, sample_rate)
                payload = base64.b64encode(pcm.tobytes()).decode("ascii")
                await ws.send(json.dumps({"audio_data": payload}))
                frames += 1
        except websockets.ConnectionClosed as e:
            # The receive loop owns reporting a closed socket.
            logger.debug(f"[{self.name}] relay stopped, socket closed: {e}")
            return
        except OSError as e:
            self._detach_relay()
            self._fail(session_id, ProviderError(ErrorKind.PROVIDER_SOCKET_ERROR, f"Could not send audio: {e}"))
            return
        finally:
            logger.debug(f"[{self.name}] relayed {frames} audio frames (session={session_id})")

        if self._is_current(session_id) and self._socket_open:
            await self._end_of_audio(session_id, ws)

    async def _end_of_audio(self, session_id: int, ws: Any) -> None:
        """The source ran dry: ask the service to flush its last transcript, then end the session."""
        logger.info(f"[{self.name}] audio stream ended; terminating session {session_id}")
        self._detach_relay()
        receive = self._receive_task
        try:
            await ws.send(json.dumps({"terminate_session": True}))
        except (OSError, websockets.ConnectionClosed) as e:
            logger.debug(f"[{self.name}] could not send terminate_session: {e}")
        else:
            if receive is not None:
                await asyncio.wait({receive}, timeout=self._drain_timeout)
        if self._is_current(session_id):
            self._socket_open = False
            self._ended(session_id)

    def _detach_relay(self) -> None:
        if self._relay_task is asyncio.current_task():
            self._relay_task = None

    async def _receive_loop(self, session_id: int, ws: Any) -> None:
        error: ProviderError | None = None
        try:
            async for raw in ws:
                self._handle_message(session_id, raw)
        except websockets.ConnectionClosedError as e:
            error = ProviderError(ErrorKind.PROVIDER_SOCKET_ERROR, f"Socket closed abnormally: {e}")
        except OSError as e:
            error = ProviderError(ErrorKind.PROVIDER_SOCKET_ERROR, f"Socket error: {e}")

        if not self._is_current(session_id):
            return
        self._socket_open = False
        if error is not None:
            self._fail(session_id, error)
        else:
            self._ended(session_id)

    def _handle_message(self, session_id: int, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"[{self.name}] error parsing message: {e}")
            return
        if not isinstance(data, dict):
            return

        if data.get("error"):
            self._fail(session_id, ProviderError(ErrorKind.PROVIDER_SOCKET_ERROR, str(data["error"])))
            return

        message_type = data.get("message_type")
        if message_type in ("PartialTranscript", "FinalTranscript"):
            text = (data.get("text") or "").strip()
            if not text:
                return
            speaker = data.get("speaker")
            self._deliver(
                session_id,
                TranscriptEvent(
                    text=text,
                    is_final=message_type == "FinalTranscript",
                    speaker=str(speaker) if speaker not in (None, "") else None,
                ),
            )
        elif message_type == "SessionBegins":
            logger.info(f"[{self.name}] session id: {data.get('session_id')}")
        else:
            logger.debug(f"[{self.name}] ignoring message type {message_type!r}")
