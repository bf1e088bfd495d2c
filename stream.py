"""Re-framing of the upstream SSE stream into OpenAI-style chat completion chunks."""
import codecs
import json
import time
import logging
from typing import AsyncIterator, Awaitable, Callable, List, Optional

import httpx
from pydantic import ValidationError

from models import ClientChoice, ClientEvent, UpstreamEvent

logger = logging.getLogger("sensechat-proxy.stream")

DONE_SENTINEL = "[DONE]"
DONE_FRAME = b"data: [DONE]\n\n"
DATA_PREFIX = "data:"

class StreamReframer:
    """
    Incremental translator for one upstream event stream.

    Feed it raw body chunks as they arrive; it returns the encoded client
    frames for every event completed by that chunk, one bytes object per
    event. Chunk boundaries do not matter: the same bytes split any way
    produce the same frames.

    Instances hold the partial line and the lines of the event in progress,
    so each stream needs its own.
    """

    def __init__(self, model: str, fingerprint: str, clock: Callable[[], float] = time.time):
        self.model = model
        self.fingerprint = fingerprint
        self._clock = clock
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._partial = ""
        self._event_lines: List[str] = []
        self.done = False

    def feed(self, chunk: bytes) -> List[bytes]:
        if self.done:
            return []

        text = self._partial + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._partial = lines.pop()

        frames = []
        for line in lines:
            if line.endswith("\r"):
                line = line[:-1]

            if line:
                self._event_lines.append(line)
                continue

            frame = self._complete_event()
            if frame:
                frames.append(frame)
            if self.done:
                break

        return frames

    def finish(self) -> None:
        """Signal end of input. An unterminated trailing event is discarded."""
        self._partial += self._decoder.decode(b"", final=True)
        if self._partial or self._event_lines:
            logger.debug("Discarding incomplete event at end of upstream stream")
        self._partial = ""
        self._event_lines = []

    def _complete_event(self) -> bytes:
        lines, self._event_lines = self._event_lines, []
        out = []

        for line in lines:
            if not line.startswith(DATA_PREFIX):
                out.append(line + "\n\n")
                continue

            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                out.append(DONE_FRAME.decode())
                self.done = True
                break

            event = self.translate(payload)
            if event is not None:
                out.append("data: " + event.model_dump_json() + "\n\n")

        return "".join(out).encode("utf-8")

    def translate(self, payload: str) -> Optional[ClientEvent]:
        """Decode one upstream payload; None when it cannot be understood."""
        try:
            upstream = UpstreamEvent.model_validate_json(payload)
        except ValidationError:
            logger.debug(f"Dropping undecodable upstream event: {payload[:200]}")
            return None

        if upstream.status is not None and upstream.status.code != 0:
            logger.warning(f"Upstream reported status {upstream.status.code}: {upstream.status.message}")

        data = upstream.data
        choices = []
        for choice in (data.choices if data and data.choices else []):
            delta = {}
            if choice.delta:
                delta["content"] = choice.delta
            if choice.reasoning_content:
                delta["reasoning_content"] = choice.reasoning_content

            choices.append(ClientChoice(
                index=choice.index,
                delta=delta,
                finish_reason=choice.finish_reason or None,
            ))

        return ClientEvent(
            id=(data.id if data else None) or "",
            created=int(self._clock()),
            model=self.model,
            system_fingerprint=self.fingerprint,
            choices=choices,
        )

def error_frame(message: str) -> bytes:
    """Terminating frame sent when the upstream connection breaks mid-stream."""
    error = {
        "error": {
            "code": "UPSTREAM_STREAM_ERROR",
            "message": message,
            "type": "upstream_error",
        }
    }
    return ("data: " + json.dumps(error, separators=(",", ":")) + "\n\n").encode("utf-8")

async def reframe_response(
    response: httpx.Response,
    reframer: StreamReframer,
    disconnect_check: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[bytes]:
    """
    Drive a reframer from an upstream response body.

    Each completed event is yielded on its own so the server writes it out
    before the next upstream read. The upstream response is closed however
    the loop ends.
    """
    frames_sent = 0
    try:
        async for chunk in response.aiter_bytes():
            for frame in reframer.feed(chunk):
                if disconnect_check is not None and await disconnect_check():
                    logger.info(f"Client disconnected after {frames_sent} frames, closing upstream stream")
                    return
                yield frame
                frames_sent += 1

            if reframer.done:
                break

        reframer.finish()
        logger.debug(f"Upstream stream finished after {frames_sent} frames (done={reframer.done})")
    except httpx.TransportError as e:
        logger.error(f"Upstream stream broke after {frames_sent} frames: {e}")
        yield error_frame(f"Upstream stream interrupted: {str(e)}")
    finally:
        await response.aclose()
