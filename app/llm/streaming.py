import codecs
import json
from typing import AsyncGenerator, List, Optional, Any

import anyio
import httpx

from app.core.logging import get_logger
from app.llm.client import UpstreamStream

logger = get_logger(__name__)

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"
DONE_EVENT = f"{DATA_PREFIX} {DONE_MARKER}\n\n".encode("utf-8")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def extract_delta_content(payload: Any) -> Optional[str]:
    """
    Pull choices[0].delta.content out of a decoded stream event.

    Args:
        payload: Decoded JSON value of one data line

    Returns:
        The content fragment, or None when the event carries none
    """
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


class SSETranscriptParser:
    """
    Incremental parser for an OpenAI-style event stream.

    Bytes are decoded incrementally and the unterminated tail of each chunk is
    kept until the next one, so events and multi-byte characters split across
    network reads are reassembled. Lines that fail to decode as JSON are
    counted and skipped.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._residual = ""
        self._fragments: List[str] = []
        self.done_seen = False
        self.skipped_lines = 0

    @property
    def text(self) -> str:
        """Reply text reconstructed so far"""
        return "".join(self._fragments)

    def feed(self, chunk: bytes) -> List[str]:
        """
        Consume one network chunk.

        Args:
            chunk: Raw bytes as received

        Returns:
            Content fragments completed by this chunk
        """
        text = self._residual + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._residual = lines.pop()
        return self._consume(lines)

    def close(self) -> List[str]:
        """Flush the decoder and parse a final unterminated line, if any"""
        tail = self._residual + self._decoder.decode(b"", final=True)
        self._residual = ""
        if not tail:
            return []
        return self._consume(tail.split("\n"))

    def _consume(self, lines: List[str]) -> List[str]:
        fragments = []
        for line in lines:
            fragment = self._parse_line(line)
            if fragment:
                fragments.append(fragment)
        self._fragments.extend(fragments)
        return fragments

    def _parse_line(self, line: str) -> Optional[str]:
        line = line.strip()
        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX):].strip()
        if not data:
            return None
        if data == DONE_MARKER:
            self.done_seen = True
            return None

        try:
            payload = json.loads(data)
        except ValueError:
            self.skipped_lines += 1
            logger.debug(f"Skipping unparseable stream line: {data[:80]}")
            return None

        return extract_delta_content(payload)


class StreamTranscript:
    """Shadow copy of a relayed stream, read by the logging task afterwards"""

    def __init__(self):
        self.parser = SSETranscriptParser()
        self.completed = False
        self.aborted = False
        self.chunks_relayed = 0
        self.bytes_relayed = 0

    @property
    def text(self) -> str:
        return self.parser.text

    def feed(self, chunk: bytes):
        self.chunks_relayed += 1
        self.bytes_relayed += len(chunk)
        self.parser.feed(chunk)

    def finish(self):
        self.parser.close()
        self.completed = True

    def abort(self):
        self.aborted = True


async def relay_stream(
    upstream: UpstreamStream,
    transcript: StreamTranscript,
) -> AsyncGenerator[bytes, None]:
    """
    Relay an upstream completion stream to the caller.

    Args:
        upstream: Open upstream response
        transcript: Receives a copy of every chunk for reply reconstruction

    Yields:
        Every upstream chunk unmodified and in order, then one terminal
        "data: [DONE]" event once upstream reaches end-of-stream

    A transport failure mid-stream ends the relay quietly: headers are
    already sent, so nothing is reported in-band.
    """
    try:
        async for chunk in upstream.iter_chunks():
            if not chunk:
                continue
            yield chunk
            transcript.feed(chunk)

        transcript.finish()
        logger.debug(
            f"Upstream stream completed: {transcript.chunks_relayed} chunks, "
            f"{len(transcript.text)} chars, {transcript.parser.skipped_lines} skipped lines"
        )
        yield DONE_EVENT

    except httpx.HTTPError as e:
        logger.warning(f"Upstream stream interrupted ({type(e).__name__}): {e}")

    finally:
        if not transcript.completed:
            transcript.abort()
            logger.info(f"Relay aborted after {transcript.bytes_relayed} bytes")
        with anyio.CancelScope(shield=True):
            await upstream.aclose()
