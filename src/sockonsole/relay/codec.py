"""Sentinel framing for response batches on the downlink byte stream.

A frame is the raw batch followed by ``\\nEND_RESPONSE\\n``. There is no
escaping: a batch that itself contains the sentinel desynchronises the
reader, and the rest of that batch is read as the start of the next frame.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sockonsole.relay.constants import DECODE_CHUNK_BYTES, SENTINEL

if TYPE_CHECKING:
    import asyncio


@dataclass(frozen=True)
class DecodedResponse:
    """One response read from the downlink.

    Attributes:
        payload: Batch bytes with the sentinel removed.
        terminated: ``False`` when the stream ended before a sentinel was seen;
            the payload is then whatever was buffered and should be treated
            as suspect.
    """

    payload: bytes
    terminated: bool = True

    def text(self) -> str:
        """Decode the payload as UTF-8 with replacement."""
        return self.payload.decode("utf-8", errors="replace")


def encode_response(batch: bytes) -> bytes:
    """Append the sentinel to *batch*."""
    return batch + SENTINEL


def split_frame(buffer: bytes) -> tuple[bytes | None, bytes]:
    """Split the first complete frame off *buffer*.

    Returns ``(payload, rest)`` when a sentinel is present, otherwise
    ``(None, buffer)``.
    """
    index = buffer.find(SENTINEL)
    if index < 0:
        return None, buffer
    return buffer[:index], buffer[index + len(SENTINEL) :]


class ResponseReader:
    """Reads sentinel-terminated frames from a stream in fixed-size chunks.

    Bytes that arrive after a sentinel are kept for the next
    :meth:`read_response` call.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        *,
        chunk_size: int = DECODE_CHUNK_BYTES,
    ) -> None:
        self._reader = reader
        self._chunk_size = chunk_size
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes buffered past the last returned frame."""
        return bytes(self._buffer)

    async def read_response(self) -> DecodedResponse:
        """Read until the next sentinel or end of stream."""
        while True:
            payload, rest = split_frame(bytes(self._buffer))
            if payload is not None:
                self._buffer = bytearray(rest)
                return DecodedResponse(payload=payload)

            chunk = await self._reader.read(self._chunk_size)
            if not chunk:
                remainder = bytes(self._buffer)
                self._buffer.clear()
                return DecodedResponse(payload=remainder, terminated=False)
            self._buffer.extend(chunk)


__all__ = ["DecodedResponse", "ResponseReader", "encode_response", "split_frame"]
