"""Decoder for Docker's multiplexed attach stream.

Each frame is an 8 byte header followed by the payload::

    [stream type: 1 byte][reserved: 3 bytes][payload length: uint32 BE]

Stream type 1 is stdout, 2 is stderr. Frames may be split arbitrarily
across reads, so incomplete trailing bytes are kept for the next chunk.
"""

import logging
import struct
from typing import Iterable, Tuple

logger = logging.getLogger(__name__)

HEADER = struct.Struct(">BxxxL")
STDOUT = 1
STDERR = 2


class StreamDemultiplexer:
    def __init__(self):
        self._pending = bytearray()
        self._stdout = bytearray()
        self._stderr = bytearray()

    def feed(self, chunk: bytes) -> None:
        self._pending += chunk
        offset = 0
        while len(self._pending) - offset >= HEADER.size:
            stream_type, size = HEADER.unpack_from(self._pending, offset)
            end = offset + HEADER.size + size
            if end > len(self._pending):
                break
            payload = self._pending[offset + HEADER.size : end]
            if stream_type == STDOUT:
                self._stdout += payload
            elif stream_type == STDERR:
                self._stderr += payload
            offset = end
        del self._pending[:offset]

    def finish(self) -> Tuple[str, str]:
        if self._pending:
            logger.warning(
                "Discarding %d bytes of incomplete frame at end of stream",
                len(self._pending),
            )
            self._pending.clear()
        return (
            self._stdout.decode("utf-8", errors="replace"),
            self._stderr.decode("utf-8", errors="replace"),
        )


def demux_stream(chunks: Iterable[bytes]) -> Tuple[str, str]:
    """Consume a stream of raw chunks and return (stdout, stderr)."""
    demux = StreamDemultiplexer()
    for chunk in chunks:
        demux.feed(chunk)
    return demux.finish()
