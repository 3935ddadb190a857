"""
Collect step output into a bounded buffer and scrub secrets from it.
"""

import logging
import threading
from typing import IO, Iterable, List, Tuple

logger = logging.getLogger(__name__)

REDACTION_MASK = "***"
READ_CHUNK = 4096

class OutputBuffer:
    """
    Keeps the last `capacity` bytes written to it.
    Anything older is dropped and `truncated` is set.
    """

    def __init__(self, capacity: int):
        self.capacity = max(capacity, 0)
        self.truncated = False
        self._data = bytearray()
        self._lock = threading.Lock()

    def write(self, chunk: bytes):
        with self._lock:
            self._data += chunk
            overflow = len(self._data) - self.capacity
            if overflow > 0:
                del self._data[:overflow]
                self.truncated = True

    def drain(self, stream: IO[bytes]):
        """Read a process stream until EOF. Runs on a reader thread."""
        try:
            for chunk in iter(lambda: stream.read1(READ_CHUNK), b""):
                self.write(chunk)
        except (OSError, ValueError) as e:
            # Stream closed underneath us after the process was killed
            logger.debug(f"Output stream closed: {e}")

    def getvalue(self) -> bytes:
        with self._lock:
            return bytes(self._data)

def _secret_spans(data: bytes, secrets: Iterable[str]) -> List[Tuple[int, int]]:
    spans = []
    for secret in {s.encode("utf-8") for s in secrets if s}:
        start = data.find(secret)
        while start != -1:
            spans.append((start, start + len(secret)))
            start = data.find(secret, start + 1)

    merged: List[Tuple[int, int]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged

def collect_output(
    data: bytes,
    limit: int,
    secrets: Iterable[str] = (),
    truncated: bool = False,
) -> Tuple[str, bool]:
    """
    Turn raw captured bytes into the text stored on a step result.

    Every exact occurrence of a secret is replaced with the mask, then the
    text is cut down to the last `limit` bytes of the original output. The
    cut never lands inside a secret, so a partially kept secret cannot leak.
    Callers should capture `limit + len(longest secret)` bytes so that a
    secret straddling the buffer's own front edge is dropped by the cut.

    Returns the text and whether anything was dropped.
    """
    spans = _secret_spans(data, secrets)

    begin = 0
    if len(data) > limit:
        begin = len(data) - limit
        truncated = True
    for start, end in spans:
        if start < begin < end:
            begin = end

    out = bytearray()
    cursor = begin
    for start, end in spans:
        if end <= begin:
            continue
        out += data[cursor:start]
        out += REDACTION_MASK.encode()
        cursor = end
    out += data[cursor:]

    return out.decode("utf-8", errors="replace"), truncated

def tail_lines(text: str, lines: int = 20) -> str:
    """Last few lines of captured output, for log messages and summaries."""
    return "\n".join(text.rstrip("\n").splitlines()[-lines:])
