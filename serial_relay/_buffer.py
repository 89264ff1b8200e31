import collections
import itertools
import logging
import threading

data_log = logging.getLogger("serial_relay.connection.data")


class LineFramer:
    """Turns decoded chunks of device output into lines"""

    def __init__(self, *, hold_partial: bool = False):
        self._hold_partial = hold_partial
        self._partial = ""

    def feed(self, chunk: bytes) -> list[str]:
        """
        Decodes 'chunk' as UTF-8 and returns its non-empty lines.
        Undecodable chunks are dropped. Unless 'hold_partial' is set,
        an unterminated trailing fragment comes back as a line of its own;
        with 'hold_partial' it is kept and prefixed to the next chunk.
        """

        try:
            text = chunk.decode("utf-8")
        except UnicodeDecodeError:
            data_log.debug("Dropped %db of non-UTF-8 input", len(chunk))
            return []

        text, self._partial = self._partial + text, ""
        lines = text.splitlines()
        unterminated = bool(lines and lines[-1] and text.endswith(lines[-1]))
        if self._hold_partial and unterminated:
            self._partial = lines.pop()
        return [line for line in lines if line]

    @property
    def pending(self) -> str:
        return self._partial


class LineBuffer:
    """Bounded, thread-safe store of received lines (oldest evicted first)"""

    def __init__(self, max_lines: int = 1000):
        self._lock = threading.Lock()
        self._lines: collections.deque[str] = collections.deque(
            maxlen=max_lines
        )
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)

    @property
    def max_lines(self) -> int:
        return self._lines.maxlen or 0

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def append(self, lines: list[str]) -> None:
        with self._lock:
            if self._closed or not lines:
                return
            self._lines.extend(lines)
            n, total = len(lines), len(self._lines)
            data_log.debug("Buffered %d lines buf=%d", n, total)

    def drain(self) -> list[str]:
        with self._lock:
            out = list(self._lines)
            self._lines.clear()
            return out

    def peek(self, limit: int | None = None) -> list[str]:
        with self._lock:
            if limit is None:
                return list(self._lines)
            elif limit <= 0:
                return []
            start = max(0, len(self._lines) - limit)
            return list(itertools.islice(self._lines, start, None))
