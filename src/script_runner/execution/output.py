from __future__ import annotations

import codecs


class OutputBuffer:
    """Accumulate decoded process output up to a fixed character cap.

    Once the cap is exceeded the text is cut to the cap, the truncation marker
    is appended, and every later chunk is dropped.

    Example:
        ```python
        buf = OutputBuffer(max_chars=10, marker="...")
        buf.feed(b"hello world")
        buf.text  # "hello worl..."
        ```
    """

    __slots__ = ("_max_chars", "_marker", "_decoder", "_text", "_truncated")

    def __init__(self, *, max_chars: int, marker: str) -> None:
        """Create an empty buffer.

        Example:
            ```python
            buf = OutputBuffer(max_chars=10000, marker="\\n... (output truncated)")
            ```
        """
        self._max_chars = max_chars
        self._marker = marker
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._text = ""
        self._truncated = False

    @property
    def text(self) -> str:
        """Return the accumulated text.

        Example:
            ```python
            value = buf.text
            ```
        """
        return self._text

    @property
    def truncated(self) -> bool:
        """Return whether the cap has been hit.

        Example:
            ```python
            if buf.truncated:
                ...
            ```
        """
        return self._truncated

    def feed(self, chunk: bytes) -> None:
        """Decode and append one chunk read from the process.

        Example:
            ```python
            buf.feed(b"line\\n")
            ```
        """
        if self._truncated:
            return
        self._append(self._decoder.decode(chunk))

    def close(self) -> None:
        """Flush any partial multi-byte sequence left in the decoder.

        Example:
            ```python
            buf.close()
            ```
        """
        if self._truncated:
            return
        self._append(self._decoder.decode(b"", final=True))

    def _append(self, text: str) -> None:
        """Append decoded text and apply the cap.

        Example:
            ```python
            buf._append("abc")
            ```
        """
        if not text:
            return
        self._text += text
        if len(self._text) > self._max_chars:
            self._text = self._text[: self._max_chars] + self._marker
            self._truncated = True
