from __future__ import annotations

from typing import TextIO


class OutputWriter:
    """A helper class for writing a file line by line with indent."""

    def __init__(self, sink: TextIO, tab: str = "    "):
        self.sink = sink
        self.tab = tab
        self.depth = 0

    def indent(self) -> OutputWriter:
        self.depth += 1
        return self

    def outdent(self) -> OutputWriter:
        if self.depth == 0:
            raise ValueError("Cannot outdent below column zero")
        self.depth -= 1
        return self

    def write(self, text: str) -> OutputWriter:
        """Write text at the cursor, without indentation or newline."""
        self.sink.write(text)
        return self

    def write_line(self, text: str = "") -> OutputWriter:
        if text:
            self.sink.write(self.tab * self.depth + text + "\n")
        else:
            self.sink.write("\n")
        return self
