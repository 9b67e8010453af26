# engine/context_window.py
# Rolling (source -> target) line buffer for the translator prompt.
#
# INVARIANTS:
# - len(window) <= size at all times, oldest entry evicted first
# - rebuild(checkpoint, source) == live window at the same cursor
#   (a resumed chapter sees the exact context an uninterrupted run would)

import re
from collections import deque
from typing import Deque, List, Sequence

from pydantic import BaseModel, ConfigDict, Field

from config import UNTRANSLATED_PREFIX

# Lines made only of spaces, dots, ellipses, carriage returns or asterisks
DECORATION_PATTERN = re.compile(r"^[ .…\r*]+$")


def is_decoration(line: str) -> bool:
    return bool(DECORATION_PATTERN.match(line))


def is_context_line(line: str) -> bool:
    """True for lines that are sent to the model (non-blank, not decoration)."""
    stripped = line.strip()
    return bool(stripped) and not is_decoration(line)


def lookahead(source_lines: Sequence[str], index: int, size: int) -> List[str]:
    """Next `size` raw lines after `index`, trimmed, blanks and decoration dropped."""
    future = [line.strip() for line in source_lines[index + 1: index + 1 + size]]
    return [line for line in future if line and not is_decoration(line)]


class ContextEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")


class ContextWindow:
    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"context window size must be >= 1, got {size}")
        self.size = size
        self._entries: Deque[ContextEntry] = deque(maxlen=size)

    def append(self, entry: ContextEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> List[ContextEntry]:
        """Oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ContextWindow):
            return NotImplemented
        return self.size == other.size and self.entries() == other.entries()

    def __repr__(self) -> str:
        return f"ContextWindow(size={self.size}, entries={len(self._entries)})"

    # =====================================================
    # RECONSTRUCTION FROM CHECKPOINT
    # =====================================================
    @classmethod
    def rebuild(
        cls,
        translated_lines: Sequence[str],
        source_lines: Sequence[str],
        size: int,
        untranslated_prefix: str = UNTRANSLATED_PREFIX,
    ) -> "ContextWindow":
        """
        Replay the last `size` qualifying lines below the resume cursor.

        A line qualifies when its source is a context line AND its stored
        translation is not the untranslated sentinel: lines that exhausted
        their retries never entered the live window either.
        """
        window = cls(size)
        cursor = min(len(translated_lines), len(source_lines))

        picked: List[ContextEntry] = []
        for j in range(cursor - 1, -1, -1):
            if len(picked) >= size:
                break
            original = source_lines[j]
            if not is_context_line(original):
                continue
            stripped = original.strip()
            target = translated_lines[j]
            if target == f"{untranslated_prefix}{stripped}":
                continue
            picked.append(ContextEntry(source=stripped, target=target))

        for entry in reversed(picked):
            window.append(entry)
        return window
