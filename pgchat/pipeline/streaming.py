"""Answer chunking for the streamed response."""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Literal

_WORD_CHUNK = re.compile(r"\S+\s*|\s+")


def smooth_chunks(text: str, mode: Literal["line", "word"] = "line") -> Iterator[str]:
    """
    Split an answer into stream chunks.

    Joining the chunks always reproduces ``text`` exactly. Line mode keeps
    each newline attached to the line it ends.
    """
    if not text:
        return
    if mode == "word":
        yield from _WORD_CHUNK.findall(text)
        return
    yield from text.splitlines(keepends=True)
