"""Reasoning/content phase classification for streamed text deltas.

The upstream model wraps its plan in ``<reasoning>...</reasoning>`` before
writing code. Each delta is labelled using the state as it was *before* the
delta arrived, then the state flips if the delta carries a tag. Tag text is
therefore always labelled reasoning.

Tags split across two deltas (``"<reas"`` + ``"oning>"``) are not seen by
the default classifier because every delta is inspected on its own. Setting
``lookback=True`` holds back any trailing fragment that could still grow into
a tag until the next delta or :meth:`PhaseClassifier.flush`. That trades a
little latency for robustness and means one delta no longer maps to exactly
one event.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


REASONING_OPEN_TAG = "<reasoning>"
REASONING_CLOSE_TAG = "</reasoning>"
_TAGS = (REASONING_OPEN_TAG, REASONING_CLOSE_TAG)


class Phase(enum.StrEnum):
    REASONING = "reasoning"
    CONTENT = "content"


@dataclass(frozen=True, slots=True)
class DeltaEvent:
    """A classified slice of generated text."""

    offset: int
    text: str
    phase: Phase


def _held_back_length(text: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper tag prefix."""
    longest = 0
    for tag in _TAGS:
        for size in range(min(len(tag) - 1, len(text)), longest, -1):
            if text.endswith(tag[:size]):
                longest = size
                break
    return longest


def strip_reasoning(text: str) -> str:
    """Remove every ``<reasoning>...</reasoning>`` section from ``text``.

    Works on the full response, so it does not matter how the upstream
    chunked the tags. An unclosed section runs to the end of the text and a
    stray close tag is dropped on its own.
    """
    kept: list[str] = []
    position = 0
    while True:
        start = text.find(REASONING_OPEN_TAG, position)
        if start == -1:
            kept.append(text[position:])
            break
        kept.append(text[position:start])
        end = text.find(REASONING_CLOSE_TAG, start + len(REASONING_OPEN_TAG))
        if end == -1:
            break
        position = end + len(REASONING_CLOSE_TAG)
    return "".join(kept).replace(REASONING_CLOSE_TAG, "")


class PhaseClassifier:
    """Stateful reasoning/content labeller for one generation run."""

    def __init__(self, *, lookback: bool = False) -> None:
        self.in_reasoning = False
        self.lookback = lookback
        self._pending = ""
        self._pending_offset = 0

    def classify(self, text: str) -> Phase:
        """Label ``text`` and advance the reasoning state. Never raises."""
        opens = REASONING_OPEN_TAG in text
        closes = REASONING_CLOSE_TAG in text

        phase = (
            Phase.REASONING
            if self.in_reasoning or opens or closes
            else Phase.CONTENT
        )

        if opens:
            self.in_reasoning = True
        if closes:
            self.in_reasoning = False
        return phase

    def feed(self, text: str, offset: int) -> list[DeltaEvent]:
        """Classify one upstream delta starting at character ``offset``."""
        if not self.lookback:
            if not text:
                return []
            return [DeltaEvent(offset=offset, text=text, phase=self.classify(text))]

        if not self._pending:
            self._pending_offset = offset
        combined = self._pending + text
        split = len(combined) - _held_back_length(combined)
        ready, self._pending = combined[:split], combined[split:]
        if not ready:
            return []

        event = DeltaEvent(
            offset=self._pending_offset, text=ready, phase=self.classify(ready)
        )
        self._pending_offset += len(ready)
        return [event]

    def flush(self) -> list[DeltaEvent]:
        """Release any held-back fragment at end of stream."""
        if not self._pending:
            return []
        text, self._pending = self._pending, ""
        return [
            DeltaEvent(offset=self._pending_offset, text=text, phase=self.classify(text))
        ]
