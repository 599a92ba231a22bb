"""Refresh progress banner: stage messages, a progress bar and a timed stage log."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import streamlit as st


@dataclass(slots=True)
class ProgressEvent:
    message: str
    current: int | None = None
    total: int | None = None
    at: float = field(default_factory=time.monotonic)


class ProgressReporter:
    """Streamlit banner fed by ``FlowService.refresh(progress=reporter.callback)``.

    Every callback is kept in ``events`` so the finished banner can show how
    long each refresh stage took.
    """

    def __init__(self, title: str):
        self._box = st.status(title, expanded=False)
        self._bar = self._box.progress(0.0)
        self._started = time.monotonic()
        self._done = False
        self.events: list[ProgressEvent] = []

    @property
    def fraction(self) -> float:
        for event in reversed(self.events):
            if event.total:
                return min(max((event.current or 0) / event.total, 0.0), 1.0)
        return 0.0

    def callback(self, message: str, current: int | None = None, total: int | None = None) -> None:
        if self._done:
            return
        self.events.append(ProgressEvent(message, current, total))
        self._box.update(label=message, state="running")
        self._bar.progress(self.fraction)

    def _stage_log(self) -> None:
        for event, nxt in zip(self.events, [*self.events[1:], None]):
            ended = nxt.at if nxt is not None else time.monotonic()
            self._box.write(f"{event.message}: {ended - event.at:.1f}s")

    def complete(self, message: str) -> None:
        if self._done:
            return
        self._bar.progress(1.0)
        self._stage_log()
        elapsed = time.monotonic() - self._started
        self._box.update(label=f"{message} ({elapsed:.1f}s)", state="complete")
        self._done = True

    def error(self, message: str) -> None:
        if self._done:
            return
        self._stage_log()
        self._box.update(label=message, state="error", expanded=True)
        self._done = True
