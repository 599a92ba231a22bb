"""Domain data models for tracker work items and their derived lifecycle metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class StateTransition:
    changed: datetime | None
    from_state: str | None
    to_state: str | None


@dataclass(slots=True)
class WorkItem:
    work_item_id: int | str
    title: str | None
    state: str | None
    type: str | None
    created_date: datetime | None
    changed_date: datetime | None = None
    closed_date: datetime | None = None
    activated_date: datetime | None = None
    assigned_to: str | None = None
    team: str | None = None
    area_path: str | None = None
    iteration_path: str | None = None
    created_by: str | None = None
    priority: str | None = None
    story_points: float | None = None
    client_type: str | None = None
    url: str | None = None
    tags: list[str] = field(default_factory=list)

    # Values the source may already have materialized (trusted when plausible)
    cycle_time: float | None = None
    lead_time: float | None = None
    time_in_status_days: dict[str, float] | None = None
    state_history: list[StateTransition] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Classification:
    """Lifecycle phase plus derived durations; ``None`` marks an undefined metric."""

    phase: str
    cycle_time: float | None
    lead_time: float | None
    age: int | None

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "cycle_time": self.cycle_time,
            "lead_time": self.lead_time,
            "age": self.age,
        }
