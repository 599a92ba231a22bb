"""Per-team flow targets: an injected key-value store plus progress evaluation.

The engine only reads and writes targets through a :class:`TargetsStore`; the
host decides where they live (memory for tests and sessions, a YAML file for a
shared deployment).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import pandas as pd
import yaml

from .config import DEFECT_TYPES, PHASE_COMPLETED
from .status import add_lifecycle_metrics

logger = logging.getLogger(__name__)

PROGRESS_CAP = 150.0
STATUS_MET = "met"
STATUS_NEAR = "near"
STATUS_FAR = "far"
STATUS_NO_DATA = "no-data"


@dataclass(slots=True)
class TeamTargets:
    throughput_per_week: float = 10.0
    cycle_time_days: float = 7.0
    lead_time_days: float = 14.0
    defect_rate_pct: float = 15.0

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TeamTargets:
        defaults = cls()
        if not isinstance(data, dict):
            return defaults
        values: dict[str, float] = {}
        for f in fields(cls):
            raw = data.get(f.name, getattr(defaults, f.name))
            try:
                values[f.name] = float(raw)
            except (TypeError, ValueError):
                logger.warning("Invalid target %s=%r; using default", f.name, raw)
                values[f.name] = getattr(defaults, f.name)
        return cls(**values)


@runtime_checkable
class TargetsStore(Protocol):
    def get(self, team_id: str) -> TeamTargets: ...

    def set(self, team_id: str, targets: TeamTargets) -> None: ...


class InMemoryTargetsStore:
    def __init__(self, initial: dict[str, TeamTargets] | None = None):
        self._data: dict[str, TeamTargets] = dict(initial or {})

    def get(self, team_id: str) -> TeamTargets:
        return self._data.get(team_id) or TeamTargets()

    def set(self, team_id: str, targets: TeamTargets) -> None:
        self._data[team_id] = targets


class YamlTargetsStore:
    """Targets persisted as ``{team: {field: value}}`` in a YAML file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Could not read targets from %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, team_id: str) -> TeamTargets:
        return TeamTargets.from_dict(self._read().get(team_id))

    def set(self, team_id: str, targets: TeamTargets) -> None:
        with self._lock:
            data = self._read()
            data[team_id] = targets.to_dict()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(yaml.safe_dump(data, sort_keys=True, allow_unicode=True), encoding="utf-8")
            tmp.replace(self.path)


@dataclass(slots=True)
class TargetProgress:
    metric: str
    target: float
    current: float | None
    progress: float | None
    status: str
    higher_is_better: bool

    def to_dict(self) -> dict:
        return asdict(self)


def _progress(current: float | None, target: float, higher_is_better: bool) -> float | None:
    if current is None:
        return None
    if higher_is_better:
        value = current / target * 100.0 if target > 0 else PROGRESS_CAP
    else:
        value = target / current * 100.0 if current > 0 else 100.0
    return min(value, PROGRESS_CAP)


def _status(progress: float | None) -> str:
    if progress is None:
        return STATUS_NO_DATA
    if progress >= 100:
        return STATUS_MET
    if progress >= 70:
        return STATUS_NEAR
    return STATUS_FAR


def _mean(series: pd.Series) -> float | None:
    values = pd.to_numeric(series, errors="coerce").dropna()
    return float(values.mean()) if not values.empty else None


def evaluate_targets(df: pd.DataFrame, targets: TeamTargets, period_days: int | float) -> list[TargetProgress]:
    """Compare a team's items against its targets.

    Progress is ``current / target`` for throughput and ``target / current``
    for the lower-is-better metrics, as a percentage capped at 150. Status is
    ``met`` at 100 or more, ``near`` from 70 and ``far`` below. A metric with
    no measurable items reports ``no-data``.
    """
    total = int(len(df))
    if total:
        enriched = df if "phase" in df.columns else add_lifecycle_metrics(df)
        completed = enriched[enriched["phase"] == PHASE_COMPLETED]
        weeks = max(float(period_days) / 7.0, 1.0)
        throughput = len(completed) / weeks
        cycle = _mean(completed["cycle_time"])
        lead = _mean(completed["lead_time"])
        types = enriched["type"] if "type" in enriched.columns else pd.Series(None, index=enriched.index)
        defect_rate = float(types.isin(DEFECT_TYPES).sum()) / total * 100.0
    else:
        throughput = cycle = lead = defect_rate = None

    rows = [
        ("throughput_per_week", targets.throughput_per_week, throughput, True),
        ("cycle_time_days", targets.cycle_time_days, cycle, False),
        ("lead_time_days", targets.lead_time_days, lead, False),
        ("defect_rate_pct", targets.defect_rate_pct, defect_rate, False),
    ]
    out: list[TargetProgress] = []
    for metric, target, current, higher in rows:
        progress = _progress(current, target, higher)
        out.append(TargetProgress(metric, target, current, progress, _status(progress), higher))
    return out
