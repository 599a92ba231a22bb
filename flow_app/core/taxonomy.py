"""Load and expose the workflow state taxonomy from YAML (with fallbacks)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from .config import (
    ACTIVE_WORK_STATES,
    BACKLOG_STATES,
    COMPLETED_STATES,
    IN_PROGRESS_STATES,
    PHASE_BACKLOG,
    PHASE_COMPLETED,
    PHASE_IN_PROGRESS,
    PHASE_OTHER,
    PHASE_REMOVED,
    REMOVED_STATES,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StateTaxonomy:
    completed: frozenset[str] = COMPLETED_STATES
    in_progress: frozenset[str] = IN_PROGRESS_STATES
    backlog: frozenset[str] = BACKLOG_STATES
    removed: frozenset[str] = REMOVED_STATES
    active_work: frozenset[str] = ACTIVE_WORK_STATES

    def phase_of(self, state: str | None) -> str:
        """Map a raw state label to its lifecycle phase (exact, case-sensitive)."""
        if not state:
            return PHASE_OTHER
        if state in self.completed:
            return PHASE_COMPLETED
        if state in self.in_progress:
            return PHASE_IN_PROGRESS
        if state in self.backlog:
            return PHASE_BACKLOG
        if state in self.removed:
            return PHASE_REMOVED
        return PHASE_OTHER

    def is_active_work(self, status: str | None) -> bool:
        if not status:
            return False
        needle = str(status).strip().casefold()
        return any(needle == s.casefold() for s in self.active_work)


DEFAULT_TAXONOMY = StateTaxonomy()

_CACHE: StateTaxonomy | None = None


def _as_set(values, fallback: frozenset[str]) -> frozenset[str]:
    if not values:
        return fallback
    return frozenset(str(v) for v in values if v is not None and str(v).strip())


def load_taxonomy(base_path: str | Path | None = None) -> StateTaxonomy:
    """Return the state taxonomy, reading ``taxonomy.yaml`` when present.

    The file may override any of the ``completed``, ``in_progress``, ``backlog``,
    ``removed`` and ``active_work`` lists under a top-level ``states`` key.
    Missing keys keep their defaults; an unreadable file yields the defaults.
    """
    global _CACHE
    if _CACHE is not None:
        return _CACHE
    base = Path(base_path or Path(__file__).resolve().parent.parent)
    yaml_path = base / "taxonomy.yaml"
    if not yaml_path.exists():
        _CACHE = DEFAULT_TAXONOMY
        return _CACHE
    try:
        data = yaml.safe_load(yaml_path.read_text(encoding="utf-8")) or {}
        states = data.get("states", {}) or {}
        _CACHE = StateTaxonomy(
            completed=_as_set(states.get("completed"), COMPLETED_STATES),
            in_progress=_as_set(states.get("in_progress"), IN_PROGRESS_STATES),
            backlog=_as_set(states.get("backlog"), BACKLOG_STATES),
            removed=_as_set(states.get("removed"), REMOVED_STATES),
            active_work=_as_set(states.get("active_work"), ACTIVE_WORK_STATES),
        )
        return _CACHE
    except (OSError, yaml.YAMLError, AttributeError) as exc:
        logger.warning("Could not read %s, using default taxonomy: %s", yaml_path, exc)
        _CACHE = DEFAULT_TAXONOMY
        return _CACHE


def reset_taxonomy_cache() -> None:
    global _CACHE
    _CACHE = None
