"""Mapping raw backend work-item records into WorkItem instances and DataFrames."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict
from typing import Any

import pandas as pd

from .config import UNASSIGNED_TEAM
from .dates import normalize_timestamp
from .models import StateTransition, WorkItem

logger = logging.getLogger(__name__)

# camelCase (backend) -> snake_case (WorkItem); snake_case keys pass through
FIELD_ALIASES: dict[str, str] = {
    "workItemId": "work_item_id",
    "id": "work_item_id",
    "assignedTo": "assigned_to",
    "areaPath": "area_path",
    "iterationPath": "iteration_path",
    "createdBy": "created_by",
    "createdDate": "created_date",
    "changedDate": "changed_date",
    "closedDate": "closed_date",
    "activatedDate": "activated_date",
    "firstActivationDate": "activated_date",
    "storyPoints": "story_points",
    "tipoCliente": "client_type",
    "cycleTime": "cycle_time",
    "leadTime": "lead_time",
    "timeInStatusDays": "time_in_status_days",
    "stateHistory": "state_history",
}

DATE_FIELDS = ("created_date", "changed_date", "closed_date", "activated_date")


def extract_team(area_path: str | None) -> str:
    """Use the last ``\\``-separated segment of an area path as the team name."""
    if not area_path:
        return UNASSIGNED_TEAM
    parts = str(area_path).split("\\")
    return parts[-1] if len(parts) > 1 else str(area_path)


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = value.get("displayName") or value.get("name")
        if value is None:
            return None
    text = str(value).strip()
    if not text or text.lower() in {"nan", "none", "null"}:
        return None
    return text


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(number):
        return None
    return number


def _split_tags(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.replace(";", ",").split(",")
    elif isinstance(value, Iterable):
        raw = list(value)
    else:
        return []
    tags: list[str] = []
    for tag in raw:
        text = _clean_text(tag)
        if text and text not in tags:
            tags.append(text)
    return tags


def _normalize_priority(value: Any) -> str | None:
    if value is None or value == "":
        return None
    number = _to_float(value)
    if number is not None and number.is_integer():
        return str(int(number))
    return _clean_text(value)


def _map_time_in_status(value: Any) -> dict[str, float] | None:
    if not isinstance(value, Mapping) or not value:
        return None
    out: dict[str, float] = {}
    for status, days in value.items():
        number = _to_float(days)
        if number is None or number < 0:
            continue
        out[str(status)] = number
    return out or None


def _map_history(value: Any) -> list[StateTransition]:
    if not isinstance(value, list):
        return []
    transitions: list[StateTransition] = []
    for entry in value:
        if not isinstance(entry, Mapping):
            continue
        changed = normalize_timestamp(entry.get("changedDate") or entry.get("date") or entry.get("changed"))
        transitions.append(
            StateTransition(
                changed=changed.to_pydatetime() if changed is not None else None,
                from_state=_clean_text(entry.get("from") or entry.get("fromState")),
                to_state=_clean_text(entry.get("to") or entry.get("toState") or entry.get("state")),
            )
        )
    return transitions


def map_work_item(raw: Mapping[str, Any]) -> WorkItem:
    """Build a :class:`WorkItem` from one JSON-compatible backend record."""
    data: dict[str, Any] = {}
    for key, value in raw.items():
        data[FIELD_ALIASES.get(key, key)] = value

    dates: dict[str, Any] = {}
    for name in DATE_FIELDS:
        value = data.get(name)
        ts = normalize_timestamp(value)
        if ts is None and value not in (None, ""):
            logger.warning("Unparseable %s %r on work item %s", name, value, data.get("work_item_id"))
        dates[name] = ts.to_pydatetime() if ts is not None else None

    area_path = _clean_text(data.get("area_path"))
    team = _clean_text(data.get("team")) or (extract_team(area_path) if area_path else None)

    return WorkItem(
        work_item_id=data.get("work_item_id"),
        title=_clean_text(data.get("title")),
        state=_clean_text(data.get("state")),
        type=_clean_text(data.get("type")),
        assigned_to=_clean_text(data.get("assigned_to")),
        team=team,
        area_path=area_path,
        iteration_path=_clean_text(data.get("iteration_path")),
        created_by=_clean_text(data.get("created_by")),
        priority=_normalize_priority(data.get("priority")),
        story_points=_to_float(data.get("story_points")),
        client_type=_clean_text(data.get("client_type")),
        url=_clean_text(data.get("url")),
        tags=_split_tags(data.get("tags")),
        cycle_time=_to_float(data.get("cycle_time")),
        lead_time=_to_float(data.get("lead_time")),
        time_in_status_days=_map_time_in_status(data.get("time_in_status_days")),
        state_history=_map_history(data.get("state_history")),
        **dates,
    )


def map_work_items(raw_items: Iterable[Mapping[str, Any]]) -> list[WorkItem]:
    return [map_work_item(raw) for raw in raw_items if isinstance(raw, Mapping)]


def items_to_dataframe(items: Iterable[WorkItem]) -> pd.DataFrame:
    """Flatten work items into the frame every analytics function consumes."""
    rows: list[dict[str, Any]] = []
    for item in items:
        row = asdict(item)
        row["tags"] = list(item.tags)
        row["state_history"] = list(item.state_history)
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=[f for f in WorkItem.__dataclass_fields__])
    return pd.DataFrame(rows)


def records_to_dataframe(raw_items: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    return items_to_dataframe(map_work_items(raw_items))
