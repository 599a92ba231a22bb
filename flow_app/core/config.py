"""Central configuration, constants, state taxonomy defaults and scoring thresholds."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date

# =============================================================================
# Backend Connection Settings
# =============================================================================
API_DEFAULT_SERVER = "http://localhost:3001"
TIMEZONE = "America/Sao_Paulo"
API_CACHE_TTL_SECONDS = 300.0
REFRESH_INTERVAL_SECONDS = 5 * 60  # hosts usually reload the snapshot every 5 minutes

# =============================================================================
# Workflow State Taxonomy
# Matching is case-sensitive and exact: the tracker emits localized labels
# ("Concluído", "Fechado") next to the English ones and both must be listed.
# =============================================================================
COMPLETED_STATES: frozenset[str] = frozenset(
    {
        "Done",
        "Concluído",
        "Closed",
        "Fechado",
        "Finished",
        "Resolved",
        "Pronto",
    }
)

IN_PROGRESS_STATES: frozenset[str] = frozenset(
    {
        "Active",
        "Ativo",
        "Em Progresso",
        "Para Desenvolver",
        "Aguardando Code Review",
        "Fazendo Code Review",
        "Aguardando QA",
        "Testando QA",
    }
)

BACKLOG_STATES: frozenset[str] = frozenset({"New", "Novo", "Design", "In Planning"})

REMOVED_STATES: frozenset[str] = frozenset({"Removed", "Removido"})

# Statuses counted as hands-on work when computing flow efficiency
ACTIVE_WORK_STATES: frozenset[str] = frozenset({"Active", "Ativo", "Fazendo Code Review", "Testando QA"})

# Statuses counted as queue/wait time
WAIT_STATES: frozenset[str] = frozenset(
    {"New", "Novo", "Para Desenvolver", "Aguardando Code Review", "Aguardando QA"}
)

PHASE_COMPLETED = "Completed"
PHASE_IN_PROGRESS = "In Progress"
PHASE_BACKLOG = "Backlog"
PHASE_REMOVED = "Removed"
PHASE_OTHER = "Other"

PHASE_ORDER: Sequence[str] = (
    PHASE_BACKLOG,
    PHASE_IN_PROGRESS,
    PHASE_COMPLETED,
    PHASE_REMOVED,
    PHASE_OTHER,
)

# Cumulative flow columns, bottom to top. The first column is the completed band.
CFD_COLUMNS: Sequence[tuple[str, tuple[str, ...]]] = (
    ("Concluído", tuple(sorted(COMPLETED_STATES))),
    ("Testando QA", ("Testando QA",)),
    ("Aguardando QA", ("Aguardando QA",)),
    ("Fazendo Code Review", ("Fazendo Code Review",)),
    ("Aguardando Code Review", ("Aguardando Code Review",)),
    ("Active / Desenvolvendo", ("Active", "Ativo")),
    ("Para Desenvolver", ("Para Desenvolver",)),
    ("New / Novo", ("New", "Novo")),
)
CFD_OTHER_COLUMN = "Other"
CFD_MAX_DAYS = 90

# =============================================================================
# Derived Metric Rules
# =============================================================================
MAX_VALID_DAYS: int = 1000  # durations at or beyond this are treated as bad data
SECONDS_PER_DAY: int = 86400

# =============================================================================
# Period Defaults
# =============================================================================
PROJECT_EPOCH: date = date(2023, 1, 1)  # first day covered by "all years"
DEFAULT_PERIOD_MONTHS: int = 12  # safe fallback for malformed period specs
DEFAULT_GRANULARITY = "monthly"

# =============================================================================
# Grouping Fallback Labels
# =============================================================================
UNASSIGNED_TEAM = "Sem Time"
UNASSIGNED_PERSON = "Não Atribuído"
UNKNOWN_LABEL = "Unknown"
NO_TAG = "Sem Tag"
NO_PRIORITY = "4"

PRIORITY_LABELS: dict[str, str] = {
    "1": "Crítica",
    "2": "Alta",
    "3": "Média",
    "4": "Baixa",
}

DEFECT_TYPES: frozenset[str] = frozenset({"Bug"})

# =============================================================================
# UI Default Values
# =============================================================================
DEFAULT_SLA_TARGET_DAYS: int = 7
SLA_TARGET_CHOICES: Sequence[int] = (3, 5, 7, 10, 14, 21, 30)
DEFAULT_TOP_N: int = 20
DEFAULT_AGING_WARN_DAYS: int = 15
DEFAULT_AGING_CRITICAL_DAYS: int = 30
DEFAULT_TEAM_WIP_LIMIT: int = 10
DEFAULT_PERSON_WIP_LIMIT: int = 3
FLOW_EFFICIENCY_MIN_ITEMS: int = 3
MONTE_CARLO_TRIALS: int = 5000
MONTE_CARLO_MAX_WEEKS: int = 200


@dataclass(slots=True)
class HealthThresholds:
    """Step thresholds for the four Health Score sub-scores.

    Each ladder is a sequence of ``(bound, score)`` pairs checked in order; the
    first matching bound wins and ``floor`` applies when none match.
    """

    cycle_time: Sequence[tuple[float, float]] = ((3, 100), (7, 80), (14, 50))
    cycle_time_floor: float = 20
    defect_rate: Sequence[tuple[float, float]] = ((5, 100), (15, 70), (30, 40))
    defect_rate_floor: float = 10
    completion_rate: Sequence[tuple[float, float]] = ((80, 100), (60, 70), (40, 40))
    completion_rate_floor: float = 10
    throughput: Sequence[tuple[float, float]] = ((20, 100), (10, 70), (5, 40))
    throughput_floor: float = 10
    weights: dict[str, float] = field(
        default_factory=lambda: {
            "throughput": 0.25,
            "cycle_time": 0.25,
            "defect_rate": 0.25,
            "completion_rate": 0.25,
        }
    )


@dataclass(slots=True)
class EngineSettings:
    sla_target_days: int = DEFAULT_SLA_TARGET_DAYS
    granularity: str = DEFAULT_GRANULARITY
    group_key: str = "team"
    health: HealthThresholds = field(default_factory=HealthThresholds)
    max_table_rows: int = 1000


SETTINGS = EngineSettings()
