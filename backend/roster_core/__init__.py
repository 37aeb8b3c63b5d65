"""Race roster reconciliation: form signups in, roster, form options and calendar events out."""

from .availability import AvailabilityProjector, RaceOption, project_options
from .calendar_sync import CalendarAction, CalendarPlan, CalendarSync, CalendarSyncPlanner
from .config import ProgramConfig, RosterFormSettings, load_config, write_config
from .models import ActionEvent, ActionKind, Race, RosterKindConfig, User
from .reconcile import ActionOutcome, ReconciliationEngine, ReconcileResult
from .runner import RunSummary, SyncServices, run_sync
from .store import RosterStore

__all__ = [
    "ActionEvent",
    "ActionKind",
    "ActionOutcome",
    "AvailabilityProjector",
    "CalendarAction",
    "CalendarPlan",
    "CalendarSync",
    "CalendarSyncPlanner",
    "ProgramConfig",
    "Race",
    "RaceOption",
    "ReconcileResult",
    "ReconciliationEngine",
    "RosterFormSettings",
    "RosterKindConfig",
    "RosterStore",
    "RunSummary",
    "SyncServices",
    "User",
    "load_config",
    "project_options",
    "run_sync",
    "write_config",
]
