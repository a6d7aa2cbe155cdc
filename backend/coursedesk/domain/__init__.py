"""Collection engine shared by the student, instructor and course consoles."""

from .bulk import BulkActionOrchestrator, BulkResult
from .console import CollectionConsole, ConsoleView, ExportFile
from .dashboard import DashboardOverview, QuickStats
from .errors import (
    CollectionError,
    RemoteError,
    StaleResponseError,
    TransitionInFlightError,
    ValidationError,
)
from .importer import ImportReport, ImportRow, parse_import, parse_import_report
from .kinds import COURSES, INSTRUCTORS, KINDS, STUDENTS, EntityKind, get_kind
from .prompts import Confirmer, Notice, NoticeLog, NoticeSink, StaticConfirmer
from .records import Record, RecordStore
from .selection import Selection
from .service import BulkReply, ImportSummary, RecordPage, RemoteService
from .stats import StatsAggregator, StatsSnapshot, compute_stats
from .transitions import StatusTransitionEngine, TransitionOutcome
from .view import DateRange, DerivedView, ViewParameters, derive

__all__ = [
    "BulkActionOrchestrator",
    "BulkReply",
    "BulkResult",
    "COURSES",
    "CollectionConsole",
    "CollectionError",
    "Confirmer",
    "ConsoleView",
    "DashboardOverview",
    "DateRange",
    "DerivedView",
    "EntityKind",
    "ExportFile",
    "INSTRUCTORS",
    "ImportReport",
    "ImportRow",
    "ImportSummary",
    "KINDS",
    "Notice",
    "NoticeLog",
    "NoticeSink",
    "QuickStats",
    "Record",
    "RecordPage",
    "RecordStore",
    "RemoteError",
    "RemoteService",
    "STUDENTS",
    "Selection",
    "StaleResponseError",
    "StaticConfirmer",
    "StatsAggregator",
    "StatsSnapshot",
    "StatusTransitionEngine",
    "TransitionInFlightError",
    "TransitionOutcome",
    "ValidationError",
    "ViewParameters",
    "compute_stats",
    "derive",
    "get_kind",
    "parse_import",
    "parse_import_report",
]
