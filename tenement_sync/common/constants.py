"""Application constants."""

USER_AGENT = "tenement-sync/1.0 (+mining tenement register aggregation)"
SUPPORTED_JURISDICTIONS = ("WA", "NSW", "VIC", "NT", "QLD", "TAS")
SOURCE_FORMATS = ("ArcGIS-REST", "WFS", "CSV", "TAB-in-ZIP")
COMMANDS = (
    "init",
    "status",
    "sync",
    "stats",
)
DEFAULT_BATCH_SIZE = 500
DEFAULT_PAGE_SIZE = 500
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "jurisdiction",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "batch",
    "error_code",
    "message",
)
