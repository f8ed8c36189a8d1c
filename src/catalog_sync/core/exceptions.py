"""Custom exception hierarchy for catalog-sync."""

from typing import Any


class CatalogSyncError(Exception):
    """Base exception for all catalog-sync errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CatalogSyncError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str - the config field that failed validation
        value: Any - the invalid value (redacted for secrets)
    """


class SourceError(CatalogSyncError):
    """An upstream source failed to produce a snapshot.

    Policy: log, notify, and skip the source. Previously published data
    for the source stays visible. Never aborts sibling sources.

    Context keys:
        code: str - short code of the source
        side: str - "seller" or "vendor"
    """


class SourceUnavailableError(SourceError):
    """Network/query failure or timeout while talking to a source.

    Context keys:
        url: str | None - the URL being fetched (http sources)
        table: str | None - the table being read (warehouse sources)
        status_code: int | None - HTTP status code if applicable
    """


class EmptySnapshotError(SourceError):
    """A source answered with zero records.

    Treated exactly like SourceUnavailableError: upstream outages commonly
    show up as empty responses rather than errors.
    """


class DecodeError(SourceError):
    """A warehouse row carried a column the decoder does not know.

    Context keys:
        field: str - the unknown column name
        table: str - the table being decoded
    """


class RefreshConflictError(CatalogSyncError):
    """A refresh was requested for a source that is already refreshing.

    Policy: report immediately. Never queued or retried automatically.

    Context keys:
        code: str - short code of the busy source
    """


class SyncInProgressError(RefreshConflictError):
    """A full-catalog refresh was requested while another one is running.

    Policy: report immediately. The running cycle is not affected and no
    alert is raised.

    Context keys:
        started_at: str - ISO timestamp of the running cycle
    """


class UnknownSourceError(CatalogSyncError):
    """A refresh was requested for a code that is not registered.

    Context keys:
        code: str - the unknown code
    """


class RegistryError(CatalogSyncError):
    """Invalid source registration (duplicate code, clashing keeper).

    Context keys:
        code: str - the offending code
    """


class CacheError(CatalogSyncError):
    """Snapshot cache read or write failed.

    Policy: non-fatal. Only degrades cold-start completeness.

    Context keys:
        operation: str - "load" or "store"
        path: str - local path or remote key involved
    """


class HistoryError(CatalogSyncError):
    """Historical price store operation failed.

    Policy: log and continue. Never blocks catalog publication.

    Context keys:
        operation: str - "record", "scan", "fetch", etc.
        namespace: str - the history namespace involved
    """
