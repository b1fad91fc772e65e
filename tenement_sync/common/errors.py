"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for ingestion failures."""

    error_code = "PIPELINE_ERROR"


class ConfigurationError(PipelineError):
    """Raised for missing sources, unknown jurisdictions or invalid config. Never retried."""

    error_code = "CONFIG_ERROR"


class TransientNetworkError(PipelineError):
    """Raised for network failures worth retrying within a bounded budget."""

    error_code = "TRANSIENT_NETWORK"


class UpstreamSchemaError(PipelineError):
    """Raised when an upstream payload is malformed or carries no usable data."""

    error_code = "UPSTREAM_SCHEMA"


class PersistenceError(PipelineError):
    """Raised when a single batch write to the store fails."""

    error_code = "PERSISTENCE_ERROR"
