class BatchError(Exception):
    """Base exception for all batch pipeline errors."""

    code = "internal"


class BatchValidationError(BatchError):
    """Raised when a request has a bad shape. Nothing has been changed."""

    code = "validation"


class InvalidTransitionError(BatchValidationError):
    """Raised when a job or file is asked to move to a state it cannot reach."""


class JobNotFoundError(BatchError):
    """Raised when a job does not exist or belongs to another user."""

    code = "not_found"


class StaleStateError(BatchError):
    """Raised when a compare-and-set status update matched no row."""

    code = "conflict"


class InternalPipelineError(BatchError):
    """Raised after an unexpected exception has failed the job."""

    code = "internal"
