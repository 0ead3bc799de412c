"""Exception taxonomy for the SmartDiff backend"""

GENERIC_COLLABORATOR_MESSAGE = "Analysis failed. Please check your API Key and try again."


class SmartDiffError(Exception):
    """Base class for all service errors."""


class ValidationError(SmartDiffError):
    """Raised before any external call when input is missing or invalid."""


class NotFoundError(ValidationError):
    """Raised when a folder, document or history record does not exist."""


class WorkflowBusyError(ValidationError):
    """Raised when a submission of the same kind is already in flight."""


class InvalidTransitionError(ValidationError):
    """Raised when the workflow state machine refuses a transition."""


class RequestSupersededError(SmartDiffError):
    """Raised when a response arrives for a request token that is no longer current."""


class CollaboratorError(SmartDiffError):
    """Raised when an analysis, planning or generation call fails."""

    def __init__(self, detail: str, user_message: str = GENERIC_COLLABORATOR_MESSAGE):
        super().__init__(detail)
        self.detail = detail
        self.user_message = user_message


class StorageReadError(SmartDiffError):
    """Raised when persisted JSON is malformed; stores recover to an empty state."""


class StorageWriteError(SmartDiffError):
    """Raised when persisting fails; writes are best effort."""
