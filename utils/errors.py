from typing import List, Optional


class FormEngineError(Exception):
    """Base class for every error raised by the form engine."""


class SchemaError(FormEngineError):
    """A form schema failed registration-time validation."""


class ConditionError(FormEngineError):
    """A display/required condition could not be parsed or evaluated."""


class SessionClosedError(FormEngineError):
    """An operation was attempted on a form session that has been closed."""


class FormValidationError(FormEngineError):
    """
    Client-side validation failed before anything was sent to the backend.
    `messages` holds one human-readable line per problem.
    """

    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__("\n".join(self.messages) or "Validation failed")


class FrappeAPIError(FormEngineError):
    """
    An error reported by the Frappe backend (or while talking to it).
    `messages` is the flattened list of server messages, ready for display.
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 messages: Optional[List[str]] = None, exc_type: Optional[str] = None):
        self.status_code = status_code
        self.messages = list(messages) if messages else [message]
        self.exc_type = exc_type
        super().__init__(message)


class AuthorizationError(FrappeAPIError):
    """401/403: credentials missing, expired or insufficient. Never retried."""


class NotFoundError(FrappeAPIError):
    """404: the requested document does not exist."""


class ConflictError(FrappeAPIError):
    """The document was modified by someone else since it was loaded."""


class DuplicateEntryError(FrappeAPIError):
    """A document with the same name already exists."""


class ServerValidationError(FrappeAPIError):
    """The backend rejected the payload with one or more validation messages."""


class TransientError(FrappeAPIError):
    """Network failure or timeout; the backend could not be reached."""


class RenameError(FormEngineError):
    """Renaming a document failed; the save it was part of was aborted."""

    def __init__(self, old_name: str, new_name: str, cause: Exception):
        self.old_name = old_name
        self.new_name = new_name
        self.cause = cause
        self.messages = getattr(cause, "messages", None) or [str(cause)]
        super().__init__(f"Could not rename '{old_name}' to '{new_name}': {cause}")
