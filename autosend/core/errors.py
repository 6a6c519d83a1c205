"""Error taxonomy for the auto-send engine.

Request-level errors (validation, authorization, lookup, storage) carry the
HTTP status the API layer answers with. ComposeError and DispatchError are
item-level: the executor turns them into a FAILED item instead of letting
them escape. A ComposeError on a download reaches the client as a 422.
"""


class AutoSendError(Exception):
    """Base class for all auto-send errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AutoSendError):
    """Bad or missing input: date range, recipients, email shape."""

    status_code = 400


class AuthorizationError(AutoSendError):
    """Missing or wrong credentials, secret or role."""

    status_code = 401


class NotFoundError(AutoSendError):
    """Unknown batch, item or recipient."""

    status_code = 404


class ConfigurationError(AutoSendError):
    """Server-side misconfiguration, e.g. the cron secret is unset."""

    status_code = 500


class StorageError(AutoSendError):
    """The database could not be read or written."""

    status_code = 500


class ComposeError(AutoSendError):
    """A batch item's PDF package could not be assembled."""

    status_code = 422


class DispatchError(AutoSendError):
    """A batch item's email could not be delivered."""
