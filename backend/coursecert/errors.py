"""Error taxonomy raised by the engine.

Route handlers never build these responses themselves; ``main.py``
registers exception handlers that turn each class into the usual
``{"code": ..., "message": ...}`` JSON body.
"""


class EngineError(Exception):
    """Base class for all errors the engine raises on purpose."""

    code = "engine_error"
    status_code = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(EngineError):
    """Bad input shape; nothing has been written."""

    code = "validation_error"
    status_code = 400


class NotFound(ValidationError):
    code = "not_found"
    status_code = 404


class PolicyViolation(EngineError):
    """Well-formed request rejected by a completion or attempt policy."""

    code = "policy_violation"
    status_code = 409


class DuplicateError(EngineError):
    """A row that must be unique already exists."""

    code = "duplicate"
    status_code = 409


class DownstreamFailure(EngineError):
    """Artifact renderer or notifier failed."""

    code = "downstream_failure"
    status_code = 502
