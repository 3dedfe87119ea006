"""Error taxonomy shared by the credential store and the metadata pipeline."""
from __future__ import annotations

import enum


class TaggerError(Exception):
    """Base class for user-facing errors raised by the core."""


class ValidationError(TaggerError):
    """A required input was missing or malformed."""


class DuplicateIdentityError(TaggerError):
    def __init__(self, username: str):
        super().__init__("username already exists")
        self.username = username


class NotFoundError(TaggerError):
    pass


class AuthenticationFailure(TaggerError):
    """Wrong password or unknown user. Callers cannot tell the two apart."""

    def __init__(self):
        super().__init__("Invalid username or password")


class RateLimitedError(TaggerError):
    def __init__(self, retry_after: float):
        super().__init__("Too many login attempts, try again later")
        self.retry_after = retry_after


class MetadataWriteFailure(TaggerError):
    """Raised only after every write strategy has been tried."""


class FailureKind(enum.Enum):
    GENERIC = "generic"
    OFFSET_CORRUPTION = "offset_corruption"
    PROPRIETARY_FIELD_CORRUPTION = "proprietary_field_corruption"


class TagEngineError(Exception):
    """The tag engine rejected a read or write. `message` is the engine's own text."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.GENERIC):
        super().__init__(message)
        self.message = message
        self.kind = kind
