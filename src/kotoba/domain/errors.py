"""Error taxonomy shared by every layer."""


class KotobaError(Exception):
    """Base class for all engine errors."""

    retryable = False


class NotFound(KotobaError):
    """The word does not exist or is not visible to the acting scope."""


class ValidationError(KotobaError, ValueError):
    """Malformed input: unknown outcome, bad word id, bad parameters."""


class StorageFailure(KotobaError):
    """The store could not complete an atomic update or transaction."""

    retryable = True
