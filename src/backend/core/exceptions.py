"""
Internal exceptions for the anti-abuse engine.

Detectors never raise for a verdict; they return result objects. These
exceptions only travel between storage / lookup adapters and the services
that absorb them.
"""


class AntiAbuseError(Exception):
    """Base exception for anti-abuse engine failures."""

    pass


class PersistenceUnavailableError(AntiAbuseError):
    """A ledger backend could not be read or written."""

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"{key}: {message}")


class ExternalLookupError(AntiAbuseError):
    """The IP risk provider failed or timed out."""

    pass
