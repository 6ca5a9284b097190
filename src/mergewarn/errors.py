"""mergewarn error types."""


class MergeWarnError(Exception):
    """Base class for all mergewarn errors."""


class ConfigError(MergeWarnError):
    """Raised when mergewarn.yaml (or a CLI override) is invalid."""


class DiffError(MergeWarnError):
    """Raised when the git diff for the working tree cannot be computed.

    Fatal for the current publish cycle only; the loop retries on the
    next trigger.
    """


class TransportError(MergeWarnError):
    """Raised when the shared store or its broadcast channel is unusable."""


class SnapshotDecodeError(MergeWarnError):
    """Raised when a stored edit-set cannot be decoded.

    Attributes:
        key: The store key (participant) the bad value was read from.
    """

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Cannot decode edit-set for {key!r}: {reason}")
