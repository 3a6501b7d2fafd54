"""Error taxonomy for feature gate operations.

Read paths absorb unknown keys (a ghost feature is returned instead of a
not-found error). Storage failures on mutation surface as ``StorageError``
with the driver exception chained as ``__cause__``.
"""

from __future__ import annotations


class FeatureGateErrorCodes:
    """Error code constants."""

    STORAGE_ERROR: str = "STORAGE_ERROR"
    VALIDATION_ERROR: str = "VALIDATION_ERROR"
    GROUP_NOT_REGISTERED: str = "GROUP_NOT_REGISTERED"
    CONFIG_ERROR: str = "CONFIG_ERROR"


class FeatureGateError(Exception):
    """Base class for featuregate errors."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class StorageError(FeatureGateError):
    """The adapter could not read from or write to its backing store."""

    def __init__(self, message: str) -> None:
        super().__init__(FeatureGateErrorCodes.STORAGE_ERROR, message)


class ValidationError(FeatureGateError):
    """A mutation target or key was rejected before reaching storage."""

    def __init__(self, message: str) -> None:
        super().__init__(FeatureGateErrorCodes.VALIDATION_ERROR, message)


class GroupNotRegisteredError(FeatureGateError):
    """Raised when looking up a group nobody registered."""

    def __init__(self, name: str) -> None:
        super().__init__(FeatureGateErrorCodes.GROUP_NOT_REGISTERED, f"Group not registered: {name}")
        self.name = name


class ConfigurationError(FeatureGateError):
    """Settings do not describe a usable adapter."""

    def __init__(self, message: str) -> None:
        super().__init__(FeatureGateErrorCodes.CONFIG_ERROR, message)
