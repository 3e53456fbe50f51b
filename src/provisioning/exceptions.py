"""Custom exceptions for the provisioning pipeline."""

from __future__ import annotations


class ProvisionError(Exception):
    """Base exception for all provisioning errors."""

    pass


class FatalStepError(ProvisionError):
    """Raised when a step whose failure must stop the run reports failure."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.message = message
        super().__init__(message)


class NonFatalStepError(ProvisionError):
    """A step failure that is logged as a warning while the run continues."""

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.message = message
        super().__init__(f"{step}: {message}")


class ProvisionAbortedError(ProvisionError):
    """Raised once a cancellation signal has been observed."""

    def __init__(self, reason: str = "Provisioning aborted") -> None:
        self.reason = reason
        super().__init__(reason)


class CommandTimeoutError(ProvisionError):
    """Describes a subprocess that exceeded its wall-clock budget."""

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command '{command}' timed out after {timeout:g}s")


class ConfigurationError(ProvisionError):
    """Raised for configuration issues (no project paths, bad config, etc.)."""

    pass


class RegistryError(ProvisionError):
    """Raised when the project registry rejects or cannot serve a call."""

    pass
