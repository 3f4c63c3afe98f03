"""Custom exceptions for restic-do."""


class ResticDoError(Exception):
    """Base exception for all restic-do errors."""

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        """Initialize the exception with message and optional original error."""
        super().__init__(message)
        self.original_error = original_error
        self.message = message


class ConfigurationError(ResticDoError):
    """Raised when there are configuration-related issues."""


class EnvFileNotFoundError(ConfigurationError):
    """Raised when the env file does not exist."""


class EnvFileUnreadableError(ConfigurationError):
    """Raised when the env file exists but cannot be read."""


class MissingRequiredSettingError(ConfigurationError):
    """Raised when a required setting is absent or empty."""

    def __init__(self, key: str) -> None:
        """Initialize the exception with the name of the missing setting."""
        super().__init__(f"Required environment variable not set: {key}")
        self.key = key


class InvalidRetentionValueError(ConfigurationError):
    """Raised when a retention counter is not a non-negative integer."""

    def __init__(self, key: str, value: str) -> None:
        """Initialize the exception with the offending setting and value."""
        super().__init__(
            f"Invalid retention policy value for {key}: must be a non-negative "
            f"integer, got '{value}'",
        )
        self.key = key
        self.value = value


class ArgumentError(ResticDoError):
    """Raised when the command line cannot be parsed."""


class UnknownArgumentError(ArgumentError):
    """Raised for an unrecognized command-line token."""

    def __init__(self, token: str) -> None:
        """Initialize the exception with the unrecognized token."""
        super().__init__(f"Unknown argument: {token}")
        self.token = token


class MissingFlagValueError(ArgumentError):
    """Raised when a flag is given without its value."""

    def __init__(self, flag: str) -> None:
        """Initialize the exception with the flag that lacks a value."""
        super().__init__(f"Missing value for {flag}")
        self.flag = flag


class NoActionError(ArgumentError):
    """Raised when no --action was given."""


class InvalidActionError(ArgumentError):
    """Raised when --action names an unsupported action."""


class ValidationError(ResticDoError):
    """Raised when action parameters fail validation."""


class ResticError(ResticDoError):
    """Base exception for restic-related errors."""


class ResticCommandFailedError(ResticError):
    """Raised when a restic command exits with a nonzero status."""

    def __init__(self, command: str, returncode: int) -> None:
        """Initialize the exception with the restic verb and its exit code."""
        super().__init__(f"restic {command} failed with exit code {returncode}")
        self.command = command
        self.returncode = returncode


class FlowAbortedError(ResticError):
    """Raised when the backup flow stops before its last step."""

    def __init__(self, message: str, result: object = None) -> None:
        """Initialize the exception with the partial flow result."""
        super().__init__(message)
        self.result = result


class DependencyError(ResticDoError):
    """Raised when a required external program is unavailable."""


class ResticNotFoundError(DependencyError):
    """Raised when the restic binary cannot be found or started."""


class TerminationInterrupt(KeyboardInterrupt):
    """Raised in the main thread when the process receives SIGTERM.

    Unlike a terminal Ctrl+C, SIGTERM is not delivered to the running restic
    process, so it has to be forwarded.
    """
