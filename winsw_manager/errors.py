from typing import Sequence, Union
import subprocess


class WinSWError(Exception):
    """Base class for all errors raised by winsw_manager."""


class ConfigurationError(WinSWError, ValueError):
    """
    A service configuration value was rejected during construction.

    Attributes:
        field: Dotted path of the offending field (e.g. ``log.mode``)
        message: Description of the required shape
    """
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class MissingFieldError(ConfigurationError):
    """A required field was absent or None."""


class InvalidTypeError(ConfigurationError):
    """A field had the wrong type."""


class ValidationRangeError(ConfigurationError):
    """A field had the right type but an unacceptable value."""


class EnumValidationError(ValidationRangeError):
    """A field value is not a member of its closed set."""


class ConfigParseError(WinSWError):
    """A JSON document (service definition or preferences) could not be parsed."""
    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Error parsing {path}: {reason}")


class ConfigFileMissingError(WinSWError, FileNotFoundError):
    """The service configuration file expected on disk is absent."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


class InvalidServiceError(WinSWError):
    """The service is not registered with the service control manager."""
    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Invalid/unknown service: {service_id}")


class UnknownServiceError(InvalidServiceError):
    """Raised by descriptor operations on an unregistered service."""


class ServiceAlreadyExistsError(WinSWError):
    """The service and its configuration file both already exist."""
    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Service already exists: {service_id}")


class UnknownAccountError(WinSWError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Unknown account: {username}")


class MalformedDescriptorError(WinSWError):
    def __init__(self, descriptor: str):
        self.descriptor = descriptor
        super().__init__(f"Invalid SDDL format: {descriptor!r}")


class ExecutionError(WinSWError):
    """
    An external command exited non-zero or wrote to its error stream.

    Attributes:
        command: The command line as run (secrets redacted)
        returncode: Process exit code
        stderr: Error stream text, verbatim
    """
    def __init__(self, command: Union[str, Sequence[str]], returncode: int, stderr: str):
        if not isinstance(command, str):
            command = subprocess.list2cmdline(list(command))
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Error during execution of {command} ({returncode}): {stderr.strip()}")
