from pydantic import (
    BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr,
    ValidationError, field_validator, model_validator,
)
from typing import Any, Annotated, Mapping, Optional, Tuple
from enum import Enum
from pathlib import Path
import os
import shutil

from .errors import (
    ConfigurationError, EnumValidationError, InvalidTypeError,
    MissingFieldError, ValidationRangeError,
)

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]
PositiveInt = Annotated[StrictInt, Field(gt=0)]


class LogMode(str, Enum):
    """Log handling modes understood by the WinSW wrapper."""
    APPEND = 'append'
    RESET = 'reset'
    NONE = 'none'
    ROLL_BY_SIZE = 'roll-by-size'
    ROLL_BY_TIME = 'roll-by-time'
    ROLL_BY_SIZE_TIME = 'roll-by-size-time'


# Modes in which each mode-dependent log setting is emitted
SIZE_THRESHOLD_MODES = frozenset({LogMode.ROLL_BY_SIZE, LogMode.ROLL_BY_SIZE_TIME})
KEEP_FILES_MODES = frozenset({LogMode.ROLL_BY_SIZE})
AUTO_ROLL_MODES = frozenset({LogMode.ROLL_BY_SIZE_TIME})
PATTERN_MODES = frozenset({LogMode.ROLL_BY_TIME, LogMode.ROLL_BY_SIZE_TIME})


class BuiltinAccount(str, Enum):
    """Identities that need no password and already control services."""
    LOCAL_SYSTEM = 'LocalSystem'
    LOCAL_SERVICE = 'NT AUTHORITY\\LocalService'
    NETWORK_SERVICE = 'NT AUTHORITY\\NetworkService'


BUILTIN_ACCOUNTS = frozenset(account.value.casefold() for account in BuiltinAccount)


def qualify_account(domain: Optional[str], username: Optional[str]) -> Optional[str]:
    if username and domain and '\\' not in username:
        return f"{domain}\\{username}"
    return username


def is_builtin_account(username: Optional[str], domain: Optional[str] = None) -> bool:
    """Match either the bare name or the domain-qualified one."""
    if not isinstance(username, str):
        return False
    candidates = {username, qualify_account(domain, username)}
    return any(name.casefold() in BUILTIN_ACCOUNTS for name in candidates if isinstance(name, str))


def is_managed_account(username: Optional[str]) -> bool:
    """Group managed service accounts end with '$'."""
    return isinstance(username, str) and username.endswith('$')


class ServiceState(str, Enum):
    """State of a service as reported by the service control manager."""
    UNREGISTERED = 'unregistered'
    STOPPED = 'stopped'
    RUNNING = 'running'


def _to_configuration_error(exc: ValidationError, model_name: str) -> ConfigurationError:
    """Translate the first pydantic error into the matching ConfigurationError."""
    error = exc.errors()[0]
    loc = [str(part) for part in error['loc']]
    original = error.get('ctx', {}).get('error')

    if isinstance(original, ConfigurationError):
        if not loc or loc[-1] != original.field:
            loc.append(original.field)
        return type(original)('.'.join(loc), original.message)

    field = '.'.join(loc) or model_name
    if error['type'] == 'missing' or error.get('input', '') is None:
        return MissingFieldError(field, 'is required')
    if error['type'].endswith('_type'):
        return InvalidTypeError(
            field, f"{error['msg']}, received {type(error.get('input')).__name__}"
        )
    if error['type'] == 'enum':
        return EnumValidationError(field, error['msg'])
    message = error['msg']
    if error['type'] == 'value_error' and original is not None:
        message = str(original)
    return ValidationRangeError(field, message)


class _ValidatedModel(BaseModel):
    """
    Immutable model whose construction errors surface as ConfigurationError.
    """
    model_config = ConfigDict(frozen=True)

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise _to_configuration_error(e, type(self).__name__) from e

    @classmethod
    def from_dict(cls, data: Any):
        """Build the model from caller-supplied plain data."""
        if data is None:
            raise MissingFieldError(cls.__name__, 'configuration data is required')
        if not isinstance(data, Mapping):
            raise InvalidTypeError(
                cls.__name__, f"expected a mapping, received {type(data).__name__}"
            )
        return cls(**data)


def _ensure_directory(path: str) -> str:
    directory = os.path.abspath(path)
    try:
        Path(directory).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ValueError(f"cannot create directory '{directory}': {e.strerror}")
    return directory


class LogPolicy(_ValidatedModel):
    """
    Log settings of a wrapped service.

    Settings that do not apply to the chosen mode are accepted and simply
    left out of the generated configuration.
    """
    path: Optional[NonEmptyStr] = None
    mode: Optional[LogMode] = None
    size_threshold: Optional[PositiveInt] = None
    keep_files: Optional[PositiveInt] = None
    date_pattern: Optional[NonEmptyStr] = None
    auto_roll_at_time: Optional[NonEmptyStr] = None

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        if v is None:
            return v
        return _ensure_directory(v)

    @model_validator(mode='after')
    def validate_date_pattern(self):
        if self.mode in PATTERN_MODES and self.date_pattern is None:
            raise MissingFieldError(
                'date_pattern', f"is required when mode is '{self.mode.value}'"
            )
        return self


class ServiceAccount(_ValidatedModel):
    """
    Account the service runs under. Without a username the wrapper uses
    LocalSystem.
    """
    domain: Optional[NonEmptyStr] = None
    username: Optional[NonEmptyStr] = None
    password: Optional[NonEmptyStr] = None
    allow_service_logon: Optional[StrictBool] = None

    @model_validator(mode='before')
    @classmethod
    def drop_password_for_passwordless_accounts(cls, data):
        # Managed and built-in accounts never carry a credential
        if isinstance(data, Mapping):
            username = data.get('username')
            domain = data.get('domain')
            if is_managed_account(username) or is_builtin_account(username, domain):
                data = dict(data, password=None)
        return data

    @property
    def qualified_name(self) -> Optional[str]:
        return qualify_account(self.domain, self.username)

    @property
    def is_builtin(self) -> bool:
        return is_builtin_account(self.username, self.domain)

    @property
    def is_managed(self) -> bool:
        return is_managed_account(self.username)

    @property
    def requires_grant(self) -> bool:
        """Whether the account must be added to the service DACL after install."""
        return bool(self.username) and not self.is_builtin


class ServiceConfiguration(_ValidatedModel):
    """
    Desired state of one WinSW-wrapped Windows service.
    """
    id: NonEmptyStr
    name: NonEmptyStr
    executable: NonEmptyStr
    config_directory: NonEmptyStr
    description: Optional[NonEmptyStr] = None
    arguments: Optional[Annotated[Tuple[StrictStr, ...], Field(min_length=1)]] = None
    log: Optional[LogPolicy] = None
    account: Optional[ServiceAccount] = None

    @field_validator('executable')
    @classmethod
    def validate_executable(cls, v):
        # Checked against the host now; the file may still vanish before use
        if shutil.which(v) is None:
            raise ValueError(f"'{v}' should exist and be executable or be in the system PATH")
        return v

    @field_validator('config_directory')
    @classmethod
    def validate_config_directory(cls, v):
        return _ensure_directory(v)

    @field_validator('log', 'account', mode='before')
    @classmethod
    def reject_empty_mapping(cls, v, info):
        if isinstance(v, Mapping) and not v:
            raise ValueError(f"{info.field_name} should be a non-empty mapping")
        return v

    @property
    def config_file_path(self) -> str:
        return os.path.join(self.config_directory, f"{self.id}.service.xml")

    def config_exists(self) -> bool:
        return os.path.isfile(self.config_file_path)
