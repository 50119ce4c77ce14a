"""Configuration for the cvswatch engine and for individual repositories.

Two layers of configuration exist:

- :class:`EngineConfig` holds process-wide settings read from ``CVSWATCH_*``
  environment variables;
- :class:`RepositorySettings` holds per-path settings read from the nearest
  ``.cvswatch.yaml`` file at or above a repository root.

Usage
-----
Load engine configuration from the environment:

>>> import os
>>> os.environ["CVSWATCH_STATUS_LIMIT"] = "200"
>>> EngineConfig.from_env().status_limit
200

A ``.cvswatch.yaml`` file disables a working copy like this::

    enabled: false

"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cvswatch.cvs.client import DEFAULT_STATUS_LIMIT

if typ.TYPE_CHECKING:
    import collections.abc as cabc

SETTINGS_FILE = ".cvswatch.yaml"
YAML_VERSION = (1, 2)

DEFAULT_DEBOUNCE_SECONDS = 1.0

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class ConfigError(ValueError):
    """Raised when configuration values cannot be used."""

    @classmethod
    def not_integer(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a non-integer value."""
        return cls(f"{env_var} must be an integer, got: {raw!r}")

    @classmethod
    def not_positive(cls, env_var: str, value: float) -> ConfigError:
        """Return an error for a zero or negative value."""
        return cls(f"{env_var} must be positive, got: {value}")

    @classmethod
    def not_number(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a value that is not a number."""
        return cls(f"{env_var} must be a number, got: {raw!r}")

    @classmethod
    def not_boolean(cls, env_var: str, raw: str) -> ConfigError:
        """Return an error for a value that is not a recognised boolean."""
        return cls(f"{env_var} must be a boolean, got: {raw!r}")

    @classmethod
    def invalid_file(cls, path: Path, reason: str) -> ConfigError:
        """Return an error for a settings file that cannot be used."""
        return cls(f"Invalid settings in {path}: {reason}")


class RepositorySettings(msgspec.Struct, kw_only=True, frozen=True):
    """Settings that apply to one working copy.

    Attributes
    ----------
    enabled : bool
        Whether cvswatch opens repositories at this path.
    autorefresh : bool
        Whether file changes trigger a debounced status refresh.
    status_limit : int
        Maximum number of status entries kept per refresh.
    encoding : str
        Codec used to decode the client's output.
    retry_on_lock : bool
        Whether operations wait out another client's repository lock.

    """

    enabled: bool = True
    autorefresh: bool = True
    status_limit: typ.Annotated[int, msgspec.Meta(gt=0)] = DEFAULT_STATUS_LIMIT
    encoding: str = "utf-8"
    retry_on_lock: bool = False


class SettingsProvider(typ.Protocol):
    """Anything that resolves the settings that apply to a path."""

    def settings_for(self, path: Path) -> RepositorySettings: ...


class FileSettingsProvider:
    """Resolve settings from the nearest ``.cvswatch.yaml`` file.

    Keys missing from the file keep the provider's defaults. Files are parsed
    on every lookup, so edits apply to the next repository opened.
    """

    def __init__(self, defaults: RepositorySettings | None = None) -> None:
        """Use ``defaults`` for every key a settings file does not set."""
        self.defaults = defaults or RepositorySettings()

    def find_settings_file(self, path: Path) -> Path | None:
        """Return the settings file at or above ``path``, if any."""
        for directory in (path, *path.parents):
            candidate = directory / SETTINGS_FILE
            if candidate.is_file():
                return candidate
        return None

    def settings_for(self, path: Path) -> RepositorySettings:
        """Return the settings that apply to ``path``.

        Raises
        ------
        ConfigError
            If the nearest settings file cannot be parsed or fails validation.

        """
        settings_file = self.find_settings_file(path)
        if settings_file is None:
            return self.defaults
        return load_settings(settings_file, defaults=self.defaults)


def load_settings(
    path: Path, *, defaults: RepositorySettings | None = None
) -> RepositorySettings:
    """Parse ``path`` as YAML and merge it over ``defaults``."""
    base = defaults or RepositorySettings()
    try:
        loaded = _yaml().load(path.read_text(encoding="utf-8"))
    except (OSError, YAMLError) as exc:
        raise ConfigError.invalid_file(path, f"failed to parse YAML: {exc}") from exc

    if loaded is None:
        return base
    if not isinstance(loaded, dict):
        raise ConfigError.invalid_file(path, "expected a mapping at the top level")

    merged = {**msgspec.structs.asdict(base), **loaded}
    try:
        return msgspec.convert(merged, type=RepositorySettings)
    except msgspec.ValidationError as exc:
        raise ConfigError.invalid_file(path, str(exc)) from exc


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml


def _parse_positive_int(
    environ: cabc.Mapping[str, str], env_var: str, default: int
) -> int:
    raw = environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError.not_integer(env_var, raw) from exc
    if value < 1:
        raise ConfigError.not_positive(env_var, value)
    return value


def _parse_positive_float(
    environ: cabc.Mapping[str, str], env_var: str, default: float
) -> float:
    raw = environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError.not_number(env_var, raw) from exc
    if value <= 0:
        raise ConfigError.not_positive(env_var, value)
    return value


def _parse_bool(
    environ: cabc.Mapping[str, str], env_var: str, *, default: bool
) -> bool:
    raw = environ.get(env_var, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigError.not_boolean(env_var, raw)


@dc.dataclass(frozen=True, slots=True)
class EngineConfig:
    """Process-wide engine configuration.

    Attributes
    ----------
    enabled
        Whether activation should discover the client at all.
    cvs_path
        Explicit client binary; ``None`` searches ``PATH``.
    log_level
        Level passed to :func:`cvswatch.logging.configure_logging`.
    status_limit
        Default cap on status entries for repositories without a settings
        file.
    debounce_seconds
        Quiet period before file changes trigger an automatic refresh.

    """

    enabled: bool = True
    cvs_path: Path | None = None
    log_level: str = "INFO"
    status_limit: int = DEFAULT_STATUS_LIMIT
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS

    @classmethod
    def from_env(cls, environ: cabc.Mapping[str, str] | None = None) -> EngineConfig:
        """Create configuration from environment variables.

        Reads the following environment variables:

        - ``CVSWATCH_ENABLED``: ``true``/``false`` (also ``1``/``0``,
          ``yes``/``no``, ``on``/``off``).
        - ``CVSWATCH_CVS_PATH``: explicit path to the client binary.
        - ``CVSWATCH_LOG_LEVEL``: log level name.
        - ``CVSWATCH_STATUS_LIMIT``: positive integer.
        - ``CVSWATCH_DEBOUNCE_SECONDS``: positive number of seconds.

        Raises
        ------
        ConfigError
            If a variable is set to a value that cannot be used.

        """
        env = os.environ if environ is None else environ

        cvs_path: Path | None = None
        raw_cvs_path = env.get("CVSWATCH_CVS_PATH", "")
        if raw_cvs_path.strip():
            cvs_path = Path(raw_cvs_path.strip())

        return cls(
            enabled=_parse_bool(env, "CVSWATCH_ENABLED", default=True),
            cvs_path=cvs_path,
            log_level=env.get("CVSWATCH_LOG_LEVEL", "").strip() or "INFO",
            status_limit=_parse_positive_int(
                env, "CVSWATCH_STATUS_LIMIT", DEFAULT_STATUS_LIMIT
            ),
            debounce_seconds=_parse_positive_float(
                env, "CVSWATCH_DEBOUNCE_SECONDS", DEFAULT_DEBOUNCE_SECONDS
            ),
        )

    def repository_defaults(self) -> RepositorySettings:
        """Return per-repository defaults derived from this configuration."""
        return RepositorySettings(status_limit=self.status_limit)


__all__ = [
    "SETTINGS_FILE",
    "ConfigError",
    "EngineConfig",
    "FileSettingsProvider",
    "RepositorySettings",
    "SettingsProvider",
    "load_settings",
]
