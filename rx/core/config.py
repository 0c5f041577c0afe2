"""Typed configuration loading and access.

This module provides dataclasses for the rx.toml structure with full type
safety and validation. When no config file exists, ``Config()`` describes the
RTX Remix stable install (runtime release plus config and license files).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_obj_list,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "Config",
    "ComponentConfig",
    "ExtraFileConfig",
    "NetworkConfig",
    "OutputConfig",
    "ConfigError",
    "load_config",
    "load_config_or_default",
    "DEFAULT_API_URL",
    "DEFAULT_EXCLUDE",
]

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_OUTPUT_DIR = "remix"
DEFAULT_MANIFEST = "build-names.txt"

# Debug symbols and CI bookkeeping shipped inside release archives
DEFAULT_EXCLUDE: tuple[str, ...] = ("*.pdb", "CRC.txt", "artifacts_readme.txt")

_RAW = "https://raw.githubusercontent.com/NVIDIAGameWorks"


@dataclass(frozen=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.message} ({self.path})"
        return self.message


@dataclass(frozen=True, slots=True)
class ComponentConfig:
    """One tracked upstream repository.

    Attributes:
        owner: Repository owner on the forge
        name: Repository name
        asset: Glob selecting the release asset (None: the release must have exactly one)
        prerelease: Consider pre-releases when picking the latest release
        strip_components: Leading archive path components to drop
        exclude: Extra globs skipped when merging this component
    """

    owner: str
    name: str
    asset: str | None = None
    prerelease: bool = False
    strip_components: int = 0
    exclude: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class ExtraFileConfig:
    """A single file fetched by URL into the output tree."""

    name: str
    url: str
    dest: str = ""

    @property
    def relative_path(self) -> str:
        return str(PurePosixPath(self.dest, self.name)) if self.dest else self.name


@dataclass(frozen=True, slots=True)
class OutputConfig:
    """Output tree settings."""

    dir: str = DEFAULT_OUTPUT_DIR
    manifest: str = DEFAULT_MANIFEST
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Forge access, timeouts and retry policy."""

    api_url: str = DEFAULT_API_URL
    token_env: str = DEFAULT_TOKEN_ENV
    timeout: float = 30.0
    attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    workers: int = 2
    temp_dir: str | None = None


def _default_components() -> tuple[ComponentConfig, ...]:
    return (ComponentConfig(owner="NVIDIAGameWorks", name="rtx-remix", asset="*-release.zip"),)


def _default_extras() -> tuple[ExtraFileConfig, ...]:
    return (
        ExtraFileConfig("dxvk.conf", f"{_RAW}/dxvk-remix/main/dxvk.conf"),
        ExtraFileConfig("bridge.conf", f"{_RAW}/bridge-remix/refs/heads/main/bridge.conf", ".trex"),
        ExtraFileConfig("LICENSE.txt", f"{_RAW}/rtx-remix/refs/heads/main/LICENSE.txt"),
        ExtraFileConfig(
            "ThirdPartyLicenses-dxvk.txt",
            f"{_RAW}/dxvk-remix/refs/heads/main/ThirdPartyLicenses.txt",
        ),
        ExtraFileConfig(
            "ThirdPartyLicenses-bridge.txt",
            f"{_RAW}/bridge-remix/refs/heads/main/ThirdPartyLicenses.txt",
        ),
    )


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    output: OutputConfig = field(default_factory=OutputConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    components: tuple[ComponentConfig, ...] = field(default_factory=_default_components)
    extras: tuple[ExtraFileConfig, ...] = field(default_factory=_default_extras)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Config:
        """Create Config from a mapping (parsed TOML).

        Raises:
            ValueError: On invalid values (converted to ConfigError by load_config)
        """
        output: StrDict = get_table(data, "output") or {}
        network: StrDict = get_table(data, "network") or {}

        exclude = get_str_list(output, "exclude")
        if "exclude" in output and exclude is None:
            raise ValueError("output.exclude must be a list of strings")

        net = NetworkConfig(
            api_url=(get_str(network, "api_url") or DEFAULT_API_URL).rstrip("/"),
            token_env=get_str(network, "token_env") or DEFAULT_TOKEN_ENV,
            timeout=_positive(get_float(network, "timeout"), 30.0, "network.timeout"),
            attempts=int(_positive(get_int(network, "attempts"), 4, "network.attempts")),
            base_delay=_non_negative(get_float(network, "base_delay"), 1.0, "network.base_delay"),
            max_delay=_non_negative(get_float(network, "max_delay"), 30.0, "network.max_delay"),
            workers=int(_positive(get_int(network, "workers"), 2, "network.workers")),
            temp_dir=get_str(network, "temp_dir"),
        )

        components = (
            _parse_components(data["component"]) if "component" in data else _default_components()
        )
        extras = _parse_extras(data["extra"]) if "extra" in data else _default_extras()

        return cls(
            output=OutputConfig(
                dir=get_str(output, "dir") or DEFAULT_OUTPUT_DIR,
                manifest=get_str(output, "manifest") or DEFAULT_MANIFEST,
                exclude=tuple(exclude) if exclude is not None else DEFAULT_EXCLUDE,
            ),
            network=net,
            components=components,
            extras=extras,
        )


def _positive(value: float | int | None, default: float, key: str) -> float:
    if value is None:
        return default
    if value <= 0:
        raise ValueError(f"{key} must be greater than zero")
    return value


def _non_negative(value: float | None, default: float, key: str) -> float:
    if value is None:
        return default
    if value < 0:
        raise ValueError(f"{key} must not be negative")
    return value


def _tables(raw: object, key: str) -> list[StrDict]:
    items = as_obj_list(raw)
    if items is None:
        raise ValueError(f"[[{key}]] must be an array of tables")
    tables: list[StrDict] = []
    for i, item in enumerate(items):
        table = as_str_dict(item)
        if table is None:
            raise ValueError(f"{key}[{i}] must be a table")
        tables.append(table)
    return tables


def _parse_components(raw: object) -> tuple[ComponentConfig, ...]:
    components: list[ComponentConfig] = []
    seen: set[str] = set()
    for i, table in enumerate(_tables(raw, "component")):
        owner = get_str(table, "owner")
        name = get_str(table, "name")
        if owner is None or name is None:
            raise ValueError(f"component[{i}] requires owner and name")

        strip = get_int(table, "strip_components") or 0
        if strip < 0:
            raise ValueError(f"component[{i}].strip_components must not be negative")

        exclude = get_str_list(table, "exclude")
        if "exclude" in table and exclude is None:
            raise ValueError(f"component[{i}].exclude must be a list of strings")

        component = ComponentConfig(
            owner=owner,
            name=name,
            asset=get_str(table, "asset"),
            prerelease=bool(get_bool(table, "prerelease")),
            strip_components=strip,
            exclude=tuple(exclude or ()),
        )
        if component.id in seen:
            raise ValueError(f"duplicate component: {component.id}")
        seen.add(component.id)
        components.append(component)
    return tuple(components)


def _parse_extras(raw: object) -> tuple[ExtraFileConfig, ...]:
    extras: list[ExtraFileConfig] = []
    for i, table in enumerate(_tables(raw, "extra")):
        name = get_str(table, "name")
        url = get_str(table, "url")
        if name is None or url is None:
            raise ValueError(f"extra[{i}] requires name and url")
        dest = get_str(table, "dest") or ""
        extra = ExtraFileConfig(name=name, url=url, dest=dest)
        parts = PurePosixPath(extra.relative_path.replace("\\", "/")).parts
        if not parts or parts[0] == "/" or ".." in parts or "/" in name:
            raise ValueError(f"extra[{i}] must stay inside the output directory")
        extras.append(extra)
    return tuple(extras)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to rx.toml

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))


def load_config_or_default(path: Path) -> Result[Config, ConfigError]:
    """Load config from file, or the default config if the file doesn't exist.

    A file that exists but fails to parse is still an error.
    """
    if not path.exists():
        return Ok(Config())
    return load_config(path)
