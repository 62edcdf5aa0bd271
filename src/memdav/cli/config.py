# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Configuration helpers for the :mod:`memdav.cli.main` entry points."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, cast

import yaml

from ..errors import MemdavError

DEFAULT_CONFIG_PATH = Path("~/.config/memdav/config.toml")
DEFAULT_REALM = "memdav"
DEFAULT_LISTEN_HOST = "127.0.0.1"
DEFAULT_LISTEN_PORT = 39124

ENV_MANIFEST = "MEMDAV_MANIFEST"
ENV_READ_ONLY = "MEMDAV_READ_ONLY"
ENV_USERS = "MEMDAV_USERS"
ENV_REALM = "MEMDAV_REALM"
ENV_LISTEN_HOST = "MEMDAV_LISTEN_HOST"
ENV_LISTEN_PORT = "MEMDAV_LISTEN_PORT"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})

__all__ = ["DEFAULT_CONFIG_PATH", "ConfigError", "ServerConfig", "load_config"]


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Resolved configuration for the memdav gateway."""

    manifest_path: Path | None = None
    read_only: bool = True
    users: Mapping[str, str] = field(default_factory=dict[str, str])
    realm: str = DEFAULT_REALM
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT

    def __post_init__(self) -> None:
        object.__setattr__(self, "users", MappingProxyType(dict(self.users)))

    @property
    def auth_enabled(self) -> bool:
        return bool(self.users)


class ConfigError(MemdavError, ValueError):
    """Raised when the memdav configuration is invalid."""


def load_config(
    path: Path | Mapping[str, Any] | None,
    cli_overrides: object | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> ServerConfig:
    """Load and validate the memdav gateway configuration.

    Parameters
    ----------
    path:
        Path to the configuration file (TOML or YAML). ``None`` falls back to
        ``~/.config/memdav/config.toml``, which may be absent. Tests may pass
        an in-memory mapping to skip filesystem I/O.
    cli_overrides:
        Overrides provided by CLI processing. Keys mirror ``ServerConfig``'s
        field names; ``None`` values are ignored.
    env:
        Optional environment mapping. Defaults to :data:`os.environ`.

    Returns
    -------
    ServerConfig
        The resolved configuration object.
    """

    env_map = dict(os.environ if env is None else env)

    if isinstance(path, Mapping):
        config_data: dict[str, object] = dict(path)
    else:
        config_path = path if path is not None else DEFAULT_CONFIG_PATH.expanduser()
        config_data = _load_config_file(config_path)

    config = _normalise_config(config_data)
    config = _apply_environment_overrides(config=config, env=env_map)
    config = _apply_cli_overrides(config=config, overrides=cli_overrides)

    return _build_config(config=config)


def _load_config_file(path: Path) -> dict[str, object]:
    if not path.exists():
        if path == DEFAULT_CONFIG_PATH.expanduser():
            return {}
        msg = f"Configuration file not found: {path}"
        raise ConfigError(msg)

    suffix = path.suffix.lower()
    data: object
    try:
        if suffix == ".toml" or not suffix:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        elif suffix in {".yaml", ".yml"}:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        else:
            msg = f"Unsupported configuration format: {path.suffix}"
            raise ConfigError(msg)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as exc:
        msg = f"Could not parse configuration file {path}: {exc}"
        raise ConfigError(msg) from exc

    if not isinstance(data, MutableMapping):
        msg = "Configuration file must contain a mapping at the root."
        raise ConfigError(msg)

    mapping = cast(MutableMapping[object, object], data)
    typed_data: dict[str, object] = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            msg = f"Configuration keys must be strings (got {key!r})."
            raise ConfigError(msg)
        typed_data[key] = value
    return typed_data


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object]:
    section_obj = raw.get(name)
    if section_obj is None:
        return {}
    if not isinstance(section_obj, Mapping):
        msg = f"[{name}] must be a table of settings."
        raise ConfigError(msg)
    return cast(Mapping[str, object], section_obj)


def _first_set(*values: object) -> object:
    for value in values:
        if value is not None:
            return value
    return None


def _normalise_config(raw: Mapping[str, object]) -> dict[str, object]:
    filesystem_section = _section(raw, "filesystem")
    listen_section = _section(raw, "listen")
    auth_section = _section(raw, "auth")

    return {
        "manifest_path": _first_set(
            raw.get("manifest_path"),
            raw.get("manifest"),
            filesystem_section.get("manifest"),
        ),
        "read_only": _first_set(
            raw.get("read_only"), filesystem_section.get("read_only")
        ),
        "users": _first_set(raw.get("users"), auth_section.get("users")),
        "realm": _first_set(raw.get("realm"), auth_section.get("realm")),
        "listen_host": _first_set(raw.get("listen_host"), listen_section.get("host")),
        "listen_port": _first_set(raw.get("listen_port"), listen_section.get("port")),
    }


_ENV_FIELDS = (
    (ENV_MANIFEST, "manifest_path"),
    (ENV_READ_ONLY, "read_only"),
    (ENV_REALM, "realm"),
    (ENV_LISTEN_HOST, "listen_host"),
)


def _apply_environment_overrides(
    *, config: dict[str, object], env: Mapping[str, str]
) -> dict[str, object]:
    for variable, key in _ENV_FIELDS:
        if variable in env:
            config[key] = env[variable]
    if ENV_USERS in env:
        config["users"] = _parse_mapping_string(env[ENV_USERS])
    raw_port = env.get(ENV_LISTEN_PORT)
    if raw_port is not None:
        if not raw_port.strip().isdigit():
            msg = f"Invalid port in {ENV_LISTEN_PORT}: {raw_port!r}"
            raise ConfigError(msg)
        config["listen_port"] = int(raw_port)
    return config


def _apply_cli_overrides(
    *, config: dict[str, object], overrides: object | None
) -> dict[str, object]:
    """Layer non-None overrides from a mapping or an argparse-style namespace."""
    if overrides is None:
        return config
    if isinstance(overrides, Mapping):
        values = dict(cast(Mapping[str, object], overrides))
    elif hasattr(overrides, "__dict__"):
        values = dict(vars(overrides))
    else:
        msg = "CLI overrides must be a mapping or support attribute access."
        raise TypeError(msg)
    config.update({key: value for key, value in values.items() if value is not None})
    return config


def _build_config(*, config: Mapping[str, object]) -> ServerConfig:
    return ServerConfig(
        manifest_path=_coerce_path(config.get("manifest_path"), "manifest_path"),
        read_only=_coerce_bool(config.get("read_only"), "read_only", default=True),
        users=_coerce_users(config.get("users")),
        realm=_coerce_optional_str(config.get("realm")) or DEFAULT_REALM,
        listen_host=_coerce_optional_str(config.get("listen_host"))
        or DEFAULT_LISTEN_HOST,
        listen_port=_coerce_port(config.get("listen_port")),
    )


def _coerce_path(value: object, field_name: str) -> Path | None:
    if value is None:
        return None
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser() if value.strip() else None
    msg = f"{field_name} must be a path-like value."
    raise ConfigError(msg)


def _coerce_optional_str(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    msg = "Value must be a string."
    raise ConfigError(msg)


def _coerce_bool(value: object, field_name: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
    msg = f"{field_name} must be a boolean (got {value!r})."
    raise ConfigError(msg)


def _coerce_users(value: object) -> Mapping[str, str]:
    if value is None:
        return MappingProxyType({})
    if isinstance(value, str):
        return MappingProxyType(_parse_mapping_string(value))
    if isinstance(value, Mapping):
        mapping_value = cast(Mapping[object, object], value)
        users: dict[str, str] = {}
        for username, password in mapping_value.items():
            if not isinstance(username, str) or not isinstance(password, str):
                msg = "Users must map user names to password strings."
                raise ConfigError(msg)
            users[username] = password
        return MappingProxyType(users)
    msg = "Users must be provided as a mapping of strings."
    raise ConfigError(msg)


def _parse_mapping_string(value: str) -> dict[str, str]:
    users: dict[str, str] = {}
    for fragment in value.split(","):
        fragment = fragment.strip()
        if not fragment:
            continue
        username, _, password = fragment.partition("=")
        username = username.strip()
        password = password.strip()
        if not username or not password:
            msg = f"Invalid user entry: {fragment!r}"
            raise ConfigError(msg)
        users[username] = password
    return users


def _coerce_port(value: object) -> int:
    if value is None:
        return DEFAULT_LISTEN_PORT
    port: int | None = None
    if isinstance(value, int) and not isinstance(value, bool):
        port = value
    elif isinstance(value, str) and value.strip().isdigit():
        port = int(value)
    if port is None:
        msg = f"Port must be an integer (got {value!r})."
        raise ConfigError(msg)
    if port > 65535 or port < 0:
        msg = f"Port must be between 0 and 65535, got {port}."
        raise ConfigError(msg)
    return port
