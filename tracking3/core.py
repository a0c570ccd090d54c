"""tracking3 core - configuration, config loading, request headers."""

import base64
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values

from tracking3.errors import ConfigurationError

SELF_VERSION = "1.0.0"
API_VERSION = "v1"

ENV_PRODUCTION = "production"
ENV_DEVELOPMENT = "development"
ENVIRONMENTS = (ENV_PRODUCTION, ENV_DEVELOPMENT)

DEFAULT_TIMEOUT = 60

ERROR_CODE_MISSING_PASSWORD = 1592824383
ERROR_CODE_MISSING_EMAIL = 1592824491

GLOBAL_DIR = Path.home() / ".tracking3"
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CWD_CONFIG_CANDIDATES = [
    ".tracking3.yaml",
    ".tracking3.yml",
    "tracking3.yaml",
    "tracking3.yml",
]

# camelCase keys used by the other Tracking3 clients
_KEY_ALIASES = {
    "accessToken": "access_token",
    "refreshToken": "refresh_token",
    "idApplication": "id_application",
    "idApiTransaction": "id_api_transaction",
    "doAutoLogin": "do_auto_login",
    "apiVersion": "api_version",
}


# ── Configuration ────────────────────────────────────────────────────────


@dataclass
class Configuration:
    """Connection settings for the Tracking3 API.

    Email and password are always required, even when a token is supplied,
    so the client can log in again once tokens expire.
    """

    email: str | None = None
    password: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    id_application: str | None = None
    id_api_transaction: str | None = None
    do_auto_login: bool = True
    timeout: int = DEFAULT_TIMEOUT
    api_version: str = API_VERSION
    environment: str = ENV_PRODUCTION

    def __post_init__(self) -> None:
        if not self.password:
            raise ConfigurationError(
                "Missing required configuration value: password",
                ERROR_CODE_MISSING_PASSWORD,
            )
        if not self.email:
            raise ConfigurationError(
                "Missing required configuration value: email",
                ERROR_CODE_MISSING_EMAIL,
            )
        if self.environment not in ENVIRONMENTS:
            self.environment = ENV_PRODUCTION
        if not self.api_version:
            self.api_version = API_VERSION
        if not self.timeout:
            self.timeout = DEFAULT_TIMEOUT
        try:
            self.timeout = int(self.timeout)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration value for timeout: {self.timeout!r}",
            ) from e

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "Configuration":
        """Build a Configuration from a dict with snake_case or camelCase keys.

        Unknown keys are ignored; ``None`` values fall back to defaults.
        """
        fields = cls.__dataclass_fields__
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _KEY_ALIASES.get(key, key)
            if name in fields and value is not None:
                kwargs[name] = value
        return cls(**kwargs)

    def has_access_token(self) -> bool:
        return bool(self.access_token)

    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def has_id_application(self) -> bool:
        return bool(self.id_application)

    def has_id_api_transaction(self) -> bool:
        return bool(self.id_api_transaction)


# ── Headers ──────────────────────────────────────────────────────────────


def build_authorization_header(configuration: Configuration) -> str:
    """Return the Authorization header value for a configuration.

    Access token wins over refresh token; basic credentials are the
    fallback. Exactly one form is ever returned.
    """
    if configuration.has_access_token():
        return f"Bearer {configuration.access_token}"
    if configuration.has_refresh_token():
        return f"Bearer {configuration.refresh_token}"
    credentials = base64.b64encode(
        f"{configuration.email}:{configuration.password}".encode(),
    ).decode()
    return f"Basic {credentials}"


def build_user_agent(client_version: str) -> str:
    return f"Tracking3 Core Python Client {client_version}"


def build_headers(
    configuration: Configuration,
    custom_headers: dict[str, str] | None = None,
    client_version: str = SELF_VERSION,
) -> dict[str, str]:
    """Build the default request headers and merge custom headers over them.

    Custom headers replace defaults with the exact same key. Names are not
    case-normalized.
    """
    headers = {
        "Accept": "application/json",
        "Authorization": build_authorization_header(configuration),
        "Content-Type": "application/json",
        "User-Agent": build_user_agent(client_version),
        "X-Strip-Leading-Brackets": "false",
    }
    if configuration.has_id_application():
        headers["X-Id-Application"] = configuration.id_application
    if configuration.has_id_api_transaction():
        headers["X-Id-Api-Transaction"] = configuration.id_api_transaction

    headers.update(custom_headers or {})
    return headers


def render_header_lines(headers: dict[str, str]) -> list[str]:
    """Render headers as 'Name: value' lines, keeping mapping order."""
    return [f"{name}: {value}" for name, value in headers.items() if value is not None]


# ── Config loading ───────────────────────────────────────────────────────


def resolve_path(
    candidates: list[Path],
    default: Path | None = None,
) -> Path | None:
    """Return the first existing path from candidates, else default."""
    for p in candidates:
        if p.exists():
            return p.resolve()
    return default


def resolve_config_path(config_file: str | None) -> Path | None:
    """Find the config file to use.

    Resolution order:
      1. Explicit -c flag (hard — no fallthrough if missing)
      2. .tracking3.yaml (variants) in CWD
      3. ~/.tracking3/config.yaml
    """
    if config_file:
        return resolve_path([Path(config_file)])
    return resolve_path([Path(c) for c in CWD_CONFIG_CANDIDATES] + [GLOBAL_CONFIG])


def load_config(config_path: str | Path | None) -> dict:
    """Load YAML config file. Returns empty sections if not found.

    Stores '_config_dir' in the returned dict so a relative env_file can be
    resolved next to the config file.
    """
    empty = {"base_uri": "", "env_file": None, "configuration": {}, "_config_dir": None}
    if config_path is None:
        return empty
    path = Path(config_path)
    if not path.exists():
        return empty
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return {
        "base_uri": data.get("base_uri") or "",
        "env_file": data.get("env_file"),
        "configuration": data.get("configuration") or {},
        "_config_dir": path.resolve().parent,
    }


def load_env(env_file: str | None, base_dir: str | Path = ".") -> dict[str, str]:
    """Load .env file and merge with os.environ.

    Values from the .env file take precedence over os.environ.
    """
    env = dict(os.environ)
    if env_file:
        dotenv_path = Path(base_dir) / env_file
        if dotenv_path.exists():
            dotenv_vars = dotenv_values(str(dotenv_path))
            env.update({k: v for k, v in dotenv_vars.items() if v is not None})
    return env


def resolve_value(value: Any, env: dict[str, str]) -> Any:
    """Resolve $VAR and ${VAR} references in a string value.

    Unknown variables are left untouched. Non-strings pass through.
    """
    if not isinstance(value, str):
        return value

    def _replace(m: re.Match) -> str:
        var_name = m.group(1) or m.group(2)
        return env.get(var_name, os.environ.get(var_name, m.group(0)))

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", _replace, value)


def resolve_in_obj(obj: Any, env: dict[str, str]) -> Any:
    """Recursively resolve $VAR references in dicts, lists, and strings."""
    if isinstance(obj, str):
        return resolve_value(obj, env)
    if isinstance(obj, dict):
        return {k: resolve_in_obj(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [resolve_in_obj(item, env) for item in obj]
    return obj


def load_configuration(
    config: dict,
    env: dict[str, str],
    overrides: dict[str, Any] | None = None,
) -> Configuration:
    """Build a validated Configuration from a loaded config dict.

    Non-empty overrides (e.g. CLI flags) win over the config file.
    """
    data = resolve_in_obj(dict(config.get("configuration") or {}), env)
    for key, value in (overrides or {}).items():
        if value not in (None, ""):
            data[key] = value
    return Configuration.from_mapping(data)
