from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from .errors import ConfigError
from .util import Paths, env

logger = logging.getLogger(__name__)

_KEYS = ("server", "timeout_seconds", "bearer_token", "basic_user", "basic_pass")


def _load_toml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Invalid config file: {path}", hint=str(e)) from e


def _profile_tables(data: dict, path: Path) -> Dict[str, dict]:
    raw = data.get("profiles") or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config file: {path}", hint="'profiles' must be a table")
    for name, table in raw.items():
        if not isinstance(table, dict):
            raise ConfigError(f"Invalid config file: {path}", hint=f"[profiles.{name}] must be a table")
    return raw


def normalize_url(url: str) -> str:
    return url.rstrip("/")


def validate_server_url(url: str) -> None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise ConfigError(
            f"Invalid URL format: {url}",
            hint="URL must start with http:// or https://\nExample: http://localhost:9090",
        )
    if not parts.hostname:
        raise ConfigError(f"Invalid URL format: {url}", hint="URL must include a hostname.")
    if parts.query or parts.fragment:
        raise ConfigError(f"Invalid URL format: {url}", hint="URL cannot contain query parameters or fragments.")


def _timeout(value: Any, source: str) -> float:
    try:
        t = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{source} must be a number") from e
    if t <= 0:
        raise ConfigError(f"{source} must be positive")
    return t


@dataclass
class Settings:
    """
    Connection settings for one Prometheus server.

    config.toml:
      server = "http://localhost:9090"
      timeout_seconds = 10
      profile = "prod"            # optional default profile

      [profiles.prod]
      server = "https://prometheus.example.com"
      bearer_token = "..."
    """

    server: Optional[str] = None
    timeout_seconds: float = 10.0
    bearer_token: Optional[str] = None
    basic_user: Optional[str] = None
    basic_pass: Optional[str] = None

    profile: Optional[str] = None
    profiles: List[str] = field(default_factory=list)
    config_path: Optional[Path] = None

    @property
    def auth_type(self) -> str:
        if self.bearer_token:
            return "bearer"
        if self.basic_user:
            return "basic"
        return "none"

    @property
    def basic_auth(self) -> Optional[Tuple[str, str]]:
        if self.basic_user and self.basic_pass:
            return (self.basic_user, self.basic_pass)
        return None

    def _apply(self, data: Dict[str, Any], source: str) -> None:
        if "server" in data:
            self.server = str(data["server"]) if data["server"] else None
        if "timeout_seconds" in data:
            self.timeout_seconds = _timeout(data["timeout_seconds"], f"{source}: timeout_seconds")
        for key in ("bearer_token", "basic_user", "basic_pass"):
            if key in data:
                setattr(self, key, str(data[key]) if data[key] else None)

    def validate(self) -> None:
        if self.server:
            validate_server_url(self.server)
            self.server = normalize_url(self.server)
        if self.bearer_token and (self.basic_user or self.basic_pass):
            raise ConfigError("Cannot use both basic auth and bearer token together.")
        if bool(self.basic_user) != bool(self.basic_pass):
            raise ConfigError("Both username and password are required for basic auth.")

    @staticmethod
    def load(path: Optional[Path] = None, profile: Optional[str] = None) -> "Settings":
        paths = Paths.default()
        cfg_path = path or paths.config_path

        data = _load_toml(cfg_path)
        raw_profiles = _profile_tables(data, cfg_path)

        s = Settings(config_path=cfg_path, profiles=sorted(raw_profiles))

        # file config
        s._apply({k: v for k, v in data.items() if k in _KEYS}, str(cfg_path))

        chosen = profile or env("PROM_CLI_PROFILE") or data.get("profile")
        if chosen:
            if chosen not in raw_profiles:
                known = ", ".join(s.profiles) or "none"
                raise ConfigError(
                    f"Profile '{chosen}' not found.",
                    hint=f"Available profiles: {known}\nConfig file: {cfg_path}",
                )
            s.profile = str(chosen)
            s._apply(raw_profiles[chosen], f"{cfg_path} [profiles.{chosen}]")

        # env overrides (highest priority)
        env_server = env("PROM_CLI_SERVER")
        env_timeout = env("PROM_CLI_TIMEOUT")
        if env_server:
            s.server = env_server
        if env_timeout:
            s.timeout_seconds = _timeout(env_timeout, "PROM_CLI_TIMEOUT")
        for key, name in (
            ("bearer_token", "PROM_CLI_BEARER_TOKEN"),
            ("basic_user", "PROM_CLI_BASIC_USER"),
            ("basic_pass", "PROM_CLI_BASIC_PASS"),
        ):
            value = env(name)
            if value:
                setattr(s, key, value)

        s.validate()
        logger.debug("settings loaded from %s (profile=%s)", cfg_path, s.profile)
        return s

    def require_server(self) -> str:
        if not self.server:
            raise ConfigError(
                "No server configured.",
                hint=(
                    f"Set `server = \"http://localhost:9090\"` in {self.config_path}\n"
                    "or export PROM_CLI_SERVER."
                ),
            )
        return self.server


def describe_profiles(path: Optional[Path] = None, active: Optional[str] = None) -> List[Dict[str, str]]:
    """One record per profile in the config file, for `config list`."""
    cfg_path = path or Paths.default().config_path
    data = _load_toml(cfg_path)
    raw_profiles = _profile_tables(data, cfg_path)
    active = active or env("PROM_CLI_PROFILE") or data.get("profile")
    out = []
    for name in sorted(raw_profiles):
        p = raw_profiles[name]
        if p.get("bearer_token"):
            auth = "bearer token"
        elif p.get("basic_user"):
            auth = "basic auth"
        else:
            auth = "none"
        out.append(
            {
                "name": name,
                "active": "*" if name == active else "",
                "server": str(p.get("server", data.get("server", ""))),
                "auth": auth,
            }
        )
    return out
