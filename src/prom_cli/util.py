from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v not in (None, "") else default


@dataclass(frozen=True)
class Paths:
    config_path: Path

    @staticmethod
    def default() -> "Paths":
        explicit = env("PROM_CLI_CONFIG")
        if explicit:
            return Paths(config_path=Path(explicit).expanduser())
        # XDG-ish default
        base = Path(env("XDG_CONFIG_HOME") or (Path.home() / ".config"))
        return Paths(config_path=base / "prom-cli" / "config.toml")


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Diagnostics go to stderr so stdout only ever carries rendered results."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    root = logging.getLogger("prom_cli")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False
