# planboard — configuration
# Override defaults via planboard.yaml, the PLANBOARD_DB env var, or CLI args.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

from .errors import ConfigError

CONFIG_PATH = Path.home() / ".config" / "planboard" / "planboard.yaml"


@dataclass
class Config:
    """Runtime configuration for the planning engine."""

    # Storage
    db_path: str = "~/.local/share/planboard/planboard.db"

    # Ordering
    position_spacing: float = 1024.0
    min_position_gap: float = 1e-9

    # Dependencies: does a cancelled blocker keep blocking its dependents?
    cancelled_blocks: bool = True

    # AI suggestion collaborator (None = disabled)
    suggestions_url: Optional[str] = None
    suggestions_timeout: float = 30.0

    log_level: str = "INFO"

    def resolve_paths(self):
        """Apply env overrides and expand ~."""
        env_db = os.environ.get("PLANBOARD_DB")
        if env_db:
            self.db_path = env_db
        self.db_path = str(Path(self.db_path).expanduser())

    def validate(self):
        if self.position_spacing <= 0:
            raise ConfigError(f"position_spacing must be positive, got {self.position_spacing}")
        if not 0 < self.min_position_gap < self.position_spacing:
            raise ConfigError(
                f"min_position_gap must be in (0, position_spacing), got {self.min_position_gap}"
            )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}")
            known = {f.name for f in fields(cls)}
            cfg = cls(**{k: v for k, v in data.items() if k in known})
        elif path:
            raise ConfigError(f"Config file not found: {cfg_path}")
        else:
            cfg = cls()
        cfg.resolve_paths()
        cfg.validate()
        return cfg
