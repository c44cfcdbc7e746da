# Task board — configuration
# Override via taskboard.yaml or TASKBOARD_* environment variables.

import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

CONFIG_PATH = Path(__file__).parent / "taskboard.yaml"
DEFAULT_DB = Path.home() / ".local" / "share" / "taskboard" / "taskboard.db"


@dataclass
class Settings:
    """Runtime configuration for the board server and store."""

    # Storage
    db_path: str = str(DEFAULT_DB)

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret: str = ""   # empty = mutating endpoints refuse with 503

    # Behavior
    log_level: str = "INFO"
    lock_timeout: float = 10.0   # seconds SQLite waits on a busy writer

    def apply_env(self):
        """Environment wins over the file."""
        if os.environ.get("TASKBOARD_DB"):
            self.db_path = os.environ["TASKBOARD_DB"]
        if os.environ.get("TASKBOARD_API_SECRET"):
            self.api_secret = os.environ["TASKBOARD_API_SECRET"]
        if os.environ.get("TASKBOARD_LOG_LEVEL"):
            self.log_level = os.environ["TASKBOARD_LOG_LEVEL"].upper()
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Settings":
        """Load settings from YAML, falling back to defaults."""
        path = path or os.environ.get("TASKBOARD_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError):
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        return cfg
