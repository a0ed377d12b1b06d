"""Configuration and domain constants for MindCanvas."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# ==================== Canvas Limits ====================

MIN_ZOOM = 0.1
MAX_ZOOM = 3.0
ZOOM_STEP = 1.2
DEFAULT_GRID_SIZE = 20
DEFAULT_BOUNDS = (-2000.0, 2000.0, -2000.0, 2000.0)  # min_x, max_x, min_y, max_y
DEFAULT_VIEWPORT = (1200.0, 800.0)
DRAG_THRESHOLD = 5  # pixels, used by the GTK canvas only

# ==================== Node Defaults ====================

MIN_NODE_WIDTH = 50
MIN_NODE_HEIGHT = 30
NEW_NODE_WIDTH = 150
NEW_NODE_HEIGHT = 60
NEW_NODE_TEXT = "New Node"
ROOT_NODE_WIDTH = 200
ROOT_NODE_HEIGHT = 60
ROOT_NODE_POSITION = (400.0, 300.0)
DUPLICATE_OFFSET = 20

# ==================== Document Limits ====================

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_TAG_LENGTH = 20
HISTORY_LIMIT = 50

# ==================== Remote Service ====================

DEFAULT_API_URL = "http://localhost:3000/api"
DEFAULT_TIMEOUT = 15.0
TOKEN_LIFETIME_SECONDS = 24 * 60 * 60


def get_data_dir(base: Optional[Path] = None) -> Path:
    """Get the application data directory, creating it if needed."""
    data_dir = base or (Path.home() / ".local" / "share" / "mindcanvas")
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "exports").mkdir(exist_ok=True)
    (data_dir / "logs").mkdir(exist_ok=True)
    return data_dir


def _env_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    """Runtime settings, read from MINDCANVAS_* environment variables."""
    api_url: str = DEFAULT_API_URL
    data_dir: Path = field(default_factory=get_data_dir)
    log_level: str = "INFO"
    timeout: float = DEFAULT_TIMEOUT
    skip_preflight: bool = False

    @property
    def db_path(self) -> Path:
        return self.data_dir / "mindcanvas.db"

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def export_dir(self) -> Path:
        return self.data_dir / "exports"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "Config":
        env = os.environ if environ is None else environ

        data_dir = env.get("MINDCANVAS_DATA_DIR")
        timeout = env.get("MINDCANVAS_TIMEOUT")
        try:
            timeout_value = float(timeout) if timeout else DEFAULT_TIMEOUT
        except ValueError:
            raise ValueError(f"MINDCANVAS_TIMEOUT must be a number, got {timeout!r}")

        return cls(
            api_url=(env.get("MINDCANVAS_API_URL") or DEFAULT_API_URL).rstrip("/"),
            data_dir=get_data_dir(Path(data_dir).expanduser() if data_dir else None),
            log_level=(env.get("MINDCANVAS_LOG_LEVEL") or "INFO").upper(),
            timeout=timeout_value,
            skip_preflight=_env_bool(env.get("MINDCANVAS_SKIP_PREFLIGHT")),
        )
