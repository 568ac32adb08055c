"""
Configuration management for Drive Logger.

Config files:
- .drive-logger/settings.json: runtime tuning (channel address, timers, folder)
- .drive-logger/store.json: credentials and conversation bindings (see store.py)

Client registration can also come from the environment:
DRIVE_LOGGER_CLIENT_ID / DRIVE_LOGGER_CLIENT_SECRET.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional

from .constants import FOLDER_NAME

logger = logging.getLogger(__name__)


@dataclass
class LoggerSettings:
    """User settings that persist across runs."""
    host: str = "127.0.0.1"
    port: int = 8765
    # Loopback port the OAuth redirect lands on
    redirect_port: int = 8766
    folder_name: str = FOLDER_NAME
    poll_interval: float = 2.0
    mutation_debounce: float = 0.3
    ping_interval: float = 15.0
    # Rescans after a conversation change, seconds after the change
    burst_delays: list[float] = field(default_factory=lambda: [0.8, 2.0, 4.0])
    # Rescans after a send action
    nudge_delays: list[float] = field(default_factory=lambda: [0.8, 1.8])
    cdp_url: str = "http://localhost:9222"
    path: Optional[Path] = field(default=None, repr=False, compare=False)

    @property
    def channel_url(self) -> str:
        return f"ws://{self.host}:{self.port}/port"

    @property
    def redirect_uri(self) -> str:
        """Fixed redirect URI that must be registered on the OAuth client."""
        return f"http://127.0.0.1:{self.redirect_port}/"

    @classmethod
    def load(cls, path: Path) -> "LoggerSettings":
        """Load settings from file, falling back to defaults."""
        settings = cls(path=path)

        if path.exists():
            try:
                with open(path) as f:
                    data = json.load(f)
                known = {f.name for f in fields(cls) if f.name != "path"}
                for key, value in data.items():
                    if key in known:
                        setattr(settings, key, value)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning("Could not load settings.json: %s", e)

        return settings

    def save(self):
        """Save settings to file."""
        if self.path is None:
            raise ValueError("LoggerSettings has no path to save to")
        data = asdict(self)
        data.pop("path", None)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)


def client_registration_from_env() -> tuple[Optional[str], Optional[str]]:
    """Return (client_id, client_secret) from the environment, if set."""
    client_id = os.environ.get("DRIVE_LOGGER_CLIENT_ID", "").strip() or None
    client_secret = os.environ.get("DRIVE_LOGGER_CLIENT_SECRET", "").strip() or None
    return client_id, client_secret
