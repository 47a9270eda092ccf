import os
from dataclasses import dataclass
from typing import Optional

SITE_ORIGIN = "https://store.epicgames.com"
URL_CLAIM = f"{SITE_ORIGIN}/en-US/free-games"
URL_LOGIN = "https://www.epicgames.com/id/login?lang=en-US&noHostRedirect=true&redirectUrl=" + URL_CLAIM

DEFAULT_DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "data"))


def _env_truthy(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass
class Settings:
    timeout_ms: int = 20 * 1000
    dry_run: bool = False
    debug: bool = False
    headless: bool = False
    screen_width: int = 1280
    screen_height: int = 1280
    data_dir: str = DEFAULT_DATA_DIR
    discovery_fallback: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        # SCREEN_WIDTH leaves room for the noVNC frame when running in docker
        raw_width = os.getenv("SCREEN_WIDTH")
        width = _env_int("SCREEN_WIDTH", 0) - 80 if raw_width else 0
        if width <= 0:
            width = 1280
        debug = _env_truthy("PWDEBUG")
        return cls(
            timeout_ms=_env_int("TIMEOUT", 20) * 1000,
            dry_run=_env_truthy("DRYRUN"),
            debug=debug,
            headless=_env_truthy("HEADLESS") and not debug,
            screen_width=width,
            screen_height=_env_int("SCREEN_HEIGHT", 1280),
            data_dir=os.getenv("DATA_DIR") or DEFAULT_DATA_DIR,
            discovery_fallback=_env_truthy("DISCOVERY_FALLBACK", default=True),
        )

    @property
    def operation_timeout(self) -> int:
        """Default Playwright timeout in ms; 0 disables it (debug sessions)."""
        return 0 if self.debug else self.timeout_ms

    @property
    def wait_timeout(self) -> Optional[float]:
        if self.operation_timeout == 0:
            return None
        return self.operation_timeout / 1000

    @property
    def ledger_path(self) -> str:
        return os.path.join(self.data_dir, "epic-games.json")

    @property
    def browser_dir(self) -> str:
        return os.path.join(self.data_dir, "browser")

    @property
    def screenshot_dir(self) -> str:
        return os.path.join(self.data_dir, "screenshots")
