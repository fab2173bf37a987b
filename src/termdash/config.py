"""Configuration and logging setup for termdash."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from textual.logging import TextualHandler

logger = logging.getLogger(__name__)

DEFAULT_ASSETS = ("bitcoin", "ethereum", "solana", "dogecoin", "monero")
CRYPTO_ENDPOINT = "https://api.coingecko.com/api/v3/simple/price"
WEATHER_ENDPOINT = "https://wttr.in"
USER_AGENT = "TermDash/1.0"
MIN_RENDER_INTERVAL = 0.1
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True, frozen=True)
class DashboardConfig:
    """Settings for the sources, the facade and the renderer."""

    render_interval: float = 1.0
    cpu_interval: float = 1.0
    network_interval: float = 1.0
    process_interval: float = 1.0
    sensor_interval: float = 5.0
    crypto_interval: float = 60.0
    weather_interval: float = 15 * 60.0
    crypto_assets: tuple[str, ...] = DEFAULT_ASSETS
    crypto_currency: str = "usd"
    crypto_endpoint: str = CRYPTO_ENDPOINT
    weather_location: str = "Jalandhar"
    weather_endpoint: str = WEATHER_ENDPOINT
    connect_timeout: float = 10.0
    read_timeout: float = 5.0
    git_timeout: float = 2.0
    git_cwd: str | None = None
    top_processes: int = 5
    log_level: str = "WARNING"
    log_file: str | None = None

    def __post_init__(self) -> None:
        # Frozen dataclass: bypass __setattr__ for normalization
        object.__setattr__(self, "render_interval", max(MIN_RENDER_INTERVAL, self.render_interval))
        object.__setattr__(self, "top_processes", max(0, self.top_processes))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "DashboardConfig":
        """
        Build a config from TERMDASH_* environment variables.

        Unset or malformed values keep their defaults.
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        refresh = _parse_float(env.get("TERMDASH_REFRESH"))
        if refresh is not None:
            kwargs["render_interval"] = refresh

        top = _parse_int(env.get("TERMDASH_TOP"))
        if top is not None:
            kwargs["top_processes"] = top

        assets = env.get("TERMDASH_ASSETS")
        if assets:
            parsed = tuple(a.strip().lower() for a in assets.split(",") if a.strip())
            if parsed:
                kwargs["crypto_assets"] = parsed

        if env.get("TERMDASH_CURRENCY"):
            kwargs["crypto_currency"] = env["TERMDASH_CURRENCY"].strip().lower()
        if env.get("TERMDASH_WEATHER_LOCATION"):
            kwargs["weather_location"] = env["TERMDASH_WEATHER_LOCATION"].strip()
        if env.get("TERMDASH_LOG_LEVEL"):
            kwargs["log_level"] = env["TERMDASH_LOG_LEVEL"].strip().upper()
        if env.get("TERMDASH_LOG_FILE"):
            kwargs["log_file"] = env["TERMDASH_LOG_FILE"]

        return cls(**kwargs)


def _parse_float(raw: str | None) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring malformed number %r", raw)
        return None


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring malformed integer %r", raw)
        return None


def configure_logging(config: DashboardConfig) -> None:
    """
    Route log records away from the live terminal.

    Records go to the Textual devtools console and, if configured, to a file.
    """
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.WARNING

    handlers: list[logging.Handler] = [TextualHandler()]
    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
