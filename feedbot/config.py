"""Configuration loading and validation"""
import os
from datetime import timedelta
from dotenv import load_dotenv

from .utils.logger import setup_logger

logger = setup_logger(__name__)

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration"""

    def __init__(self):
        """Load and validate configuration"""
        # Discord configuration
        self.discord_bot_token = self._get_required("DISCORD_BOT_TOKEN")
        self.command_prefix = os.getenv("COMMAND_PREFIX", "!")

        # Upstream scoreboard API
        self.espn_base_url = os.getenv(
            "ESPN_BASE_URL",
            "https://site.api.espn.com/apis/site/v2/sports"
        )
        self.espn_sport = os.getenv("ESPN_SPORT", "football")
        self.espn_league = os.getenv("ESPN_LEAGUE", "nfl")

        # Scheduler settings
        self.tick_interval_seconds = self._get_int("TICK_INTERVAL_SECONDS", 60)
        self.min_cadence_minutes = self._get_int("MIN_CADENCE_MINUTES", 1)
        self.default_cadence_minutes = self._get_int("DEFAULT_CADENCE_MINUTES", 15)

        # Timeouts
        self.http_timeout_seconds = self._get_float("HTTP_TIMEOUT_SECONDS", 10.0)
        self.send_timeout_seconds = self._get_float("SEND_TIMEOUT_SECONDS", 15.0)

        # Storage
        self.database_path = os.getenv("DATABASE_PATH", "data/bot.db")

        self._validate()
        logger.info("Configuration loaded successfully")

    @property
    def min_cadence(self) -> timedelta:
        return timedelta(minutes=self.min_cadence_minutes)

    def _get_required(self, key: str) -> str:
        """Get required environment variable"""
        value = os.getenv(key)
        if not value:
            raise ValueError(f"Required environment variable {key} is not set")
        return value

    def _get_int(self, key: str, default: int) -> int:
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"{key} must be an integer, got {value!r}")

    def _get_float(self, key: str, default: float) -> float:
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"{key} must be a number, got {value!r}")

    def _validate(self):
        """Validate configuration values"""
        if self.tick_interval_seconds < 1:
            raise ValueError("TICK_INTERVAL_SECONDS must be at least 1 second")

        if self.min_cadence_minutes < 1:
            raise ValueError("MIN_CADENCE_MINUTES must be at least 1 minute")

        if self.default_cadence_minutes < self.min_cadence_minutes:
            raise ValueError("DEFAULT_CADENCE_MINUTES must not be below MIN_CADENCE_MINUTES")

        if self.http_timeout_seconds <= 0 or self.send_timeout_seconds <= 0:
            raise ValueError("HTTP_TIMEOUT_SECONDS and SEND_TIMEOUT_SECONDS must be positive")

        if not self.command_prefix:
            raise ValueError("COMMAND_PREFIX must not be empty")

        logger.info(f"Scoreboard: {self.espn_sport}/{self.espn_league}")
        logger.info(f"Scheduler tick: {self.tick_interval_seconds} seconds")
        logger.info(
            f"Update cadence: default {self.default_cadence_minutes} minutes, "
            f"minimum {self.min_cadence_minutes} minutes"
        )
