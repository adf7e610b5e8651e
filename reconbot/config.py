"""
Configuration management for the reconciliation bot.

This module builds explicit, immutable configuration objects from environment
variables. Components receive the config they need at construction time and
never read the environment themselves. Entry points are responsible for
calling load_dotenv() before AppConfig.from_env().
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from reconbot.errors import ConfigurationError

SIZING_POLICIES = ("fixed", "kelly")


@dataclass(frozen=True)
class MatcherConfig:
    """Lexical matching parameters."""
    similarity_threshold: float = 0.3
    min_token_length: int = 3


@dataclass(frozen=True)
class RecommendationConfig:
    """Decision thresholds, in percentage points."""
    edge_threshold: float = 5.0
    confidence_threshold: float = 65.0


@dataclass(frozen=True)
class OracleConfig:
    """
    Text-generation oracle settings.

    The default endpoint is Groq's OpenAI-compatible chat completions API.
    """
    api_key: Optional[str] = None
    api_url: str = "https://api.groq.com/openai/v1/chat/completions"
    model: str = "moonshotai/kimi-k2-instruct-0905"
    temperature: float = 0.3
    max_tokens: int = 1000
    timeout: int = 30
    min_interval_seconds: float = 2.0


@dataclass(frozen=True)
class CatalogConfig:
    """Venue catalog endpoints."""
    polymarket_url: str = "https://gamma-api.polymarket.com/markets"
    kalshi_url: str = "https://api.elections.kalshi.com/trade-api/v2/markets"
    conditions_url: str = "https://api.sapience.xyz/graphql"
    timeout: int = 30


@dataclass(frozen=True)
class DryRunConfig:
    """
    Dry run bounds.

    Attributes:
        max_trades: Number of buy decisions that get funded
        wager_amount: Stake per funded trade
        max_markets: Maximum number of markets sent to the oracle
        stop_at_max_trades: Stop forecasting once max_trades trades were funded
        sizing: Stake policy, "fixed" (wager_amount per trade) or "kelly"
        bankroll: Capital Kelly fractions are taken from
        kelly_cap: Largest bankroll fraction a Kelly stake may use
    """
    max_trades: int = 10
    wager_amount: float = 1.0
    max_markets: int = 50
    stop_at_max_trades: bool = True
    sizing: str = "fixed"
    bankroll: float = 1000.0
    kelly_cap: float = 0.1


@dataclass(frozen=True)
class SessionConfig:
    """
    Bounded monitoring session parameters.

    Attributes:
        target_return_multiple: Capital multiple that counts as success (2.0 = +100% ROI)
        loss_floor_pct: ROI at or below which the session is terminated (e.g. -80.0)
        duration_seconds: Wall-clock length of the session
        sample_interval_seconds: Period of the monitoring sampler
        initial_capital: Capital the session starts with
    """
    target_return_multiple: float = 2.0
    loss_floor_pct: float = -80.0
    duration_seconds: float = 24 * 60 * 60
    sample_interval_seconds: float = 60.0
    initial_capital: float = 1000.0

    @property
    def target_roi_pct(self) -> float:
        return (self.target_return_multiple - 1.0) * 100.0


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: Optional[str] = None
    chat_id: Optional[str] = None
    timeout: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)


@dataclass(frozen=True)
class StorageConfig:
    db_path: Path = Path("data/reconbot.db")
    report_dir: Path = Path("reports")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[Path] = None


@dataclass(frozen=True)
class AppConfig:
    """
    Aggregate configuration for the whole application.

    Built once at startup by the entry point and handed to each component.
    """
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    dry_run: DryRunConfig = field(default_factory=DryRunConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            AppConfig instance

        Raises:
            ConfigurationError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        reader = _EnvReader(env)

        api_timeout = reader.get_int("API_TIMEOUT", 30)
        log_file = env.get("LOG_FILE")

        return cls(
            matcher=MatcherConfig(
                similarity_threshold=reader.get_float("SIMILARITY_THRESHOLD", 0.3),
                min_token_length=reader.get_int("MIN_TOKEN_LENGTH", 3),
            ),
            recommendation=RecommendationConfig(
                edge_threshold=reader.get_float("EDGE_THRESHOLD", 5.0),
                confidence_threshold=reader.get_float("CONFIDENCE_THRESHOLD", 65.0),
            ),
            oracle=OracleConfig(
                api_key=env.get("GROQ_API_KEY") or None,
                api_url=env.get("ORACLE_API_URL", OracleConfig.api_url),
                model=env.get("ORACLE_MODEL", OracleConfig.model),
                temperature=reader.get_float("ORACLE_TEMPERATURE", 0.3),
                max_tokens=reader.get_int("ORACLE_MAX_TOKENS", 1000),
                timeout=api_timeout,
                min_interval_seconds=reader.get_float("ORACLE_MIN_INTERVAL", 2.0),
            ),
            catalog=CatalogConfig(
                polymarket_url=env.get("POLYMARKET_API_URL", CatalogConfig.polymarket_url),
                kalshi_url=env.get("KALSHI_API_URL", CatalogConfig.kalshi_url),
                conditions_url=env.get("CONDITIONS_API_URL", CatalogConfig.conditions_url),
                timeout=api_timeout,
            ),
            dry_run=DryRunConfig(
                max_trades=reader.get_int("MAX_TRADES", 10),
                wager_amount=reader.get_float("WAGER_AMOUNT", 1.0),
                max_markets=reader.get_int("MAX_MARKETS", 50),
                sizing=env.get("SIZING_POLICY", "fixed").strip().lower(),
                bankroll=reader.get_float("BANKROLL", 1000.0),
                kelly_cap=reader.get_float("KELLY_CAP", 0.1),
            ),
            session=SessionConfig(
                target_return_multiple=reader.get_float("TARGET_RETURN_MULTIPLE", 2.0),
                loss_floor_pct=reader.get_float("LOSS_FLOOR_PCT", -80.0),
                duration_seconds=reader.get_float("SESSION_DURATION_HOURS", 24.0) * 3600.0,
                sample_interval_seconds=reader.get_float("SESSION_SAMPLE_SECONDS", 60.0),
                initial_capital=reader.get_float("INITIAL_CAPITAL", 1000.0),
            ),
            telegram=TelegramConfig(
                bot_token=env.get("TELEGRAM_BOT_TOKEN") or None,
                chat_id=env.get("TELEGRAM_CHAT_ID") or None,
                timeout=api_timeout,
            ),
            storage=StorageConfig(
                db_path=Path(env.get("DB_PATH", "data/reconbot.db")),
                report_dir=Path(env.get("REPORT_OUTPUT_DIR", "reports")),
            ),
            logging=LoggingConfig(
                level=env.get("LOG_LEVEL", "INFO"),
                file=Path(log_file) if log_file else None,
            ),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate configuration values.

        Returns:
            tuple: (is_valid, list_of_errors)
        """
        errors: list[str] = []

        if not (0.0 <= self.matcher.similarity_threshold <= 1.0):
            errors.append("SIMILARITY_THRESHOLD must be between 0.0 and 1.0")

        if self.matcher.min_token_length < 0:
            errors.append("MIN_TOKEN_LENGTH cannot be negative")

        if self.recommendation.edge_threshold < 0:
            errors.append("EDGE_THRESHOLD cannot be negative")

        if not (0.0 <= self.recommendation.confidence_threshold <= 100.0):
            errors.append("CONFIDENCE_THRESHOLD must be between 0 and 100")

        if not (0.0 <= self.oracle.temperature <= 2.0):
            errors.append("ORACLE_TEMPERATURE must be between 0.0 and 2.0")

        if self.oracle.min_interval_seconds < 0:
            errors.append("ORACLE_MIN_INTERVAL cannot be negative")

        if self.dry_run.max_trades < 1:
            errors.append("MAX_TRADES must be at least 1")

        if self.dry_run.wager_amount <= 0:
            errors.append("WAGER_AMOUNT must be positive")

        if self.dry_run.max_markets < 1:
            errors.append("MAX_MARKETS must be at least 1")

        if self.dry_run.sizing not in SIZING_POLICIES:
            errors.append(f"SIZING_POLICY must be one of: {', '.join(SIZING_POLICIES)}")

        if self.dry_run.bankroll <= 0:
            errors.append("BANKROLL must be positive")

        if not (0.0 < self.dry_run.kelly_cap <= 1.0):
            errors.append("KELLY_CAP must be greater than 0 and at most 1")

        if self.session.target_return_multiple <= 1.0:
            errors.append("TARGET_RETURN_MULTIPLE must be greater than 1.0")

        if self.session.loss_floor_pct >= 0:
            errors.append("LOSS_FLOOR_PCT must be negative")

        if self.session.duration_seconds <= 0:
            errors.append("SESSION_DURATION_HOURS must be positive")

        if self.session.sample_interval_seconds <= 0:
            errors.append("SESSION_SAMPLE_SECONDS must be positive")

        if self.session.initial_capital <= 0:
            errors.append("INITIAL_CAPITAL must be positive")

        return (len(errors) == 0, errors)

    def require_valid(self) -> None:
        """Raise ConfigurationError listing every validation failure."""
        is_valid, errors = self.validate()
        if not is_valid:
            raise ConfigurationError("; ".join(errors))

    def require_oracle(self) -> None:
        """
        Ensure the oracle credential and endpoint are present.

        Raises:
            ConfigurationError: If GROQ_API_KEY or ORACLE_API_URL is missing
        """
        if not self.oracle.api_key:
            raise ConfigurationError("GROQ_API_KEY is required but not set")
        if not self.oracle.api_url:
            raise ConfigurationError("ORACLE_API_URL is required but not set")

    def ensure_directories(self) -> None:
        """Create directories for the database, reports and logs."""
        self.storage.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.storage.report_dir.mkdir(parents=True, exist_ok=True)
        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)


class _EnvReader:
    """Typed access to an environment mapping with strict number parsing."""

    def __init__(self, env: Mapping[str, str]):
        self._env = env

    def get_float(self, name: str, default: float) -> float:
        raw = self._env.get(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number, got {raw!r}")

    def get_int(self, name: str, default: int) -> int:
        raw = self._env.get(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
