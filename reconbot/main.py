"""
Main entry point for the reconciliation bot.

Modes:
1. --compare: match internal conditions against Kalshi/Polymarket markets
2. --dry-run (default): forecast markets and aggregate simulated trades
3. --session: run a bounded monitoring session over the simulated ledger
4. --serve: expose the HTTP API
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Optional

from dotenv import load_dotenv

from reconbot.config import AppConfig, LoggingConfig
from reconbot.dry_run import DryRunner
from reconbot.errors import ConfigurationError
from reconbot.forecast_agent import ChatCompletionsOracle, ForecastAgent, RateLimiter
from reconbot.ledger import LedgerSettler
from reconbot.matcher import match_conditions, summarize_matches
from reconbot.reporter import (
    format_dry_run_report,
    format_live_status,
    format_match_report,
    format_session_report,
    save_report_to_file,
    timestamped_report_path,
)
from reconbot.scanner import fetch_conditions, fetch_markets
from reconbot.scheduler import IntervalTicker
from reconbot.session import SessionMonitor, SessionReport, SessionStatus
from reconbot.storage import Storage
from reconbot.telegram_notifier import send_session_report

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def setup_logging(config: LoggingConfig) -> None:
    """Configure logging for the application."""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_level = getattr(logging, config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if config.file:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True,
    )

    # Scheduler internals are noisy at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def build_agent(config: AppConfig) -> ForecastAgent:
    config.require_oracle()
    return ForecastAgent(ChatCompletionsOracle(config.oracle), config.recommendation)


def run_compare(config: AppConfig, market_limit: int = 100) -> int:
    """
    Compare internal conditions against external venue markets.

    Returns:
        Exit code
    """
    conditions = fetch_conditions(config=config.catalog)
    markets = fetch_markets("both", market_limit, config.catalog)

    for error in conditions.errors + markets.errors:
        logger.warning(f"Source unavailable: {error}")

    if not conditions.items:
        logger.error("No conditions available to compare")
        return EXIT_FAILURE

    results = match_conditions(conditions.items, markets.items, config.matcher)
    stats = summarize_matches(results, len(markets.items))

    report = format_match_report(results, stats)
    print(report)
    save_report_to_file(report, timestamped_report_path(config.storage.report_dir, "comparison"))

    return EXIT_OK


def run_dry_run_mode(config: AppConfig, max_trades: Optional[int] = None) -> int:
    """
    Run one dry run with persistence and optional Telegram delivery.

    Returns:
        Exit code
    """
    agent = build_agent(config)
    storage = Storage(config.storage.db_path)
    runner = DryRunner(
        config,
        agent,
        storage=storage,
        rate_limiter=RateLimiter(config.oracle.min_interval_seconds),
    )

    result = runner.run(max_trades=max_trades, notify=True)

    report = format_dry_run_report(result.summary, result.error_messages)
    print(report)
    save_report_to_file(report, timestamped_report_path(config.storage.report_dir, "dry_run"))

    if result.summary.total_analyzed == 0:
        logger.error("Dry run analyzed no markets")
        return EXIT_FAILURE

    return EXIT_OK


def run_session_mode(config: AppConfig) -> int:
    """
    Monitor the simulated ledger until a terminal condition or Ctrl+C.

    Every sample first settles open trades against refetched venue markets.

    Returns:
        Exit code
    """
    storage = Storage(config.storage.db_path)
    settler = LedgerSettler(storage, config.catalog)
    session_config = config.session
    monitor: Optional[SessionMonitor] = None

    def sample() -> SessionStatus:
        status = settler.session_status(session_config.initial_capital)
        elapsed = monitor.elapsed_seconds if monitor else 0.0
        logger.info(format_live_status(status, elapsed, session_config))
        return status

    def on_terminate(report: SessionReport) -> None:
        text = format_session_report(report)
        print(text)
        save_report_to_file(text, timestamped_report_path(config.storage.report_dir, "session"))
        send_session_report(report, config.telegram)

    monitor = SessionMonitor(
        session_config,
        status_provider=sample,
        ticker=IntervalTicker(fire_immediately=True),
        on_terminate=on_terminate,
    )
    monitor.start()
    logger.info("Session is running. Press Ctrl+C to stop.")

    try:
        while not monitor.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, closing session")
        monitor.stop()
        return EXIT_INTERRUPTED

    return EXIT_OK


def run_server(config: AppConfig, host: str, port: int) -> int:
    import uvicorn

    from reconbot.api import create_app

    logger.info(f"Starting API server on {host}:{port}")
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)
    return EXIT_OK


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 success, 1 failure, 2 configuration error, 130 interrupted)
    """
    parser = argparse.ArgumentParser(
        description="Cross-venue prediction market reconciliation bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run over Kalshi and Polymarket markets
  python -m reconbot.main --dry-run --max-trades 5

  # Compare internal conditions against external markets
  python -m reconbot.main --compare

  # Run a 24 hour monitoring session
  python -m reconbot.main --session --hours 24

  # Serve the HTTP API
  python -m reconbot.main --serve --port 8000
        """
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--compare", action="store_true", help="Match conditions against external markets")
    mode.add_argument("--dry-run", action="store_true", help="Forecast markets and simulate trades (default)")
    mode.add_argument("--session", action="store_true", help="Run a bounded monitoring session")
    mode.add_argument("--serve", action="store_true", help="Serve the HTTP API")
    parser.add_argument("--max-trades", type=int, default=None, help="Override MAX_TRADES for the dry run")
    parser.add_argument("--hours", type=float, default=None, help="Override SESSION_DURATION_HOURS")
    parser.add_argument("--host", default="127.0.0.1", help="API host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="API port (default: 8000)")

    args = parser.parse_args(argv)

    load_dotenv()

    try:
        config = AppConfig.from_env()
        if args.hours is not None:
            config = replace(config, session=replace(config.session, duration_seconds=args.hours * 3600.0))
        config.require_valid()
    except ConfigurationError as e:
        setup_logging(LoggingConfig())
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    setup_logging(config.logging)
    config.ensure_directories()

    try:
        if args.compare:
            return run_compare(config)
        if args.session:
            return run_session_mode(config)
        if args.serve:
            return run_server(config, args.host, args.port)
        return run_dry_run_mode(config, args.max_trades)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
