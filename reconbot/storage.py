"""
Storage module for persisting markets, forecasts, simulated trades and dry runs.

This module provides a repository interface over SQLite. The trades table
doubles as the simulated ledger that session monitoring samples: realized
PnL of resolved trades plus the marked-to-market PnL of open trades moves
the session capital.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from reconbot.aggregator import Summary
from reconbot.models import Decision, Forecast, Market, Platform, Recommendation
from reconbot.session import SessionStatus
from reconbot.utils import current_utc_timestamp

# Configure module logger
logger = logging.getLogger(__name__)

# Ledger columns newer than the original trades schema
TRADE_COLUMNS_ADDED = {"platform": "TEXT", "mark_price": "REAL"}


def trade_pnl(side: str, entry_price: float, stake: float, resolved_yes: bool) -> float:
    """
    Realized PnL of a simulated trade.

    Per share a winning side pays 1 - entry and a losing side costs the
    entry price; the stake buys stake / entry shares.

    Args:
        side: "YES" or "NO"
        entry_price: Price paid for the chosen side
        stake: Capital committed
        resolved_yes: Whether the market resolved YES

    Returns:
        PnL in capital units
    """
    if entry_price <= 0:
        return 0.0

    won = resolved_yes if side == "YES" else not resolved_yes
    per_share = (1.0 - entry_price) if won else -entry_price
    return per_share * (stake / entry_price)


class Storage:
    """
    Repository for database operations.

    Args:
        db_path: Path to the SQLite database file
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_database()

    @contextmanager
    def _get_connection(self):
        """
        Context manager for database connections.

        Commits on success, rolls back on error.
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_database(self) -> None:
        """Create database tables if they don't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS markets (
                    id TEXT NOT NULL,
                    platform TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    yes_price REAL NOT NULL,
                    no_price REAL NOT NULL,
                    volume REAL,
                    liquidity REAL,
                    close_date TEXT,
                    slug TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (platform, id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS forecasts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subject_id TEXT NOT NULL,
                    platform TEXT,
                    probability REAL NOT NULL,
                    confidence REAL NOT NULL,
                    fair_value REAL NOT NULL,
                    edge REAL NOT NULL,
                    recommendation TEXT NOT NULL,
                    current_yes_price REAL NOT NULL,
                    expected_value REAL,
                    reasoning TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    subject_id TEXT NOT NULL,
                    question TEXT,
                    platform TEXT,
                    side TEXT NOT NULL,
                    entry_price REAL NOT NULL,
                    stake REAL NOT NULL,
                    fair_value REAL NOT NULL,
                    edge REAL NOT NULL,
                    confidence REAL NOT NULL,
                    resolved INTEGER NOT NULL DEFAULT 0,
                    resolved_yes INTEGER,
                    pnl REAL,
                    mark_price REAL,
                    created_at TEXT NOT NULL,
                    resolved_at TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS dry_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    total_analyzed INTEGER NOT NULL,
                    recommended_count INTEGER NOT NULL,
                    skipped_count INTEGER NOT NULL,
                    avg_confidence REAL NOT NULL,
                    avg_edge REAL NOT NULL,
                    capital_deployed REAL NOT NULL,
                    summary_json TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_forecasts_subject_id
                ON forecasts(subject_id)
            """)

            self._add_missing_columns(cursor, "trades", TRADE_COLUMNS_ADDED)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_trades_resolved
                ON trades(resolved)
            """)

            logger.info(f"Database initialized at {self.db_path}")

    def _add_missing_columns(self, cursor: sqlite3.Cursor, table: str, columns: dict[str, str]) -> None:
        """Add columns introduced after a database file was first created."""
        existing = {row["name"] for row in cursor.execute(f"PRAGMA table_info({table})")}
        for name, column_type in columns.items():
            if name not in existing:
                cursor.execute(f"ALTER TABLE {table} ADD COLUMN {name} {column_type}")
                logger.info(f"Added column {table}.{name}")

    # Market operations

    def save_market(self, market: Market) -> bool:
        """
        Save or update a market.

        Args:
            market: Market object to save

        Returns:
            True if successful, False otherwise
        """
        try:
            now = current_utc_timestamp()

            with self._get_connection() as conn:
                conn.execute("""
                    INSERT OR REPLACE INTO markets
                    (id, platform, title, description, yes_price, no_price, volume,
                     liquidity, close_date, slug, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                            COALESCE((SELECT created_at FROM markets WHERE platform = ? AND id = ?), ?),
                            ?)
                """, (
                    market.id,
                    market.platform.value,
                    market.title,
                    market.description,
                    market.yes_price,
                    market.no_price,
                    market.volume,
                    market.liquidity,
                    market.close_date.isoformat() if market.close_date else None,
                    market.slug,
                    market.platform.value,
                    market.id,
                    now,
                    now,
                ))

            logger.debug(f"Saved market: {market.platform.value}/{market.id}")
            return True

        except sqlite3.Error as e:
            logger.error(f"Error saving market {market.id}: {e}", exc_info=True)
            return False

    def get_market(self, market_id: str, platform: Optional[Platform] = None) -> Optional[Market]:
        """
        Retrieve a market by ID.

        Args:
            market_id: Market identifier
            platform: Venue, when the id alone is ambiguous

        Returns:
            Market object if found, None otherwise
        """
        query = "SELECT * FROM markets WHERE id = ?"
        params: tuple = (market_id,)
        if platform is not None:
            query += " AND platform = ?"
            params = (market_id, platform.value)

        try:
            with self._get_connection() as conn:
                row = conn.execute(query + " ORDER BY updated_at DESC LIMIT 1", params).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Error retrieving market {market_id}: {e}", exc_info=True)
            return None

        if not row:
            return None
        return self._row_to_market(row)

    def _row_to_market(self, row: sqlite3.Row) -> Market:
        close_date = datetime.fromisoformat(row["close_date"]) if row["close_date"] else None

        return Market(
            id=row["id"],
            title=row["title"],
            description=row["description"] or "",
            platform=Platform(row["platform"]),
            yes_price=row["yes_price"],
            no_price=row["no_price"],
            volume=row["volume"],
            close_date=close_date,
            liquidity=row["liquidity"],
            slug=row["slug"] or "",
        )

    # Forecast operations

    def save_forecast(self, forecast: Forecast) -> bool:
        try:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO forecasts
                    (subject_id, platform, probability, confidence, fair_value, edge,
                     recommendation, current_yes_price, expected_value, reasoning, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    forecast.subject_id,
                    forecast.platform.value if forecast.platform else None,
                    forecast.probability,
                    forecast.confidence,
                    forecast.fair_value,
                    forecast.edge,
                    forecast.recommendation.value,
                    forecast.current_yes_price,
                    forecast.expected_value,
                    forecast.reasoning,
                    forecast.created_at.isoformat(),
                ))

            logger.debug(f"Saved forecast for: {forecast.subject_id}")
            return True

        except sqlite3.Error as e:
            logger.error(f"Error saving forecast for {forecast.subject_id}: {e}", exc_info=True)
            return False

    def get_forecasts(self, subject_id: str, limit: Optional[int] = None) -> list[Forecast]:
        """
        Retrieve forecast history for a subject, newest first.

        Args:
            subject_id: Subject identifier
            limit: Maximum number of forecasts to return

        Returns:
            List of Forecast objects
        """
        query = "SELECT * FROM forecasts WHERE subject_id = ? ORDER BY id DESC"
        if limit and limit > 0:
            query += f" LIMIT {int(limit)}"

        try:
            with self._get_connection() as conn:
                rows = conn.execute(query, (subject_id,)).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Error retrieving forecasts for {subject_id}: {e}", exc_info=True)
            return []

        return [
            Forecast(
                subject_id=row["subject_id"],
                probability=row["probability"],
                confidence=row["confidence"],
                reasoning=row["reasoning"] or "",
                fair_value=row["fair_value"],
                edge=row["edge"],
                recommendation=Recommendation(row["recommendation"]),
                current_yes_price=row["current_yes_price"],
                expected_value=row["expected_value"],
                platform=Platform(row["platform"]) if row["platform"] else None,
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # Trade ledger operations

    def record_trade(
        self,
        decision: Decision,
        stake: float,
        platform: Optional[Platform] = None,
    ) -> Optional[int]:
        """
        Record a simulated buy in the ledger.

        Args:
            decision: Buy decision
            stake: Capital committed
            platform: Venue of the traded market, used to refetch it later

        Returns:
            Trade id, or None when the decision is not a buy or the insert fails
        """
        if not decision.is_buy:
            logger.debug(f"Not recording skip decision for {decision.subject_id}")
            return None

        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO trades
                    (subject_id, question, platform, side, entry_price, stake, fair_value,
                     edge, confidence, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    decision.subject_id,
                    decision.question,
                    platform.value if platform else None,
                    decision.side,
                    decision.current_price,
                    stake,
                    decision.fair_value,
                    decision.edge,
                    decision.confidence,
                    current_utc_timestamp(),
                ))
                trade_id = cursor.lastrowid

            logger.info(f"Recorded trade {trade_id}: {decision.side} {decision.subject_id} @ {decision.current_price:.3f}")
            return trade_id

        except sqlite3.Error as e:
            logger.error(f"Error recording trade for {decision.subject_id}: {e}", exc_info=True)
            return None

    def resolve_trade(self, trade_id: int, resolved_yes: bool) -> Optional[float]:
        """
        Resolve a trade against the market outcome.

        Args:
            trade_id: Trade identifier
            resolved_yes: Whether the market resolved YES

        Returns:
            Realized PnL, or None if the trade is unknown or already resolved
        """
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM trades WHERE id = ?", (trade_id,)
                ).fetchone()

                if not row:
                    logger.warning(f"Trade {trade_id} not found")
                    return None

                if row["resolved"]:
                    logger.warning(f"Trade {trade_id} already resolved")
                    return None

                pnl = trade_pnl(row["side"], row["entry_price"], row["stake"], resolved_yes)

                conn.execute("""
                    UPDATE trades
                    SET resolved = 1, resolved_yes = ?, pnl = ?, resolved_at = ?
                    WHERE id = ?
                """, (int(resolved_yes), pnl, current_utc_timestamp(), trade_id))

            logger.info(f"Trade {trade_id} resolved {'YES' if resolved_yes else 'NO'}: PnL {pnl:+.4f}")
            return pnl

        except sqlite3.Error as e:
            logger.error(f"Error resolving trade {trade_id}: {e}", exc_info=True)
            return None

    def get_open_trades(self) -> list[dict]:
        """Unresolved trades, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM trades WHERE resolved = 0 ORDER BY id"
            ).fetchall()

        return [dict(row) for row in rows]

    def mark_trade(self, trade_id: int, mark_price: float) -> bool:
        """
        Record the current price of an open trade's side.

        Args:
            trade_id: Trade identifier
            mark_price: Latest quote for the side the trade bought (0-1)

        Returns:
            True if an open trade was updated
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "UPDATE trades SET mark_price = ? WHERE id = ? AND resolved = 0",
                    (mark_price, trade_id),
                )
                updated = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Error marking trade {trade_id}: {e}", exc_info=True)
            return False

        if updated:
            logger.debug(f"Marked trade {trade_id} at {mark_price:.4f}")
        return updated

    def get_trade_stats(self) -> dict:
        """
        Ledger statistics.

        Returns:
            Dictionary with total_trades, resolved_trades, open_trades, wins,
            win_rate (0-1), avg_pnl, total_pnl (realized), unrealized_pnl,
            avg_confidence and capital_at_risk
        """
        with self._get_connection() as conn:
            row = conn.execute("""
                SELECT
                    COUNT(*) AS total_trades,
                    COALESCE(SUM(resolved), 0) AS resolved_trades,
                    COALESCE(SUM(CASE WHEN resolved = 1 AND pnl > 0 THEN 1 ELSE 0 END), 0) AS wins,
                    COALESCE(SUM(CASE WHEN resolved = 1 THEN pnl ELSE 0 END), 0.0) AS total_pnl,
                    COALESCE(SUM(CASE WHEN resolved = 0 THEN stake ELSE 0 END), 0.0) AS capital_at_risk,
                    COALESCE(SUM(CASE
                        WHEN resolved = 0 AND mark_price IS NOT NULL AND entry_price > 0
                        THEN (mark_price - entry_price) * stake / entry_price
                        ELSE 0 END), 0.0) AS unrealized_pnl,
                    COALESCE(AVG(confidence), 0.0) AS avg_confidence
                FROM trades
            """).fetchone()

        total = row["total_trades"]
        resolved = row["resolved_trades"]

        return {
            "total_trades": total,
            "resolved_trades": resolved,
            "open_trades": total - resolved,
            "wins": row["wins"],
            "win_rate": row["wins"] / resolved if resolved else 0.0,
            "avg_pnl": row["total_pnl"] / resolved if resolved else 0.0,
            "total_pnl": row["total_pnl"],
            "unrealized_pnl": row["unrealized_pnl"],
            "avg_confidence": row["avg_confidence"],
            "capital_at_risk": row["capital_at_risk"],
        }

    def session_status(self, initial_capital: float) -> SessionStatus:
        """Build a session snapshot from realized plus marked-to-market PnL."""
        stats = self.get_trade_stats()

        return SessionStatus.from_capital(
            initial_capital + stats["total_pnl"] + stats["unrealized_pnl"],
            initial_capital,
            trades_executed=stats["total_trades"],
            win_rate=stats["win_rate"],
            open_positions=stats["open_trades"],
        )

    # Dry run operations

    def save_dry_run(self, summary: Summary) -> Optional[int]:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO dry_runs
                    (total_analyzed, recommended_count, skipped_count, avg_confidence,
                     avg_edge, capital_deployed, summary_json, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    summary.total_analyzed,
                    summary.recommended_count,
                    summary.skipped_count,
                    summary.avg_confidence,
                    summary.avg_edge,
                    summary.capital_deployed,
                    json.dumps(summary.to_dict()),
                    current_utc_timestamp(),
                ))
                run_id = cursor.lastrowid

            logger.info(f"Saved dry run {run_id}")
            return run_id

        except sqlite3.Error as e:
            logger.error(f"Error saving dry run: {e}", exc_info=True)
            return None

    def get_dry_runs(self, limit: int = 10) -> list[dict]:
        """Recent dry run summaries, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT id, summary_json, created_at FROM dry_runs ORDER BY id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()

        return [
            {"id": row["id"], "created_at": row["created_at"], **json.loads(row["summary_json"])}
            for row in rows
        ]
