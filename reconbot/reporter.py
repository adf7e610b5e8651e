"""
Reporter module for generating readable output of comparisons, dry runs and sessions.

Plain-text reports go to the console and report files; the condensed
Markdown variants are used for Telegram.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from reconbot.aggregator import Summary
from reconbot.config import SessionConfig
from reconbot.matcher import MatchStats
from reconbot.models import MatchResult
from reconbot.session import SessionReport, SessionStatus, TerminationCause, rank_for_roi
from reconbot.utils import format_currency, format_percentage

# Configure module logger
logger = logging.getLogger(__name__)

RULE = "=" * 80
THIN_RULE = "-" * 80


def _header(title: str) -> str:
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    return f"{RULE}\n  {title}\n{RULE}\nGenerated: {now}\n{RULE}"


def format_match_report(results: Sequence[MatchResult], stats: MatchStats) -> str:
    """
    Format a condition/market comparison.

    Args:
        results: Match results, already ordered
        stats: Headline numbers for the pass

    Returns:
        Report string
    """
    lines = [
        _header("CROSS-VENUE MARKET COMPARISON"),
        "",
        "SUMMARY",
        THIN_RULE,
        f"Conditions Compared: {stats.total_conditions}",
        f"External Markets: {stats.total_markets}",
        f"Potential Matches: {stats.potential_matches}",
        f"High-Value Opportunities: {stats.high_value_opportunities}",
        "",
        "RESULTS",
        THIN_RULE,
    ]

    if not results:
        lines.append("No conditions to compare.")
        return "\n".join(lines)

    for idx, result in enumerate(results, 1):
        lines.append(f"[{idx}] {result.condition.question}")
        lines.append(f"    Tag: {result.recommendation_tag}")

        if result.market is not None:
            market = result.market
            lines.append(f"    Match: {market.title} ({market.platform.value})")
            lines.append(f"    Similarity: {format_percentage(result.similarity)}")
            lines.append(
                f"    YES {format_percentage(market.yes_price)} | "
                f"NO {format_percentage(market.no_price)} | "
                f"Volume {format_currency(market.volume) if market.volume is not None else 'N/A'}"
            )

        lines.append(f"    {result.analysis}")
        lines.append("")

    return "\n".join(lines)


def format_dry_run_report(summary: Summary, errors: Optional[Sequence[str]] = None) -> str:
    """
    Format a dry run summary with projected profit.

    Args:
        summary: Aggregated dry run statistics
        errors: Error messages collected during the run

    Returns:
        Report string
    """
    lines = [
        _header("DRY RUN SUMMARY (NO ORDERS PLACED)"),
        "",
        f"Markets Analyzed: {summary.total_analyzed}",
        f"Trades Recommended: {summary.recommended_count}",
        f"Trades Skipped: {summary.skipped_count}",
        f"Average Confidence: {format_percentage(summary.avg_confidence)}",
        f"Average Edge: {format_percentage(summary.avg_edge, signed=True)}",
        f"Capital Deployed: {summary.capital_deployed:.2f} (max {summary.max_trades} trades)",
        "",
        "PROJECTED PROFIT",
        THIN_RULE,
        f"  Best Case: {summary.projected_best_case:+.2f}",
        f"  Worst Case: {summary.projected_worst_case:+.2f}",
        f"  Expected: {summary.projected_expected_case:+.2f} "
        f"(ROI {summary.expected_roi:+.1f}%)",
        "",
        "FUNDED TRADES",
        THIN_RULE,
    ]

    if not summary.funded:
        lines.append("No trades met the edge and confidence thresholds.")

    for idx, trade in enumerate(summary.funded, 1):
        decision = trade.decision
        lines.append(f"[{idx}] {decision.question or decision.subject_id}")
        lines.append(
            f"    BUY {decision.side} @ {format_percentage(decision.current_price)} | "
            f"Fair {format_percentage(decision.fair_value)} | "
            f"Edge {format_percentage(decision.edge, signed=True)} | "
            f"Conf {format_percentage(decision.confidence, 0)}"
        )
        lines.append(
            f"    Stake {trade.stake:.2f} -> win {trade.win_profit:+.2f}, "
            f"lose {trade.loss_amount:+.2f}, expected {trade.expected_profit:+.2f}"
        )

    if errors:
        lines.extend(["", f"ERRORS ({len(errors)})", THIN_RULE])
        lines.extend(f"  - {message}" for message in errors)

    return "\n".join(lines)


def format_live_status(status: SessionStatus, elapsed_seconds: float, config: SessionConfig) -> str:
    """One-line session status for periodic logging."""
    remaining = max(0.0, config.duration_seconds - elapsed_seconds)
    hours, rem = divmod(int(remaining), 3600)
    minutes = rem // 60

    return (
        f"Capital {status.current_capital:,.2f} | ROI {status.total_roi_pct:+.2f}% "
        f"(target {config.target_roi_pct:.0f}%) | Trades {status.trades_executed} | "
        f"Win rate {format_percentage(status.win_rate, 0)} | Open {status.open_positions} | "
        f"Remaining {hours}h {minutes}m | Rank {rank_for_roi(status.total_roi_pct)}"
    )


def format_session_report(report: SessionReport) -> str:
    """
    Format the final session report.

    Args:
        report: Report produced when the session terminated

    Returns:
        Report string
    """
    status = report.final_status
    hours = report.elapsed_seconds / 3600.0
    outcome = report.cause.value.replace("_", " ").upper()
    if report.interrupted:
        outcome += " (INTERRUPTED)"

    lines = [
        _header("SESSION FINAL REPORT"),
        "",
        f"Outcome: {outcome}",
        f"Started: {report.started_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        f"Ended: {report.ended_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        f"Duration: {hours:.2f} hours ({report.samples} samples)",
        "",
        "PERFORMANCE",
        THIN_RULE,
        f"  Initial Capital: {status.initial_capital:,.2f}",
        f"  Final Capital: {status.current_capital:,.2f}",
        f"  Total ROI: {status.total_roi_pct:+.2f}% (target {report.target_roi_pct:.0f}%, "
        f"floor {report.loss_floor_pct:.0f}%)",
        f"  Peak ROI: {report.peak_roi_pct:+.2f}%",
        f"  Lowest ROI: {report.lowest_roi_pct:+.2f}%",
        f"  Trades Executed: {status.trades_executed}",
        f"  Win Rate: {format_percentage(status.win_rate)}",
        f"  Open Positions: {status.open_positions}",
        "",
        f"ESTIMATED RANK: {report.rank}",
        RULE,
    ]
    return "\n".join(lines)


def format_telegram_dry_run(summary: Summary, max_trades_shown: int = 5) -> str:
    """Condensed Markdown dry run summary for Telegram."""
    lines = [
        "🧪 *Dry Run Summary*",
        f"Analyzed {summary.total_analyzed} | Buy {summary.recommended_count} | "
        f"Skip {summary.skipped_count}",
        f"Avg conf {format_percentage(summary.avg_confidence, 0)} | "
        f"Avg edge {format_percentage(summary.avg_edge, signed=True)}",
        f"Expected {summary.projected_expected_case:+.2f} on {summary.capital_deployed:.2f} deployed",
        "",
    ]

    for idx, trade in enumerate(summary.funded[:max_trades_shown], 1):
        decision = trade.decision
        title = (decision.question or decision.subject_id)[:60]
        lines.append(f"*{idx}. {title}*")
        lines.append(
            f"   BUY {decision.side} @ {format_percentage(decision.current_price, 0)} | "
            f"Edge {format_percentage(decision.edge, signed=True)}"
        )

    return "\n".join(lines).strip()


def format_telegram_session(report: SessionReport) -> str:
    """Condensed Markdown session result for Telegram."""
    status = report.final_status
    emoji = "🏆" if report.target_reached else "🛑" if report.cause == TerminationCause.CATASTROPHIC_LOSS else "⏱️"
    return "\n".join([
        f"{emoji} *Session finished: {report.cause.value.replace('_', ' ')}*",
        f"ROI {status.total_roi_pct:+.2f}% | Capital {status.current_capital:,.2f}",
        f"Trades {status.trades_executed} | Win rate {format_percentage(status.win_rate, 0)}",
        f"Rank: {report.rank}",
    ])


def save_report_to_file(report: str, file_path: Path) -> bool:
    """
    Save report to file.

    Args:
        report: Report string
        file_path: Path to save file

    Returns:
        True if saved, False otherwise
    """
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(report, encoding="utf-8")
        logger.info(f"Report saved to {file_path}")
        return True
    except OSError as e:
        logger.error(f"Error saving report to {file_path}: {e}", exc_info=True)
        return False


def timestamped_report_path(report_dir: Path, prefix: str) -> Path:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return report_dir / f"{prefix}_{timestamp}.txt"
