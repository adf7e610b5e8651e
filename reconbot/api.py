"""FastAPI application exposing markets, forecasts, dry runs and matching."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from reconbot.config import AppConfig
from reconbot.dry_run import DryRunner, MarketFetcher
from reconbot.errors import ConfigurationError, OracleParseError
from reconbot.forecast_agent import ChatCompletionsOracle, ForecastAgent, RateLimiter
from reconbot.matcher import match_conditions, summarize_matches
from reconbot.models import Market, Platform
from reconbot.normalizer import normalize_conditions, normalize_market
from reconbot.scanner import FetchResult, fetch_conditions, fetch_markets

logger = logging.getLogger(__name__)

PLATFORMS = ("kalshi", "polymarket", "both")


class ForecastRequest(BaseModel):
    subject_id: Optional[str] = Field(default=None, alias="subjectId")
    title: Optional[str] = None
    platform: str = "polymarket"
    yes_price: float = Field(default=0.5, alias="yesPrice", ge=0.0, le=1.0)
    no_price: float = Field(default=0.5, alias="noPrice", ge=0.0, le=1.0)
    volume: Optional[float] = Field(default=None, ge=0.0)


class DryRunRequest(BaseModel):
    max_trades: Optional[int] = Field(default=None, alias="maxTrades", ge=1, le=100)
    platform: str = "both"


class MatchRequest(BaseModel):
    conditions: Optional[list[dict[str, Any]]] = None
    markets: Optional[list[dict[str, Any]]] = None


def create_app(
    config: AppConfig,
    fetcher: Optional[MarketFetcher] = None,
    agent: Optional[ForecastAgent] = None,
    conditions_fetcher: Optional[Callable[..., FetchResult]] = None,
) -> FastAPI:
    """
    Build the HTTP application.

    Args:
        config: Application configuration
        fetcher: Venue market fetch function
        agent: Forecast agent; built from the oracle config on first use when None
        conditions_fetcher: Internal conditions fetch function

    Returns:
        FastAPI application
    """
    fetcher = fetcher or fetch_markets
    conditions_fetcher = conditions_fetcher or fetch_conditions

    app = FastAPI(
        title="Reconbot API",
        description="Cross-venue prediction market comparison and forecasting",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state: dict[str, Optional[ForecastAgent]] = {"agent": agent}

    def get_agent() -> ForecastAgent:
        if state["agent"] is None:
            try:
                config.require_oracle()
            except ConfigurationError as e:
                logger.error(f"Oracle not configured: {e}")
                raise HTTPException(status_code=500, detail=str(e))
            state["agent"] = ForecastAgent(ChatCompletionsOracle(config.oracle), config.recommendation)
        return state["agent"]

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/markets")
    def list_markets(
        platform: str = Query(default="both"),
        limit: int = Query(default=10, ge=1, le=200),
    ):
        if platform not in PLATFORMS:
            raise HTTPException(status_code=400, detail=f"platform must be one of {', '.join(PLATFORMS)}")

        result = fetcher(platform, limit, config.catalog)
        return {
            "success": True,
            "markets": [m.to_dict() for m in result.items],
            "count": len(result.items),
            "platform": platform,
            "errors": [str(e) for e in result.errors],
        }

    @app.post("/forecast")
    def forecast_market(req: ForecastRequest):
        if not req.subject_id or not req.title:
            raise HTTPException(status_code=400, detail="subjectId and title are required")

        try:
            platform = Platform(req.platform)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"unknown platform {req.platform!r}")

        market = Market(
            id=req.subject_id,
            title=req.title,
            description="",
            platform=platform,
            yes_price=req.yes_price,
            no_price=req.no_price,
            volume=req.volume,
        )

        try:
            forecast = get_agent().forecast(market)
        except OracleParseError as e:
            raise HTTPException(status_code=502, detail=f"Forecast failed: {e.message}")

        return {"success": True, "forecast": forecast.to_dict()}

    @app.post("/dry-run")
    def dry_run(req: Optional[DryRunRequest] = None):
        req = req or DryRunRequest()
        if req.platform not in PLATFORMS:
            raise HTTPException(status_code=400, detail=f"platform must be one of {', '.join(PLATFORMS)}")

        runner = DryRunner(
            config,
            get_agent(),
            fetcher=fetcher,
            rate_limiter=RateLimiter(config.oracle.min_interval_seconds),
        )
        result = runner.run(max_trades=req.max_trades, platform=req.platform)

        return {
            "success": True,
            "summary": result.summary.to_dict(),
            "errors": result.error_messages,
        }

    @app.post("/match")
    def match(req: MatchRequest):
        errors: list[str] = []

        if req.conditions is None:
            fetched = conditions_fetcher(30, config.catalog)
            conditions = fetched.items
            errors.extend(str(e) for e in fetched.errors)
        else:
            conditions = normalize_conditions(req.conditions)

        if req.markets is None:
            fetched = fetcher("both", 100, config.catalog)
            markets = fetched.items
            errors.extend(str(e) for e in fetched.errors)
        else:
            markets = []
            for raw in req.markets:
                try:
                    platform = Platform(raw.get("platform", "polymarket"))
                except ValueError:
                    raise HTTPException(status_code=400, detail=f"unknown platform {raw.get('platform')!r}")
                market = normalize_market(raw, platform)
                if market.id:
                    markets.append(market)

        results = match_conditions(conditions, markets, config.matcher)
        stats = summarize_matches(results, len(markets))

        return {
            "success": True,
            "matches": [r.to_dict() for r in results],
            "stats": stats.to_dict(),
            "errors": errors,
        }

    return app
