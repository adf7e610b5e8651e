"""
Forecast agent for estimating fair value of external markets with an LLM oracle.

This module builds a deterministic prompt per market (optionally paired with
the internal condition it was matched to), sends it to a text-generation
oracle, and strictly parses the single JSON object embedded in the reply.
The oracle works on a 0-100 scale; everything leaving this module is on the
0-1 scale. Each subject gets exactly one oracle call and no automatic retry:
a failure raises OracleParseError for that subject only.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Protocol, Sequence, Union

import requests
from requests.exceptions import RequestException, Timeout

from reconbot.config import OracleConfig, RecommendationConfig
from reconbot.errors import OracleCallError, OracleParseError
from reconbot.models import Condition, Forecast, Market, Recommendation
from reconbot.recommender import recommend_with
from reconbot.utils import calculate_edge, format_currency

# Configure module logger
logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("probability", "confidence", "reasoning", "fair_value", "edge", "recommendation")
PERCENT_FIELDS = ("probability", "confidence", "fair_value")

SYSTEM_PROMPT = (
    "You are a professional prediction market forecaster specializing in "
    "probability estimation and value assessment."
)

Subject = Union[Market, tuple[Market, Condition]]


class TextOracle(Protocol):
    """Anything that turns a prompt into free-form text."""

    def complete(self, prompt: str) -> str:
        ...


class ChatCompletionsOracle:
    """
    Oracle backed by an OpenAI-compatible chat completions endpoint.

    Transport, HTTP status and response-shape failures propagate as
    exceptions; the ForecastAgent scopes them to the subject being forecast.
    """

    def __init__(self, config: OracleConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def complete(self, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }

        logger.debug(f"Calling oracle model {self.config.model}")

        try:
            response = self.session.post(
                self.config.api_url,
                json=payload,
                headers=headers,
                timeout=self.config.timeout,
            )
            response.raise_for_status()
        except Timeout:
            logger.error(f"Oracle request timed out after {self.config.timeout}s")
            raise
        except RequestException as e:
            if e.response is not None:
                logger.error(f"Oracle response status: {e.response.status_code}")
                logger.debug(f"Oracle response body: {e.response.text[:500]}")
            raise

        data = response.json()

        choices = data.get("choices") if isinstance(data, dict) else None
        if choices:
            content = (choices[0].get("message") or {}).get("content") or ""
            if content:
                logger.debug(f"Received oracle reply of length {len(content)}")
                return content

        logger.debug(f"Response data: {json.dumps(data)[:500]}")
        raise ValueError("Unexpected oracle response structure")


class RateLimiter:
    """
    Enforces a minimum spacing between consecutive calls.

    Clock and sleep are injectable so spacing can be tested without waiting.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None

    def wait(self) -> None:
        if self._last_call is not None and self.min_interval > 0:
            remaining = self.min_interval - (self._clock() - self._last_call)
            if remaining > 0:
                logger.debug(f"Rate limiting: sleeping {remaining:.2f}s")
                self._sleep(remaining)
        self._last_call = self._clock()


@dataclass
class ForecastBatch:
    """
    Result of forecasting many subjects.

    Attributes:
        forecasts: Successful forecasts, in subject order
        errors: One OracleParseError per failed subject
        markets: Subject id -> market the forecast was made for
    """
    forecasts: list[Forecast] = field(default_factory=list)
    errors: list[OracleParseError] = field(default_factory=list)
    markets: dict[str, Market] = field(default_factory=dict)


class ForecastAgent:
    """
    Produces Forecasts for markets or market/condition pairs.

    Args:
        oracle: Text-generation oracle
        recommendation_config: Thresholds used to derive recommendations
    """

    def __init__(
        self,
        oracle: TextOracle,
        recommendation_config: Optional[RecommendationConfig] = None,
    ):
        self.oracle = oracle
        self.recommendation_config = recommendation_config or RecommendationConfig()

    def forecast(self, market: Market, condition: Optional[Condition] = None) -> Forecast:
        """
        Forecast one subject with a single oracle call.

        Args:
            market: Market to estimate
            condition: Internal condition the market was matched to, if any

        Returns:
            Forecast on the 0-1 scale

        Raises:
            OracleParseError: If the call fails or the reply is unusable
        """
        subject_id = subject_key(market, condition)
        logger.info(f"Forecasting {subject_id} - {market.title[:50]}...")

        prompt = build_forecast_prompt(market, condition)

        try:
            reply = self.oracle.complete(prompt)
        except Exception as e:
            logger.error(f"Oracle call failed for {subject_id}: {e}")
            raise OracleCallError(subject_id, f"oracle call failed: {e}") from e

        data = parse_oracle_reply(reply, subject_id)
        forecast = self._create_forecast(subject_id, market, data)

        logger.info(
            f"Forecast for {subject_id}: fair value {forecast.fair_value:.1%}, "
            f"edge {forecast.edge:+.1%}, {forecast.recommendation.value}"
        )
        return forecast

    def iter_forecasts(
        self,
        subjects: Iterable[Subject],
        rate_limiter: Optional[RateLimiter] = None,
        errors: Optional[list[OracleParseError]] = None,
    ) -> Iterator[tuple[Market, Forecast]]:
        """
        Lazily forecast subjects, isolating failures per subject.

        The next oracle call happens only when the caller asks for the next
        item, so a consumer that stops iterating makes no further calls.

        Args:
            subjects: Markets or (market, condition) pairs
            rate_limiter: Spacing between oracle calls
            errors: List that collects per-subject failures

        Yields:
            (market, forecast) for every subject that succeeded
        """
        for subject in subjects:
            market, condition = _unpack(subject)

            if rate_limiter:
                rate_limiter.wait()

            try:
                forecast = self.forecast(market, condition)
            except OracleParseError as e:
                logger.warning(f"✗ Forecast failed for {e.subject_id}: {e.message}")
                if errors is not None:
                    errors.append(e)
                continue

            yield market, forecast

    def forecast_batch(
        self,
        subjects: Sequence[Subject],
        rate_limiter: Optional[RateLimiter] = None,
    ) -> ForecastBatch:
        """
        Forecast many subjects, isolating failures per subject.

        Args:
            subjects: Markets or (market, condition) pairs
            rate_limiter: Spacing between oracle calls

        Returns:
            ForecastBatch with forecasts and per-subject errors
        """
        batch = ForecastBatch()

        for market, forecast in self.iter_forecasts(subjects, rate_limiter, batch.errors):
            batch.forecasts.append(forecast)
            batch.markets[forecast.subject_id] = market

        logger.info(f"Forecast batch complete: {len(batch.forecasts)} ok, {len(batch.errors)} failed")
        return batch

    def _create_forecast(self, subject_id: str, market: Market, data: dict) -> Forecast:
        probability = data["probability"] / 100.0
        confidence = data["confidence"] / 100.0
        fair_value = data["fair_value"] / 100.0
        yes_price = market.yes_price

        edge = calculate_edge(fair_value, yes_price)

        recommendation = recommend_with(
            self.recommendation_config,
            round(edge * 100.0, 6),
            round(confidence * 100.0, 6),
        )

        if recommendation.value != data["recommendation"]:
            logger.debug(
                f"Oracle recommended {data['recommendation']} for {subject_id}, "
                f"thresholds give {recommendation.value}"
            )

        expected_value = fair_value / yes_price if yes_price > 0 else None

        return Forecast(
            subject_id=subject_id,
            probability=probability,
            confidence=confidence,
            reasoning=data["reasoning"].strip()[:2000],
            fair_value=fair_value,
            edge=edge,
            recommendation=recommendation,
            current_yes_price=yes_price,
            expected_value=expected_value,
            platform=market.platform,
        )


def subject_key(market: Market, condition: Optional[Condition] = None) -> str:
    if condition is None:
        return market.id
    return f"{condition.id}:{market.id}"


def build_forecast_prompt(market: Market, condition: Optional[Condition] = None) -> str:
    """
    Build a deterministic forecasting prompt for one subject.

    Args:
        market: Market to estimate
        condition: Matched internal condition, if any

    Returns:
        Formatted prompt string
    """
    volume_str = format_currency(market.volume) if market.volume is not None else "N/A"
    close_str = market.close_date.strftime("%Y-%m-%d %H:%M:%S UTC") if market.close_date else "unknown"

    condition_block = ""
    if condition is not None:
        condition_block = (
            f'\nRelated Internal Question: "{condition.question}"\n'
            f"Internal Question Closes: {condition.end_time.strftime('%Y-%m-%d %H:%M:%S UTC')}\n"
        )

    prompt = f"""You are a prediction market forecasting expert. Analyze this market:

Platform: {market.platform.value.upper()}
Question: "{market.title}"
Current YES Price: {market.yes_price * 100:.1f}%
Current NO Price: {market.no_price * 100:.1f}%
Volume: {volume_str}
Close Date: {close_str}
{condition_block}
Provide your analysis as a single JSON object (no markdown, no extra objects):
{{
  "probability": <number 0-100>,
  "confidence": <number 0-100>,
  "reasoning": "<detailed reasoning>",
  "fair_value": <number 0-100>,
  "edge": <number>,
  "recommendation": "BUY_YES" or "BUY_NO" or "SKIP"
}}

Rules:
- probability: Your estimated probability for the YES outcome
- confidence: How confident you are (0-100)
- fair_value: What you think the fair YES price should be (0-100)
- edge: fair_value minus the current YES price, in percentage points
- recommendation: BUY_YES if underpriced, BUY_NO if overpriced, SKIP if fairly priced
- Only recommend BUY if edge > 5 percentage points and confidence > 65%"""

    return prompt


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} region of text, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False

    for idx in range(start, len(text)):
        char = text[idx]

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:idx + 1]

    return None


def parse_oracle_reply(text: Optional[str], subject_id: str) -> dict:
    """
    Parse and validate the oracle reply against the output schema.

    Args:
        text: Raw oracle reply
        subject_id: Subject the reply belongs to, for error scoping

    Returns:
        Validated dict with numeric fields as floats on the 0-100 scale

    Raises:
        OracleParseError: If no JSON object is found or validation fails
    """
    if not text or not text.strip():
        raise OracleParseError(subject_id, "empty oracle reply", text)

    candidate = extract_json_object(text)
    if candidate is None:
        logger.debug(f"Reply without JSON for {subject_id}: {text[:500]}")
        raise OracleParseError(subject_id, "no JSON object in oracle reply", text)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug(f"Failed to parse text: {candidate[:500]}")
        raise OracleParseError(subject_id, f"invalid JSON: {e}", text) from e

    if not isinstance(data, dict):
        raise OracleParseError(subject_id, "reply JSON is not an object", text)

    missing = [name for name in REQUIRED_FIELDS if name not in data]
    if missing:
        raise OracleParseError(subject_id, f"missing fields: {', '.join(missing)}", text)

    validated = dict(data)

    for name in PERCENT_FIELDS:
        value = data[name]
        if not _is_number(value):
            raise OracleParseError(subject_id, f"{name} must be a number", text)
        if not (0.0 <= float(value) <= 100.0):
            raise OracleParseError(subject_id, f"{name} {value} out of range [0, 100]", text)
        validated[name] = float(value)

    if not _is_number(data["edge"]):
        raise OracleParseError(subject_id, "edge must be a number", text)
    validated["edge"] = float(data["edge"])

    if not isinstance(data["reasoning"], str):
        raise OracleParseError(subject_id, "reasoning must be a string", text)

    recommendation = data["recommendation"]
    if recommendation not in {r.value for r in Recommendation}:
        raise OracleParseError(subject_id, f"unknown recommendation {recommendation!r}", text)

    return validated


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _unpack(subject: Subject) -> tuple[Market, Optional[Condition]]:
    if isinstance(subject, tuple):
        return subject[0], subject[1]
    return subject, None
