"""Advisory AI diagnosis of detected anomalies.

A cheap model answers first. Only when it reports low confidence is the
same question put to a stronger model, whose answer then replaces the
first. The result is informational: nothing here changes runs or scraping.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Protocol

import anthropic

from cinewatch.config import settings

logger = logging.getLogger(__name__)

CHEAP = "cheap"
STRONG = "strong"

DEFAULT_CONFIDENCE = 0.5
MAX_RAW_ANALYSIS_CHARS = 500

SYSTEM_PROMPT = """You are a cinema data quality analyst. Analyze screening data anomalies and provide concise, actionable insights.

Your response must be a JSON object with this exact structure:
{
  "analysis": "2-3 sentence explanation of what might be causing this anomaly",
  "confidence": 0.0-1.0 (how confident you are in your analysis),
  "suggestedAction": "Optional suggestion for what the admin should do"
}

Common causes of anomalies:
- Website changes breaking scrapers
- Cinema closed for renovation/holiday
- Special events replacing regular screenings
- Scraper timing issues (site not updated yet)
- Technical issues on cinema's booking system"""

USER_PROMPT = """Analyze this cinema screening anomaly:

{context}

Anomaly type "{anomaly_type}" means:
- zero_results: No screenings found today, but there were screenings last week
- low_count: Significantly fewer screenings than expected
- high_count: Unusually high count, possible duplicates
- error: The last scrape failed outright

Provide your analysis as JSON."""

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class VerificationError(Exception):
    """The model call failed or returned nothing usable."""


@dataclass
class Verdict:
    analysis: str
    confidence: float
    model: str
    suggested_action: str | None = None


@dataclass
class CinemaContext:
    cinema_id: str
    name: str
    website: str | None = None
    chain: str | None = None
    recent_count: int = 0  # screenings in the last 7 days
    today: date | None = None


class Classifier(Protocol):
    """Produces a verdict for a prompt context."""

    label: str

    async def classify(self, context: str, anomaly_type: str) -> Verdict: ...


def _clamp(value: object) -> float:
    try:
        confidence = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))


def parse_model_response(text: str, model: str) -> Verdict:
    """
    Parse a model reply into a Verdict.

    Tries the whole reply as JSON, then JSON inside a markdown fence. If
    neither parses, the raw text becomes the analysis at default confidence.
    """
    candidates = [text.strip()]
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1).strip())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if not isinstance(parsed, dict):
            continue
        suggested = parsed.get("suggestedAction") or parsed.get("suggested_action")
        return Verdict(
            analysis=str(parsed.get("analysis") or "Unable to analyze"),
            confidence=_clamp(parsed.get("confidence", DEFAULT_CONFIDENCE)),
            model=model,
            suggested_action=str(suggested) if suggested else None,
        )

    return Verdict(
        analysis=text[:MAX_RAW_ANALYSIS_CHARS],
        confidence=DEFAULT_CONFIDENCE,
        model=model,
    )


def build_context(
    cinema: CinemaContext,
    anomaly_type: str,
    today_count: int,
    last_week_count: int,
) -> str:
    today = cinema.today or date.today()
    return "\n".join(
        [
            f"Cinema: {cinema.name}",
            f"Website: {cinema.website or 'Unknown'}",
            f"Chain: {cinema.chain or 'Independent'}",
            f"Anomaly Type: {anomaly_type}",
            f"Today's Screening Count: {today_count}",
            f"Last Week Same Day Count: {last_week_count}",
            f"Total Screenings (last 7 days): {cinema.recent_count}",
            f"Date: {today:%A}, {today.day} {today:%B %Y}",
        ]
    )


class AnthropicClassifier:
    """Classifier backed by one Anthropic model."""

    def __init__(
        self,
        model: str,
        label: str,
        client: anthropic.AsyncAnthropic | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.model = model
        self.label = label
        self.client = client or anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key or None)
        self.max_tokens = max_tokens or settings.verifier_max_tokens

    async def classify(self, context: str, anomaly_type: str) -> Verdict:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                messages=[
                    {
                        "role": "user",
                        "content": USER_PROMPT.format(context=context, anomaly_type=anomaly_type),
                    }
                ],
            )
        except anthropic.APIError as e:
            raise VerificationError(f"{self.model} request failed: {e}") from e

        text = next(
            (block.text for block in response.content if getattr(block, "type", None) == "text"),
            None,
        )
        if text is None:
            raise VerificationError(f"No text response from {self.model}")

        return parse_model_response(text, self.label)


class EscalatingClassifier:
    """
    Ask ``primary``; if its confidence is below ``min_confidence``, ask ``fallback``.

    The calls are sequential since the second depends on the first.
    """

    def __init__(
        self,
        primary: Classifier,
        fallback: Classifier,
        min_confidence: float | None = None,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.min_confidence = (
            settings.verifier_min_confidence if min_confidence is None else min_confidence
        )
        self.label = primary.label

    async def classify(self, context: str, anomaly_type: str) -> Verdict:
        verdict = await self.primary.classify(context, anomaly_type)
        if verdict.confidence >= self.min_confidence:
            return verdict

        logger.info(
            f"{self.primary.label} confidence {verdict.confidence:.2f} below "
            f"{self.min_confidence:.2f}, escalating to {self.fallback.label}"
        )
        return await self.fallback.classify(context, anomaly_type)


def default_classifier() -> EscalatingClassifier:
    client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key or None)
    return EscalatingClassifier(
        primary=AnthropicClassifier(settings.verifier_cheap_model, CHEAP, client),
        fallback=AnthropicClassifier(settings.verifier_strong_model, STRONG, client),
    )


class AnomalyVerifier:
    """Diagnoses an anomaly for a human operator."""

    def __init__(self, classifier: Classifier | None = None) -> None:
        self.classifier = classifier or default_classifier()

    async def verify(
        self,
        cinema: CinemaContext,
        anomaly_type: str,
        today_count: int,
        last_week_count: int,
    ) -> Verdict:
        """
        Raises:
            VerificationError: the model call failed. Distinct from a
                low-confidence answer, which is returned normally.
        """
        context = build_context(cinema, anomaly_type, today_count, last_week_count)
        try:
            verdict = await self.classifier.classify(context, anomaly_type)
        except VerificationError:
            logger.error(f"Verification failed for {cinema.cinema_id}", exc_info=True)
            raise
        except Exception as e:
            logger.error(f"Verification failed for {cinema.cinema_id}: {e}", exc_info=True)
            raise VerificationError(str(e)) from e

        logger.info(
            f"Verified {anomaly_type} at {cinema.cinema_id}: "
            f"{verdict.model} model, confidence {verdict.confidence:.2f}"
        )
        return verdict
