"""
TrustGrid — Testimonial Analysis

Asks Gemini to read a testimonial and return a trust score (0-100),
sentiment, trust keywords, a one-line reasoning and an authenticity flag.

The analyzer is optional. Callers go through analyze_with_fallback, which
swaps in estimate_trust_analysis whenever Gemini is unconfigured, down,
slow, or returns something malformed. Estimated results carry
estimated=True and say so in their reasoning.
"""
import json
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

import httpx
import structlog

from trustgrid.config import settings
from trustgrid.errors import DependencyError, ValidationError
from trustgrid.testimonials.model import Sentiment, coerce_score

logger = structlog.get_logger()

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

ANALYSIS_PROMPT = (
    "Analyze the following business testimonial text for authenticity and "
    "trust markers. Text: \"{text}\""
)

# Gemini structured-output schema, mirrors TrustAnalysis
RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "score": {"type": "INTEGER", "description": "A trust score between 0 and 100"},
        "sentiment": {"type": "STRING", "enum": ["Positive", "Neutral", "Negative"]},
        "keywords": {
            "type": "ARRAY",
            "items": {"type": "STRING"},
            "description": "Key trust-building words found in the text",
        },
        "reasoning": {"type": "STRING", "description": "Short explanation of the score"},
        "isAuthentic": {
            "type": "BOOLEAN",
            "description": "Whether the text appears to be a genuine human review",
        },
    },
    "required": ["score", "sentiment", "keywords", "reasoning", "isAuthentic"],
}

ESTIMATE_REASONING = "Estimated from text length and detail; AI analysis was unavailable."


@dataclass
class TrustAnalysis:
    score: int
    sentiment: Sentiment
    keywords: List[str] = field(default_factory=list)
    reasoning: str = ""
    is_authentic: Optional[bool] = None
    estimated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "sentiment": self.sentiment.value,
            "keywords": self.keywords,
            "reasoning": self.reasoning,
            "is_authentic": self.is_authentic,
            "estimated": self.estimated,
        }

    @staticmethod
    def from_payload(payload: dict) -> "TrustAnalysis":
        """Validate the analyzer's JSON. Out-of-range scores are rejected, not clamped."""
        if not isinstance(payload, dict):
            raise ValidationError("Analyzer payload must be an object")
        if "score" not in payload:
            raise ValidationError("Analyzer payload missing score", {"field": "score"})

        score = coerce_score(payload["score"])
        try:
            sentiment = Sentiment(payload.get("sentiment"))
        except ValueError:
            raise ValidationError(
                f"Analyzer returned unknown sentiment: {payload.get('sentiment')!r}",
                {"field": "sentiment"},
            )

        keywords = payload.get("keywords") or []
        if not isinstance(keywords, list):
            raise ValidationError("Analyzer keywords must be a list", {"field": "keywords"})

        is_authentic = payload.get("isAuthentic", payload.get("is_authentic"))
        return TrustAnalysis(
            score=score,
            sentiment=sentiment,
            keywords=[str(k) for k in keywords][:12],
            reasoning=str(payload.get("reasoning") or ""),
            is_authentic=bool(is_authentic) if is_authentic is not None else None,
        )


# =============================================
# FALLBACK
# =============================================

def estimate_trust_analysis(text: str) -> TrustAnalysis:
    """
    Local estimate used whenever the analyzer cannot answer.
    Longer, more specific testimonials score higher; capped well below
    what a real analysis can award.
    """
    words = (text or "").split()
    score = 50 + min(len(words), 30)
    if any(ch.isdigit() for ch in text or ""):
        score += 5  # concrete figures read as specific proof
    score = min(score, 85)

    return TrustAnalysis(
        score=score,
        sentiment=Sentiment.NEUTRAL,
        keywords=[],
        reasoning=ESTIMATE_REASONING,
        is_authentic=None,
        estimated=True,
    )


# =============================================
# GEMINI CLIENT
# =============================================

class TestimonialAnalyzer:
    """Interface for anything that can score testimonial text."""

    async def analyze(self, text: str) -> TrustAnalysis:
        raise NotImplementedError


class GeminiAnalyzer(TestimonialAnalyzer):
    """Google Gemini client with JSON structured output."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_MODEL
        self.timeout = timeout or settings.ANALYZER_TIMEOUT_SECONDS
        self.base_url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"
        self._transport = transport

    async def analyze(self, text: str) -> TrustAnalysis:
        if not self.api_key:
            raise DependencyError("Gemini API key not configured", dependency="analyzer")

        body = {
            "contents": [{"parts": [{"text": ANALYSIS_PROMPT.format(text=text)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
                "temperature": 0.0,
            },
        }

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            try:
                response = await client.post(
                    self.base_url,
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
                raw = data["candidates"][0]["content"]["parts"][0]["text"]
                payload = json.loads(raw)
            except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
                logger.error("gemini_analysis_failed", model=self.model, error=str(e))
                raise DependencyError(
                    "Testimonial analysis unavailable",
                    dependency="analyzer",
                    detail={"reason": type(e).__name__},
                )

        return TrustAnalysis.from_payload(payload)


async def analyze_with_fallback(
    analyzer: Optional[TestimonialAnalyzer],
    text: str,
) -> TrustAnalysis:
    """
    The one place analyzer failures are recovered. Never raises for a
    dependency problem; returns an estimated analysis instead.
    """
    if analyzer is None:
        return estimate_trust_analysis(text)

    try:
        analysis = await analyzer.analyze(text)
    except DependencyError as e:
        logger.warning("analyzer_unavailable_using_estimate", error=e.message)
        return estimate_trust_analysis(text)
    except ValidationError as e:
        logger.warning("analyzer_payload_rejected_using_estimate", error=e.message)
        return estimate_trust_analysis(text)

    logger.info("testimonial_analyzed", score=analysis.score, sentiment=analysis.sentiment.value)
    return analysis
