"""
TrustGrid — Reputation Score

Turns an owner's verified testimonials into one 0-100 Trust Score plus a
couple of hints for raising it. Pure functions: no I/O, no clock, no state.

Trust Score = base + quality + volume + media + channel

    Base      10                       Account set up (also the empty result)
    Quality   avg(score) * 0.5         Missing scores count as 70
    Volume    min(count * 2, 20)
    Media     min(videos * 5, 20)
    Channel   10                       Any LinkedIn-verified testimonial

Capped at 100. The practical floor is 10.

Bands (dashboard meter colours):
    < 40   low
    < 70   fair
    < 100  strong
    100    elite   — "Verified Elite" badge
"""
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Dict, Any
from enum import Enum

from trustgrid.testimonials.model import Testimonial, VerificationMethod


BASE_SCORE = 10
DEFAULT_QUALITY = 70
QUALITY_WEIGHT = 0.5
VOLUME_POINTS = 2
VOLUME_CAP = 20
VIDEO_POINTS = 5
VIDEO_CAP = 20
LINKEDIN_BONUS = 10
MAX_SCORE = 100


class ScoreBand(str, Enum):
    LOW = "low"
    FAIR = "fair"
    STRONG = "strong"
    ELITE = "elite"


class HintKind(str, Enum):
    ADD_VIDEO = "add_video"
    CONNECT_LINKEDIN = "connect_linkedin"


@dataclass
class ImprovementHint:
    kind: HintKind
    label: str
    points: int

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "label": self.label, "points": self.points}


@dataclass
class TrustReport:
    score: int
    band: ScoreBand
    verified_count: int
    video_count: int
    has_linkedin: bool
    avg_quality: float
    components: Dict[str, float] = field(default_factory=dict)
    hints: List[ImprovementHint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "band": self.band.value,
            "verified_count": self.verified_count,
            "video_count": self.video_count,
            "has_linkedin": self.has_linkedin,
            "avg_quality": round(self.avg_quality, 2),
            "components": {k: round(v, 2) for k, v in self.components.items()},
            "hints": [h.to_dict() for h in self.hints],
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _verified(testimonials: Iterable[Testimonial]) -> List[Testimonial]:
    return [t for t in testimonials if t.is_public]


def score_components(testimonials: Iterable[Testimonial]) -> Dict[str, float]:
    """Point contribution of each component. Empty input gives the base only."""
    verified = _verified(testimonials)
    if not verified:
        return {"base": BASE_SCORE, "quality": 0.0, "volume": 0.0, "media": 0.0, "channel": 0.0}

    qualities = [t.score if t.score is not None else DEFAULT_QUALITY for t in verified]
    avg_quality = sum(qualities) / len(qualities)
    video_count = sum(1 for t in verified if t.has_video)
    has_linkedin = any(t.verification_method == VerificationMethod.LINKEDIN for t in verified)

    return {
        "base": BASE_SCORE,
        "quality": avg_quality * QUALITY_WEIGHT,
        "volume": min(len(verified) * VOLUME_POINTS, VOLUME_CAP),
        "media": min(video_count * VIDEO_POINTS, VIDEO_CAP),
        "channel": LINKEDIN_BONUS if has_linkedin else 0,
    }


def calculate_trust_score(testimonials: Iterable[Testimonial]) -> int:
    """
    Trust Score (0-100) for a set of verified testimonials.
    Records that are not verified are ignored.
    """
    components = score_components(testimonials)
    return min(MAX_SCORE, _round_half_up(sum(components.values())))


def score_band(score: int) -> ScoreBand:
    if score >= MAX_SCORE:
        return ScoreBand.ELITE
    if score >= 70:
        return ScoreBand.STRONG
    if score >= 40:
        return ScoreBand.FAIR
    return ScoreBand.LOW


def improvement_hints(components: Dict[str, float]) -> List[ImprovementHint]:
    """Only two hints exist: more video, and a LinkedIn-verified testimonial."""
    hints = []
    video_headroom = int(VIDEO_CAP - components.get("media", 0))
    if video_headroom > 0:
        hints.append(ImprovementHint(
            kind=HintKind.ADD_VIDEO,
            label="Add a video testimonial",
            points=video_headroom,
        ))
    if not components.get("channel"):
        hints.append(ImprovementHint(
            kind=HintKind.CONNECT_LINKEDIN,
            label="Connect LinkedIn",
            points=LINKEDIN_BONUS,
        ))
    return hints


def build_trust_report(testimonials: Iterable[Testimonial]) -> TrustReport:
    verified = _verified(testimonials)
    components = score_components(verified)
    score = min(MAX_SCORE, _round_half_up(sum(components.values())))

    if verified:
        avg_quality = components["quality"] / QUALITY_WEIGHT
    else:
        avg_quality = 0.0

    return TrustReport(
        score=score,
        band=score_band(score),
        verified_count=len(verified),
        video_count=sum(1 for t in verified if t.has_video),
        has_linkedin=bool(components["channel"]),
        avg_quality=avg_quality,
        components=components,
        hints=improvement_hints(components) if score < MAX_SCORE else [],
    )
