"""
TrustGrid - Testimonial Model

The Testimonial is the core primitive: one piece of social proof about an
owner (a business account) plus its verification state.

Schema:
    (:Testimonial {id, owner_id, status, verification_method, ...})
    (:Profile)-[:RECEIVED]->(:Testimonial)

Rows coming back from a store are loosely typed. Testimonial.from_record is
the only way they become Testimonial objects, and it rejects anything that
does not fit the shape below.
"""
import re
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from enum import Enum

from trustgrid.errors import ValidationError


class TestimonialStatus(str, Enum):
    PENDING = "pending"                            # Reviewer submitted, owner must confirm
    PENDING_VERIFICATION = "pending_verification"  # Waiting for the client's email click
    VERIFIED = "verified"                          # Public, counts toward the trust score
    REJECTED = "rejected"                          # Hidden. No flow produces it yet


class VerificationMethod(str, Enum):
    MANUAL = "manual"        # Owner vouches for it
    EMAIL = "email"          # Client clicks a confirmation link
    LINKEDIN = "linkedin"    # Imported from a LinkedIn recommendation


class Sentiment(str, Enum):
    POSITIVE = "Positive"
    NEUTRAL = "Neutral"
    NEGATIVE = "Negative"


class CardStyle(str, Enum):
    WHITE = "white"
    LIME = "lime"
    DARK = "dark"


class Submitter(str, Enum):
    """Who created the record. Decides the initial status for manual/linkedin."""
    OWNER = "owner"          # Dashboard "Add Proof"
    REVIEWER = "reviewer"    # Public collection form


class TestimonialSource(str, Enum):
    DASHBOARD = "dashboard"
    WEB_COLLECTION = "web_collection"


PENDING_STATUSES = (TestimonialStatus.PENDING, TestimonialStatus.PENDING_VERIFICATION)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MAX_NAME_LENGTH = 120
MAX_TEXT_LENGTH = 5000


@dataclass
class Testimonial:
    id: str
    owner_id: str
    client_name: str
    text: str
    verification_method: VerificationMethod
    status: TestimonialStatus
    created_at: str

    # Reviewer details
    client_company: Optional[str] = None
    client_role: Optional[str] = None
    client_email: Optional[str] = None
    source_url: Optional[str] = None
    source: TestimonialSource = TestimonialSource.DASHBOARD

    # External assets (object store references)
    video_ref: Optional[str] = None
    avatar_ref: Optional[str] = None

    # Analysis
    score: Optional[int] = None
    sentiment: Optional[Sentiment] = None
    keywords: List[str] = field(default_factory=list)
    analysis_reasoning: Optional[str] = None
    score_estimated: bool = False
    rating: Optional[int] = None

    # Display
    card_style: CardStyle = CardStyle.WHITE

    # Verification
    verification_token: Optional[str] = None
    token_expires_at: Optional[str] = None
    verified_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_public(self) -> bool:
        """Only verified records are shown publicly or scored."""
        return self.status == TestimonialStatus.VERIFIED

    @property
    def has_video(self) -> bool:
        return bool(self.video_ref and self.video_ref.strip())

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    def token_expired(self, now: Optional[datetime] = None) -> bool:
        if not self.token_expires_at:
            return False
        now = now or datetime.now(timezone.utc)
        return _parse_iso(self.token_expires_at, "token_expires_at") <= now

    def to_dict(self) -> Dict[str, Any]:
        """Flat dict of primitives, excluding None values for Neo4j."""
        out = {}
        for k, v in self.__dict__.items():
            if v is None:
                continue
            out[k] = v.value if isinstance(v, Enum) else v
        return out

    def to_public(self) -> Dict[str, Any]:
        """Fields safe to show on a public wall. Never includes the token or email."""
        return {
            "id": self.id,
            "client_name": self.client_name,
            "client_company": self.client_company,
            "client_role": self.client_role,
            "text": self.text,
            "video_ref": self.video_ref,
            "avatar_ref": self.avatar_ref,
            "verification_method": self.verification_method.value,
            "score": self.score,
            "sentiment": self.sentiment.value if self.sentiment else None,
            "rating": self.rating,
            "card_style": self.card_style.value,
            "created_at": self.created_at,
            "verified_at": self.verified_at,
        }

    def with_changes(self, **changes) -> "Testimonial":
        return replace(self, **changes)

    @staticmethod
    def from_record(record: dict) -> "Testimonial":
        """Validate and coerce a store row into a Testimonial."""
        if not isinstance(record, dict):
            raise ValidationError("Testimonial record must be a mapping")

        testimonial_id = _require_str(record, "id")
        owner_id = _require_str(record, "owner_id")

        score = record.get("score")
        if score is not None:
            score = coerce_score(score)

        rating = record.get("rating")
        if rating is not None:
            rating = _coerce_rating(rating)

        keywords = record.get("keywords") or []
        if not isinstance(keywords, (list, tuple)):
            raise ValidationError("keywords must be a list", {"field": "keywords"})

        return Testimonial(
            id=testimonial_id,
            owner_id=owner_id,
            client_name=str(record.get("client_name") or ""),
            text=str(record.get("text") or ""),
            verification_method=_enum(VerificationMethod, record.get("verification_method"), "verification_method"),
            status=_enum(TestimonialStatus, record.get("status"), "status"),
            created_at=to_iso(record.get("created_at")) or _require_str(record, "created_at"),
            client_company=record.get("client_company"),
            client_role=record.get("client_role"),
            client_email=record.get("client_email"),
            source_url=record.get("source_url"),
            source=_enum(TestimonialSource, record.get("source") or "dashboard", "source"),
            video_ref=record.get("video_ref") or None,
            avatar_ref=record.get("avatar_ref") or None,
            score=score,
            sentiment=_enum(Sentiment, record["sentiment"], "sentiment") if record.get("sentiment") else None,
            keywords=[str(k) for k in keywords],
            analysis_reasoning=record.get("analysis_reasoning"),
            score_estimated=bool(record.get("score_estimated", False)),
            rating=rating,
            card_style=_enum(CardStyle, record.get("card_style") or "white", "card_style"),
            verification_token=record.get("verification_token"),
            token_expires_at=to_iso(record.get("token_expires_at")),
            verified_at=to_iso(record.get("verified_at")),
            updated_at=to_iso(record.get("updated_at")),
        )


@dataclass
class TestimonialSubmission:
    """
    Input for creating a testimonial, from either the dashboard or the
    public collection form. Call validate() before anything else touches it.
    """
    client_name: str
    text: str = ""
    verification_method: VerificationMethod = VerificationMethod.MANUAL
    client_company: Optional[str] = None
    client_role: Optional[str] = None
    client_email: Optional[str] = None
    video_ref: Optional[str] = None
    avatar_ref: Optional[str] = None
    source_url: Optional[str] = None
    rating: Optional[int] = None
    card_style: CardStyle = CardStyle.WHITE

    def validate(self) -> "TestimonialSubmission":
        name = (self.client_name or "").strip()
        text = (self.text or "").strip()
        video = (self.video_ref or "").strip() or None

        if not name:
            raise ValidationError("Reviewer name is required", {"field": "client_name"})
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError("Reviewer name is too long", {"field": "client_name"})
        if not text and not video:
            raise ValidationError(
                "Testimonial text is required unless a video is attached",
                {"field": "text"},
            )
        if len(text) > MAX_TEXT_LENGTH:
            raise ValidationError("Testimonial text is too long", {"field": "text"})

        try:
            method = VerificationMethod(self.verification_method)
        except ValueError:
            raise ValidationError(
                f"Unknown verification method: {self.verification_method}",
                {"field": "verification_method"},
            )

        email = (self.client_email or "").strip() or None
        if email and not EMAIL_PATTERN.match(email):
            raise ValidationError("Client email is malformed", {"field": "client_email"})
        if method == VerificationMethod.EMAIL and not email:
            raise ValidationError(
                "Client email is required for email verification",
                {"field": "client_email"},
            )

        rating = _coerce_rating(self.rating) if self.rating is not None else None

        return replace(
            self,
            client_name=name,
            text=text,
            video_ref=video,
            client_email=email,
            verification_method=method,
            rating=rating,
            card_style=_enum(CardStyle, self.card_style, "card_style"),
            client_company=(self.client_company or "").strip() or None,
            client_role=(self.client_role or "").strip() or None,
        )


# =============================================
# COERCION HELPERS
# =============================================

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_iso(val) -> Optional[str]:
    """Convert Neo4j DateTime / datetime / str to an ISO string."""
    if val is None:
        return None
    if hasattr(val, "to_native"):
        return val.to_native().isoformat()
    if isinstance(val, datetime):
        return val.isoformat()
    return str(val)


def _parse_iso(value: str, field_name: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid timestamp in {field_name}", {"field": field_name})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_str(record: dict, key: str) -> str:
    value = record.get(key)
    if value is None or str(value).strip() == "":
        raise ValidationError(f"Testimonial record missing {key}", {"field": key})
    return str(value)


def _enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: {value!r}", {"field": field_name})


def coerce_score(value) -> int:
    """0-100, checked before rounding. Booleans and non-finite numbers are rejected."""
    if isinstance(value, bool):
        raise ValidationError(f"Score is not a number: {value!r}", {"field": "score"})
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Score is not a number: {value!r}", {"field": "score"})
    if not math.isfinite(number) or not 0 <= number <= 100:
        raise ValidationError(f"Score out of range: {value!r}", {"field": "score"})
    return int(round(number))


def _coerce_rating(value) -> int:
    try:
        rating = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Rating is not a number: {value!r}", {"field": "rating"})
    if not 1 <= rating <= 5:
        raise ValidationError(f"Rating must be 1-5, got {rating}", {"field": "rating"})
    return rating


