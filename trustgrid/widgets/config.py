"""
TrustGrid — Widget & Collection Form Configuration

WidgetConfig decides how an owner's verified testimonials are presented on
the embeddable widget. FormConfig decides what the public collection form
asks reviewers. Both are saved per owner and fall back to defaults.
"""
from html import escape
from typing import List, Optional, Dict, Any, Iterable, Literal

from pydantic import BaseModel, Field, field_validator

from trustgrid.config import settings
from trustgrid.errors import ValidationError
from trustgrid.testimonials.model import (
    Testimonial, TestimonialSubmission, VerificationMethod,
)


# =============================================
# WIDGET
# =============================================

class WidgetConfig(BaseModel):
    layout: Literal["grid", "carousel", "list", "popup"] = "grid"
    theme: Literal["modern", "dark_mode", "minimalist", "brand"] = "modern"
    show_avatar: bool = True
    show_company: bool = True
    show_score: bool = True
    show_video: bool = True
    min_rating: float = Field(0, ge=0, le=5)
    max_items: int = Field(12, ge=1, le=50)


def effective_rating(testimonial: Testimonial) -> Optional[float]:
    """Star rating if the reviewer gave one, else the trust score on a 5-star scale."""
    if testimonial.rating is not None:
        return float(testimonial.rating)
    if testimonial.score is not None:
        return testimonial.score / 20
    return None


def apply_widget_config(testimonials: Iterable[Testimonial], config: WidgetConfig) -> List[Testimonial]:
    """
    Verified records that clear the minimum rating, capped at max_items.
    Input order is kept. Records without any rating only pass when no
    minimum is set.
    """
    shown = []
    for t in testimonials:
        if not t.is_public:
            continue
        if config.min_rating > 0:
            rating = effective_rating(t)
            if rating is None or rating < config.min_rating:
                continue
        shown.append(t)
        if len(shown) >= config.max_items:
            break
    return shown


def widget_card(testimonial: Testimonial, config: WidgetConfig) -> Dict[str, Any]:
    """Public card with the fields the widget is configured to hide removed."""
    card = testimonial.to_public()
    if not config.show_avatar:
        card.pop("avatar_ref", None)
    if not config.show_company:
        card.pop("client_company", None)
        card.pop("client_role", None)
    if not config.show_score:
        card.pop("score", None)
    if not config.show_video:
        card.pop("video_ref", None)
    return card


def embed_snippet(handle: str, config: WidgetConfig) -> str:
    src = escape(f"{settings.APP_URL}/widget/{handle}?layout={config.layout}&theme={config.theme}", quote=True)
    height = 250 if config.layout in ("carousel", "popup") else 600
    return f"""<!-- TrustGrid Testimonial Widget -->
<iframe
  src="{src}"
  width="100%"
  height="{height}"
  style="border:none; overflow:hidden; border-radius:12px;"
  title="Verified Reviews"
></iframe>
<div style="font-size:10px; color:#666; text-align:center; margin-top:4px;">
  Verified by <a href="https://trustgrid.et" target="_blank" style="color:#000; font-weight:bold; text-decoration:none;">TrustGrid.et</a>
</div>"""


# =============================================
# COLLECTION FORM
# =============================================

class QuestionConfig(BaseModel):
    id: str = Field(..., min_length=1, max_length=40)
    label: str = Field(..., min_length=1, max_length=300)
    type: Literal["text", "textarea", "rating"] = "textarea"
    required: bool = False
    placeholder: Optional[str] = None


DEFAULT_QUESTIONS = [
    QuestionConfig(id="q1", label="What did you like most about working with us?", type="textarea", required=True),
    QuestionConfig(id="q2", label="How would you rate our service?", type="rating", required=True),
]


class FormConfig(BaseModel):
    title: str = "Share your experience"
    subtitle: str = "Your feedback helps us grow."
    questions: List[QuestionConfig] = Field(default_factory=lambda: [q.model_copy() for q in DEFAULT_QUESTIONS])
    allow_video: bool = True
    allow_photo: bool = True
    allow_linkedin_import: bool = True

    @field_validator("questions")
    @classmethod
    def unique_question_ids(cls, v: List[QuestionConfig]) -> List[QuestionConfig]:
        ids = [q.id for q in v]
        if len(ids) != len(set(ids)):
            raise ValueError("Question ids must be unique")
        return v


class CollectionSubmission(BaseModel):
    """What a reviewer posts to the public collection form."""
    client_name: str = Field(..., max_length=120)
    client_email: Optional[str] = None
    client_company: Optional[str] = None
    client_role: Optional[str] = None
    answers: Dict[str, Any] = Field(default_factory=dict)
    video_ref: Optional[str] = None
    avatar_ref: Optional[str] = None
    source_url: Optional[str] = None
    verification_method: VerificationMethod = VerificationMethod.MANUAL


def _answered(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def build_submission(form: FormConfig, payload: CollectionSubmission) -> TestimonialSubmission:
    """
    Fold form answers into a testimonial submission. Text answers become
    the testimonial text as "label\\nAnswer: ..." blocks; the first rating
    question becomes the star rating. Required text questions are waived
    when a video is attached.
    """
    if payload.video_ref and not form.allow_video:
        raise ValidationError("This form does not accept video", {"field": "video_ref"})
    if payload.avatar_ref and not form.allow_photo:
        raise ValidationError("This form does not accept photos", {"field": "avatar_ref"})
    if payload.verification_method == VerificationMethod.LINKEDIN and not form.allow_linkedin_import:
        raise ValidationError("This form does not accept LinkedIn imports", {"field": "verification_method"})

    has_video = bool((payload.video_ref or "").strip())
    blocks = []
    rating = None

    for q in form.questions:
        answer = payload.answers.get(q.id)
        if not _answered(answer):
            if q.required and not (has_video and q.type != "rating"):
                raise ValidationError(f"Please answer: {q.label}", {"field": q.id})
            continue
        if q.type == "rating":
            if rating is None:
                rating = answer
            continue
        blocks.append(f"{q.label}\nAnswer: {str(answer).strip()}")

    return TestimonialSubmission(
        client_name=payload.client_name,
        text="\n\n".join(blocks),
        verification_method=payload.verification_method,
        client_company=payload.client_company,
        client_role=payload.client_role,
        client_email=payload.client_email,
        video_ref=payload.video_ref,
        avatar_ref=payload.avatar_ref,
        source_url=payload.source_url,
        rating=rating,
    )


def load_widget_config(raw: Optional[Dict[str, Any]]) -> WidgetConfig:
    return WidgetConfig(**raw) if raw else WidgetConfig()


def load_form_config(raw: Optional[Dict[str, Any]]) -> FormConfig:
    return FormConfig(**raw) if raw else FormConfig()
