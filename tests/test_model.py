from datetime import datetime, timezone, timedelta

import pytest

from trustgrid.errors import ValidationError
from trustgrid.testimonials.model import (
    Testimonial, TestimonialSubmission, TestimonialStatus, VerificationMethod,
    Sentiment, CardStyle, coerce_score,
)


def _row(**overrides):
    row = {
        "id": "t-1",
        "owner_id": "owner-1",
        "client_name": "Sara Tesfaye",
        "text": "Great work.",
        "verification_method": "email",
        "status": "pending_verification",
        "created_at": "2024-05-01T10:00:00+00:00",
        "score": 77,
        "sentiment": "Positive",
        "card_style": "lime",
        "verification_token": "tok",
    }
    row.update(overrides)
    return row


def test_from_record_parses_enums_and_defaults():
    t = Testimonial.from_record(_row())
    assert t.status == TestimonialStatus.PENDING_VERIFICATION
    assert t.verification_method == VerificationMethod.EMAIL
    assert t.sentiment == Sentiment.POSITIVE
    assert t.card_style == CardStyle.LIME
    assert t.keywords == []
    assert t.is_pending
    assert not t.is_public


@pytest.mark.parametrize("overrides", [
    {"status": "approved"},
    {"verification_method": "sms"},
    {"score": 140},
    {"score": "high"},
    {"score": float("inf")},
    {"score": 100.4},
    {"sentiment": "Ecstatic"},
    {"id": None},
    {"owner_id": ""},
    {"keywords": "fast"},
])
def test_from_record_rejects_malformed_rows(overrides):
    with pytest.raises(ValidationError):
        Testimonial.from_record(_row(**overrides))


def test_from_record_converts_datetimes_to_iso():
    created = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    t = Testimonial.from_record(_row(created_at=created))
    assert t.created_at == created.isoformat()


def test_to_dict_drops_none_and_flattens_enums():
    t = Testimonial.from_record(_row())
    data = t.to_dict()
    assert data["status"] == "pending_verification"
    assert data["card_style"] == "lime"
    assert "video_ref" not in data


def test_public_view_hides_token_and_email():
    t = Testimonial.from_record(_row(client_email="sara@example.com"))
    public = t.to_public()
    assert "verification_token" not in public
    assert "client_email" not in public


def test_token_expiry():
    now = datetime.now(timezone.utc)
    fresh = Testimonial.from_record(_row(token_expires_at=(now + timedelta(hours=1)).isoformat()))
    stale = Testimonial.from_record(_row(token_expires_at=(now - timedelta(seconds=1)).isoformat()))
    never = Testimonial.from_record(_row())
    assert not fresh.token_expired(now)
    assert stale.token_expired(now)
    assert not never.token_expired(now)


def test_coerce_score_bounds():
    assert coerce_score(0) == 0
    assert coerce_score("100") == 100
    assert coerce_score(87.6) == 88
    with pytest.raises(ValidationError):
        coerce_score(-1)
    with pytest.raises(ValidationError):
        coerce_score(None)


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "1e999", 100.4, -0.4, True, False])
def test_coerce_score_rejects_non_finite_and_edge_values(value):
    with pytest.raises(ValidationError):
        coerce_score(value)


def test_submission_requires_name():
    with pytest.raises(ValidationError) as exc:
        TestimonialSubmission(client_name="  ", text="Nice").validate()
    assert exc.value.detail["field"] == "client_name"


def test_submission_requires_text_or_video():
    with pytest.raises(ValidationError):
        TestimonialSubmission(client_name="Sara", text="   ").validate()

    cleaned = TestimonialSubmission(client_name="Sara", text="", video_ref="videos/1.webm").validate()
    assert cleaned.text == ""
    assert cleaned.video_ref == "videos/1.webm"


def test_email_method_requires_wellformed_email():
    with pytest.raises(ValidationError):
        TestimonialSubmission(client_name="Sara", text="Nice", verification_method="email").validate()
    with pytest.raises(ValidationError):
        TestimonialSubmission(client_name="Sara", text="Nice", verification_method="email",
                              client_email="not-an-email").validate()

    cleaned = TestimonialSubmission(client_name="Sara", text="Nice", verification_method="email",
                                    client_email=" sara@example.com ").validate()
    assert cleaned.verification_method == VerificationMethod.EMAIL
    assert cleaned.client_email == "sara@example.com"


def test_submission_rejects_unknown_method_and_bad_rating():
    with pytest.raises(ValidationError):
        TestimonialSubmission(client_name="Sara", text="Nice", verification_method="fax").validate()
    with pytest.raises(ValidationError):
        TestimonialSubmission(client_name="Sara", text="Nice", rating=6).validate()


def test_submission_trims_fields():
    cleaned = TestimonialSubmission(
        client_name="  Sara  ", text="  Nice work  ", client_company="  ", rating="4",
    ).validate()
    assert cleaned.client_name == "Sara"
    assert cleaned.text == "Nice work"
    assert cleaned.client_company is None
    assert cleaned.rating == 4
