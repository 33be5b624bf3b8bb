import pytest
from pydantic import ValidationError as PydanticValidationError

from trustgrid.errors import ValidationError
from trustgrid.testimonials.model import TestimonialStatus, VerificationMethod
from trustgrid.widgets.config import (
    WidgetConfig, FormConfig, QuestionConfig, CollectionSubmission,
    apply_widget_config, widget_card, embed_snippet, build_submission,
)


def test_widget_filters_unverified_and_caps_count(make_testimonial):
    records = [make_testimonial(score=80) for _ in range(5)]
    records.insert(1, make_testimonial(status=TestimonialStatus.PENDING, score=99))

    shown = apply_widget_config(records, WidgetConfig(max_items=3))
    assert len(shown) == 3
    assert all(t.is_public for t in shown)
    assert [t.id for t in shown] == [records[0].id, records[2].id, records[3].id]


def test_widget_min_rating_prefers_star_rating(make_testimonial):
    starred_low = make_testimonial(rating=3, score=100)
    starred_high = make_testimonial(rating=5, score=10)
    scored = make_testimonial(score=90)
    unrated = make_testimonial(score=None)

    shown = apply_widget_config([starred_low, starred_high, scored, unrated], WidgetConfig(min_rating=4))
    assert [t.id for t in shown] == [starred_high.id, scored.id]

    everything = apply_widget_config([starred_low, starred_high, scored, unrated], WidgetConfig())
    assert len(everything) == 4


def test_widget_does_not_mutate_input(make_testimonial):
    records = [make_testimonial(score=50), make_testimonial(score=95)]
    before = [r.to_dict() for r in records]
    apply_widget_config(records, WidgetConfig(min_rating=4, max_items=1))
    assert [r.to_dict() for r in records] == before


def test_widget_config_bounds():
    with pytest.raises(PydanticValidationError):
        WidgetConfig(max_items=0)
    with pytest.raises(PydanticValidationError):
        WidgetConfig(min_rating=6)
    with pytest.raises(PydanticValidationError):
        WidgetConfig(layout="masonry")


def test_widget_card_hides_configured_fields(make_testimonial):
    t = make_testimonial(score=90, video_ref="v.webm", client_company="Acme", avatar_ref="a.png")
    card = widget_card(t, WidgetConfig(show_score=False, show_video=False, show_company=False, show_avatar=False))
    for key in ("score", "video_ref", "client_company", "avatar_ref"):
        assert key not in card
    assert card["client_name"] == t.client_name


def test_embed_snippet_points_at_handle():
    snippet = embed_snippet("acme-studio", WidgetConfig(layout="carousel", theme="dark_mode"))
    assert "https://app.test/widget/acme-studio?layout=carousel&amp;theme=dark_mode" in snippet
    assert 'height="250"' in snippet


def test_default_form_has_two_required_questions():
    form = FormConfig()
    assert [q.type for q in form.questions] == ["textarea", "rating"]
    assert all(q.required for q in form.questions)
    assert form.allow_video and form.allow_photo and form.allow_linkedin_import


def test_form_rejects_duplicate_question_ids():
    with pytest.raises(PydanticValidationError):
        FormConfig(questions=[QuestionConfig(id="q1", label="A"), QuestionConfig(id="q1", label="B")])


def test_build_submission_folds_answers():
    form = FormConfig(questions=[
        QuestionConfig(id="q1", label="What did you like?", type="textarea", required=True),
        QuestionConfig(id="q2", label="Anything else?", type="text"),
        QuestionConfig(id="q3", label="Rate us", type="rating", required=True),
        QuestionConfig(id="q4", label="Rate support", type="rating"),
    ])
    payload = CollectionSubmission(
        client_name="Sara",
        answers={"q1": "Fast delivery", "q2": "  ", "q3": 4, "q4": 2},
    )
    submission = build_submission(form, payload)

    assert submission.text == "What did you like?\nAnswer: Fast delivery"
    assert submission.rating == 4
    assert submission.verification_method == VerificationMethod.MANUAL


def test_build_submission_requires_answers():
    with pytest.raises(ValidationError) as exc:
        build_submission(FormConfig(), CollectionSubmission(client_name="Sara", answers={"q1": "Nice"}))
    assert exc.value.detail["field"] == "q2"


def test_video_waives_required_text_but_not_rating():
    form = FormConfig()
    submission = build_submission(form, CollectionSubmission(
        client_name="Sara", video_ref="videos/1.webm", answers={"q2": 5},
    ))
    assert submission.text == ""
    assert submission.rating == 5

    with pytest.raises(ValidationError):
        build_submission(form, CollectionSubmission(client_name="Sara", video_ref="videos/1.webm"))


def test_form_switches_are_enforced():
    form = FormConfig(allow_video=False, allow_photo=False, allow_linkedin_import=False)
    answers = {"q1": "Nice", "q2": 5}
    with pytest.raises(ValidationError):
        build_submission(form, CollectionSubmission(client_name="Sara", answers=answers, video_ref="v.webm"))
    with pytest.raises(ValidationError):
        build_submission(form, CollectionSubmission(client_name="Sara", answers=answers, avatar_ref="a.png"))
    with pytest.raises(ValidationError):
        build_submission(form, CollectionSubmission(client_name="Sara", answers=answers,
                                                    verification_method="linkedin"))
