"""
TrustGrid - Public API

No authentication. Everything here is addressed by an owner's public
handle or by a confirmation token.

    GET  /walls/:handle          - Verified testimonials, newest first
    GET  /walls/:handle/widget   - Same, filtered by the owner's widget config
    GET  /collect/:handle        - Collection form definition
    POST /collect/:handle        - Reviewer submits a testimonial
    GET  /verify/:token          - What the confirmation link points at
    POST /verify/:token          - Client confirms their testimonial
"""
from fastapi import APIRouter, Depends, Request

from trustgrid.accounts.profiles import Profile, ProfileStore
from trustgrid.deps import get_testimonial_store, get_profile_store, get_analyzer, get_notifier
from trustgrid.rate_limit import rate_limit_collect, rate_limit_verify
from trustgrid.testimonials.model import Submitter, TestimonialStatus
from trustgrid.testimonials.store import TestimonialStore
from trustgrid.testimonials import lifecycle
from trustgrid.trust.score import calculate_trust_score
from trustgrid.widgets.config import (
    CollectionSubmission, apply_widget_config, widget_card, build_submission,
    load_widget_config, load_form_config,
)

router = APIRouter(tags=["public"])


def public_profile(profile: Profile) -> dict:
    return {
        "username": profile.username,
        "display_name": profile.display_name,
        "full_name": profile.full_name,
        "company_name": profile.company_name,
        "website": profile.website,
        "logo_url": profile.logo_url,
        "primary_color": profile.primary_color,
    }


# =============================================
# WALLS
# =============================================

@router.get("/walls/{handle}")
async def public_wall(
    handle: str,
    request: Request,
    profiles: ProfileStore = Depends(get_profile_store),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    profile = profiles.require_by_handle(handle)
    testimonials = lifecycle.list_public_testimonials(store, profile.id)
    profiles.record_view(profile.id, referrer=request.headers.get("referer"))

    return {
        "profile": public_profile(profile),
        "trust_score": calculate_trust_score(testimonials),
        "testimonials": [t.to_public() for t in testimonials],
    }


@router.get("/walls/{handle}/widget")
async def public_widget(
    handle: str,
    profiles: ProfileStore = Depends(get_profile_store),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    profile = profiles.require_by_handle(handle)
    config = load_widget_config(profiles.get_config(profile.id, "widget"))
    testimonials = apply_widget_config(lifecycle.list_public_testimonials(store, profile.id), config)

    return {
        "profile": public_profile(profile),
        "config": config.model_dump(),
        "testimonials": [widget_card(t, config) for t in testimonials],
    }


# =============================================
# COLLECTION
# =============================================

@router.get("/collect/{handle}")
async def collection_form(
    handle: str,
    profiles: ProfileStore = Depends(get_profile_store),
):
    profile = profiles.require_by_handle(handle)
    form = load_form_config(profiles.get_config(profile.id, "form"))
    return {"profile": public_profile(profile), "form": form.model_dump()}


@router.post("/collect/{handle}", status_code=201, dependencies=[Depends(rate_limit_collect)])
async def submit_testimonial(
    handle: str,
    body: CollectionSubmission,
    profiles: ProfileStore = Depends(get_profile_store),
    store: TestimonialStore = Depends(get_testimonial_store),
    analyzer=Depends(get_analyzer),
    notifier=Depends(get_notifier),
):
    profile = profiles.require_by_handle(handle)
    form = load_form_config(profiles.get_config(profile.id, "form"))

    result = await lifecycle.create_testimonial(
        store,
        build_submission(form, body),
        owner_id=profile.id,
        submitter=Submitter.REVIEWER,
        analyzer=analyzer,
        notifier=notifier,
        company_name=profile.display_name,
    )
    return {
        "id": result.testimonial.id,
        "status": result.testimonial.status.value,
        "notification_sent": result.notification_sent,
    }


# =============================================
# EMAIL CONFIRMATION
# =============================================

@router.get("/verify/{token}", dependencies=[Depends(rate_limit_verify)])
async def verification_preview(
    token: str,
    profiles: ProfileStore = Depends(get_profile_store),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    testimonial = lifecycle.preview_verification(store, token)
    owner = profiles.get_by_id(testimonial.owner_id)
    return {
        "status": testimonial.status.value,
        "already_verified": testimonial.status == TestimonialStatus.VERIFIED,
        "company_name": owner.display_name if owner else None,
        "testimonial": testimonial.to_public(),
    }


@router.post("/verify/{token}", dependencies=[Depends(rate_limit_verify)])
async def confirm_verification(
    token: str,
    store: TestimonialStore = Depends(get_testimonial_store),
):
    result = lifecycle.confirm_verification(store, token)
    return {
        "outcome": result.outcome.value,
        "testimonial": result.testimonial.to_public(),
    }
