"""
TrustGrid - Owner Settings API

    GET/PUT  /v1/profile         - Handle, branding, contact details
    GET/PUT  /v1/widget          - Widget display configuration
    GET      /v1/widget/embed    - Embed code for the widget
    GET/PUT  /v1/form            - Collection form configuration
    GET/POST /v1/team/invites    - Team invites
    GET      /v1/analytics       - Wall views and testimonial counts
"""
from collections import Counter
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trustgrid.auth import require_auth
from trustgrid.accounts.profiles import Profile, ProfileStore, TeamRole
from trustgrid.accounts.team import invite_member
from trustgrid.deps import get_profile_store, get_testimonial_store, get_notifier
from trustgrid.errors import ValidationError
from trustgrid.testimonials.store import TestimonialStore
from trustgrid.trust.score import build_trust_report
from trustgrid.widgets.config import (
    WidgetConfig, FormConfig, embed_snippet, load_widget_config, load_form_config,
)

router = APIRouter(prefix="/v1", tags=["settings"])


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(None, max_length=60)
    full_name: Optional[str] = Field(None, max_length=120)
    company_name: Optional[str] = Field(None, max_length=120)
    website: Optional[str] = Field(None, max_length=300)
    email: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: Optional[str] = None


class InviteRequest(BaseModel):
    email: str
    role: TeamRole = TeamRole.VIEWER


# =============================================
# PROFILE
# =============================================

@router.get("/profile")
async def get_profile(user: Profile = Depends(require_auth)):
    return user.to_dict()


@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    updated = user.with_changes(**changes).validated()
    return profiles.upsert(updated).to_dict()


# =============================================
# WIDGET & FORM
# =============================================

@router.get("/widget")
async def get_widget_config(
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    return load_widget_config(profiles.get_config(user.id, "widget")).model_dump()


@router.put("/widget")
async def save_widget_config(
    body: WidgetConfig,
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    profiles.save_config(user.id, "widget", body.model_dump())
    return body.model_dump()


@router.get("/widget/embed")
async def get_embed_code(
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    if not user.username:
        raise ValidationError("Choose a public handle before embedding the widget", {"field": "username"})
    config = load_widget_config(profiles.get_config(user.id, "widget"))
    return {"handle": user.username, "embed_code": embed_snippet(user.username, config)}


@router.get("/form")
async def get_form_config(
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    return load_form_config(profiles.get_config(user.id, "form")).model_dump()


@router.put("/form")
async def save_form_config(
    body: FormConfig,
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    profiles.save_config(user.id, "form", body.model_dump())
    return body.model_dump()


# =============================================
# TEAM
# =============================================

@router.get("/team/invites")
async def list_invites(
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
):
    return [i.to_dict() for i in profiles.list_invites(user.id)]


@router.post("/team/invites", status_code=201)
async def create_invite(
    body: InviteRequest,
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
    notifier=Depends(get_notifier),
):
    result = await invite_member(profiles, user.id, body.email, body.role.value, notifier=notifier)
    return {
        "invite": result.invite.to_dict(),
        "email_sent": result.email_sent,
        "email_error": result.email_error,
    }


# =============================================
# ANALYTICS
# =============================================

@router.get("/analytics")
async def analytics(
    user: Profile = Depends(require_auth),
    profiles: ProfileStore = Depends(get_profile_store),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    testimonials = store.list_by_owner(user.id)
    report = build_trust_report(testimonials)
    return {
        "wall_views": profiles.count_views(user.id),
        "total_testimonials": len(testimonials),
        "by_status": dict(Counter(t.status.value for t in testimonials)),
        "by_method": dict(Counter(t.verification_method.value for t in testimonials)),
        "trust_score": report.score,
        "band": report.band.value,
    }
