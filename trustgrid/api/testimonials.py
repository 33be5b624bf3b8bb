"""
TrustGrid - Owner Testimonial API

Authenticated endpoints (bearer JWT):
    GET    /v1/testimonials               - List own testimonials (?status=)
    POST   /v1/testimonials               - Add proof from the dashboard
    POST   /v1/testimonials/:id/verify    - Verify & publish (owner override)
    POST   /v1/testimonials/:id/resend    - Resend the email confirmation link
    PATCH  /v1/testimonials/:id/style     - Set or cycle the card style
    DELETE /v1/testimonials/:id           - Delete
    GET    /v1/trust/score                - Trust Score report
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from trustgrid.auth import require_auth
from trustgrid.accounts.profiles import Profile
from trustgrid.deps import get_testimonial_store, get_analyzer, get_notifier
from trustgrid.testimonials.model import (
    Testimonial, TestimonialSubmission, TestimonialStatus, VerificationMethod, CardStyle, Submitter,
)
from trustgrid.testimonials.store import TestimonialStore
from trustgrid.testimonials import lifecycle
from trustgrid.trust.score import build_trust_report

router = APIRouter(prefix="/v1", tags=["testimonials"])


# =============================================
# REQUEST MODELS
# =============================================

class AddTestimonialRequest(BaseModel):
    client_name: str = Field(..., max_length=120)
    text: str = Field("", max_length=5000)
    verification_method: VerificationMethod = VerificationMethod.MANUAL
    client_company: Optional[str] = None
    client_role: Optional[str] = None
    client_email: Optional[str] = None
    video_ref: Optional[str] = None
    avatar_ref: Optional[str] = None
    source_url: Optional[str] = None
    rating: Optional[int] = None
    card_style: CardStyle = CardStyle.WHITE


class CardStyleRequest(BaseModel):
    """Omit style to advance to the next one."""
    style: Optional[CardStyle] = None


def owner_view(testimonial: Testimonial) -> dict:
    """Everything the owner may see. The confirmation token goes only to the client."""
    data = testimonial.to_dict()
    data.pop("verification_token", None)
    return data


def _creation_response(result: lifecycle.CreationResult) -> dict:
    return {
        "testimonial": owner_view(result.testimonial),
        "analysis": result.analysis.to_dict() if result.analysis else None,
        "notification_sent": result.notification_sent,
        "notification_error": result.notification_error,
    }


# =============================================
# ENDPOINTS
# =============================================

@router.get("/testimonials")
async def list_testimonials(
    status: Optional[TestimonialStatus] = Query(None),
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
) -> List[dict]:
    return [owner_view(t) for t in store.list_by_owner(user.id, status=status)]


@router.post("/testimonials", status_code=201)
async def add_testimonial(
    body: AddTestimonialRequest,
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
    analyzer=Depends(get_analyzer),
    notifier=Depends(get_notifier),
):
    result = await lifecycle.create_testimonial(
        store,
        TestimonialSubmission(**body.model_dump()),
        owner_id=user.id,
        submitter=Submitter.OWNER,
        analyzer=analyzer,
        notifier=notifier,
        company_name=user.display_name,
    )
    return _creation_response(result)


@router.post("/testimonials/{testimonial_id}/verify")
async def verify_testimonial(
    testimonial_id: str,
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    return owner_view(lifecycle.force_verify(store, user.id, testimonial_id))


@router.post("/testimonials/{testimonial_id}/resend")
async def resend_verification(
    testimonial_id: str,
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
    notifier=Depends(get_notifier),
):
    result = await lifecycle.resend_verification_request(
        store, user.id, testimonial_id, notifier, company_name=user.display_name,
    )
    return _creation_response(result)


@router.patch("/testimonials/{testimonial_id}/style")
async def set_card_style(
    testimonial_id: str,
    body: CardStyleRequest,
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    if body.style is None:
        updated = lifecycle.cycle_card_style(store, user.id, testimonial_id)
    else:
        updated = lifecycle.update_card_style(store, user.id, testimonial_id, body.style)
    return owner_view(updated)


@router.delete("/testimonials/{testimonial_id}", status_code=204)
async def delete_testimonial(
    testimonial_id: str,
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
) -> None:
    lifecycle.delete_testimonial(store, user.id, testimonial_id)


@router.get("/trust/score")
async def trust_score(
    user: Profile = Depends(require_auth),
    store: TestimonialStore = Depends(get_testimonial_store),
):
    return build_trust_report(store.list_verified_by_owner(user.id)).to_dict()
