"""
TrustGrid — Testimonial Lifecycle

Creation and every status transition a testimonial can go through.

States:
    pending               reviewer used the public form (manual/linkedin)
    pending_verification  email channel, waiting for the client's click
    verified              public, scored. Terminal
    rejected              hidden. Terminal, nothing produces it yet

Transitions:
    create (owner, manual|linkedin)     -> verified
    create (reviewer, manual|linkedin)  -> pending
    create (any, email)                 -> pending_verification + token
    confirm(token)   pending_verification -> verified   (idempotent after)
    force_verify     pending|pending_verification -> verified (owner only)
    delete           any state, removes the record

Every transition is a conditional update in the store keyed on the current
status, so a lost race changes nothing and is re-read to decide the outcome.
All operations take the acting owner explicitly; nothing reads ambient
session state.
"""
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional, List
from enum import Enum

import structlog

from trustgrid.config import settings, CARD_STYLE_ORDER
from trustgrid.errors import NotFoundError, ConflictError, DependencyError
from trustgrid.analysis.analyzer import (
    TestimonialAnalyzer, TrustAnalysis, analyze_with_fallback,
)
from trustgrid.notify.email import Notifier, ReviewSummary
from trustgrid.testimonials.model import (
    Testimonial, TestimonialSubmission, TestimonialStatus, TestimonialSource,
    VerificationMethod, CardStyle, Submitter, PENDING_STATUSES,
)
from trustgrid.testimonials.store import TestimonialStore

logger = structlog.get_logger()

INVALID_LINK_MESSAGE = "This verification link is invalid or has expired."


class ConfirmOutcome(str, Enum):
    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"


@dataclass
class CreationResult:
    testimonial: Testimonial
    analysis: Optional[TrustAnalysis] = None
    notification_sent: bool = False
    notification_error: Optional[str] = None


@dataclass
class ConfirmationResult:
    outcome: ConfirmOutcome
    testimonial: Testimonial


# =============================================
# HELPERS
# =============================================

def new_verification_token() -> str:
    """256 bits from the OS CSPRNG, URL-safe."""
    return secrets.token_urlsafe(32)


def initial_status(method: VerificationMethod, submitter: Submitter) -> TestimonialStatus:
    if method == VerificationMethod.EMAIL:
        return TestimonialStatus.PENDING_VERIFICATION
    if submitter == Submitter.OWNER:
        return TestimonialStatus.VERIFIED
    return TestimonialStatus.PENDING


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def _token_expiry(now: datetime) -> str:
    return (now + timedelta(hours=settings.VERIFICATION_TOKEN_TTL_HOURS)).isoformat()


def _summary(testimonial: Testimonial, company_name: str) -> ReviewSummary:
    excerpt = testimonial.text if len(testimonial.text) <= 280 else testimonial.text[:277] + "..."
    return ReviewSummary(
        reviewer_name=testimonial.client_name,
        company_name=company_name,
        excerpt=excerpt or "Video testimonial",
    )


def get_owned_testimonial(store: TestimonialStore, owner_id: str, testimonial_id: str) -> Testimonial:
    """Foreign records look exactly like missing ones."""
    testimonial = store.get_by_id(testimonial_id)
    if not testimonial or testimonial.owner_id != owner_id:
        raise NotFoundError("Testimonial not found")
    return testimonial


def list_public_testimonials(store: TestimonialStore, owner_id: str) -> List[Testimonial]:
    """Verified records only, newest first."""
    records = [t for t in store.list_verified_by_owner(owner_id) if t.is_public]
    records.sort(key=lambda t: t.created_at, reverse=True)
    return records


# =============================================
# CREATE
# =============================================

async def create_testimonial(
    store: TestimonialStore,
    submission: TestimonialSubmission,
    owner_id: str,
    submitter: Submitter = Submitter.OWNER,
    analyzer: Optional[TestimonialAnalyzer] = None,
    notifier: Optional[Notifier] = None,
    company_name: str = "",
    now: Optional[datetime] = None,
) -> CreationResult:
    """
    Validate, analyze, persist, and (for the email channel) ask the client
    to confirm. Validation runs before the analyzer or store are touched.
    Analyzer and notifier failures degrade the result; they never stop the
    insert or undo it.
    """
    submission = submission.validate()
    now = _now(now)

    analysis = None
    if submission.text:
        analysis = await analyze_with_fallback(analyzer, submission.text)

    status = initial_status(submission.verification_method, submitter)
    token = None
    token_expires_at = None
    if submission.verification_method == VerificationMethod.EMAIL:
        token = new_verification_token()
        token_expires_at = _token_expiry(now)

    testimonial = Testimonial(
        id=str(uuid.uuid4()),
        owner_id=owner_id,
        client_name=submission.client_name,
        text=submission.text,
        verification_method=submission.verification_method,
        status=status,
        created_at=now.isoformat(),
        client_company=submission.client_company,
        client_role=submission.client_role,
        client_email=submission.client_email,
        source_url=submission.source_url,
        source=TestimonialSource.DASHBOARD if submitter == Submitter.OWNER else TestimonialSource.WEB_COLLECTION,
        video_ref=submission.video_ref,
        avatar_ref=submission.avatar_ref,
        score=analysis.score if analysis else None,
        sentiment=analysis.sentiment if analysis else None,
        keywords=analysis.keywords if analysis else [],
        analysis_reasoning=analysis.reasoning if analysis else None,
        score_estimated=analysis.estimated if analysis else False,
        rating=submission.rating,
        card_style=submission.card_style,
        verification_token=token,
        token_expires_at=token_expires_at,
        verified_at=now.isoformat() if status == TestimonialStatus.VERIFIED else None,
    )

    store.insert(testimonial)
    logger.info("testimonial_created",
                testimonial_id=testimonial.id,
                owner=owner_id,
                method=testimonial.verification_method.value,
                status=status.value,
                submitter=submitter.value,
                score_estimated=testimonial.score_estimated)

    result = CreationResult(testimonial=testimonial, analysis=analysis)

    if token:
        try:
            await _send_verification(notifier, testimonial, company_name)
            result.notification_sent = True
        except DependencyError as e:
            result.notification_error = e.message
            logger.warning("verification_email_failed",
                           testimonial_id=testimonial.id,
                           error=e.message)

    return result


async def _send_verification(
    notifier: Optional[Notifier],
    testimonial: Testimonial,
    company_name: str,
) -> None:
    if notifier is None:
        raise DependencyError("Email delivery not configured", dependency="notifier")
    await notifier.send_verification_request(
        testimonial.client_email,
        _summary(testimonial, company_name),
        settings.verification_link(testimonial.verification_token),
    )
    logger.info("verification_email_sent", testimonial_id=testimonial.id)


# =============================================
# EMAIL CONFIRMATION (public link)
# =============================================

def preview_verification(
    store: TestimonialStore,
    token: str,
    now: Optional[datetime] = None,
) -> Testimonial:
    """Look up what a confirmation link points at, without changing it."""
    testimonial = store.get_by_token(token) if token else None
    if not testimonial:
        raise NotFoundError(INVALID_LINK_MESSAGE)
    if testimonial.status == TestimonialStatus.PENDING_VERIFICATION and testimonial.token_expired(_now(now)):
        raise NotFoundError(INVALID_LINK_MESSAGE)
    return testimonial


def confirm_verification(
    store: TestimonialStore,
    token: str,
    now: Optional[datetime] = None,
) -> ConfirmationResult:
    """
    The client clicked the link. Exactly one caller per token performs the
    transition; every later (or concurrent, losing) call gets
    ALREADY_VERIFIED with the stored verified_at untouched.
    """
    now = _now(now)
    testimonial = preview_verification(store, token, now)

    if testimonial.status == TestimonialStatus.VERIFIED:
        return ConfirmationResult(ConfirmOutcome.ALREADY_VERIFIED, testimonial)
    if testimonial.status != TestimonialStatus.PENDING_VERIFICATION:
        raise ConflictError(f"Testimonial cannot be confirmed from status {testimonial.status.value}")

    updated = store.update_status(
        testimonial.id,
        expected=[TestimonialStatus.PENDING_VERIFICATION],
        new_status=TestimonialStatus.VERIFIED,
        extra={"verified_at": now.isoformat(), "token_expires_at": None},
    )
    if updated:
        logger.info("verification_confirmed", testimonial_id=updated.id, owner=updated.owner_id)
        return ConfirmationResult(ConfirmOutcome.VERIFIED, updated)

    # Lost a race: someone else moved it first
    current = store.get_by_token(token)
    if not current:
        raise NotFoundError(INVALID_LINK_MESSAGE)
    if current.status == TestimonialStatus.VERIFIED:
        return ConfirmationResult(ConfirmOutcome.ALREADY_VERIFIED, current)
    raise ConflictError(f"Testimonial cannot be confirmed from status {current.status.value}")


# =============================================
# OWNER ACTIONS
# =============================================

def force_verify(store: TestimonialStore, owner_id: str, testimonial_id: str) -> Testimonial:
    """Owner's "Verify & Publish": skips the external confirmation."""
    testimonial = get_owned_testimonial(store, owner_id, testimonial_id)

    if testimonial.status == TestimonialStatus.VERIFIED:
        return testimonial
    if testimonial.status == TestimonialStatus.REJECTED:
        raise ConflictError("Rejected testimonials cannot be verified")

    updated = store.update_status(
        testimonial_id,
        expected=PENDING_STATUSES,
        new_status=TestimonialStatus.VERIFIED,
        extra={"verified_at": datetime.now(timezone.utc).isoformat(), "token_expires_at": None},
        owner_id=owner_id,
    )
    if updated:
        logger.info("testimonial_force_verified", testimonial_id=testimonial_id, owner=owner_id)
        return updated

    current = store.get_by_id(testimonial_id)
    if not current or current.owner_id != owner_id:
        # Deleted while we were verifying; stays deleted
        raise NotFoundError("Testimonial not found")
    if current.status == TestimonialStatus.VERIFIED:
        return current
    raise ConflictError(f"Testimonial cannot be verified from status {current.status.value}")


def delete_testimonial(store: TestimonialStore, owner_id: str, testimonial_id: str) -> None:
    if not store.delete(testimonial_id, owner_id):
        raise NotFoundError("Testimonial not found")
    logger.info("testimonial_deleted", testimonial_id=testimonial_id, owner=owner_id)


async def resend_verification_request(
    store: TestimonialStore,
    owner_id: str,
    testimonial_id: str,
    notifier: Optional[Notifier],
    company_name: str = "",
    now: Optional[datetime] = None,
) -> CreationResult:
    """
    Issue a fresh link for an email testimonial that is still waiting.
    The previous link stops working. Raises DependencyError if the email
    cannot be sent; the new token is kept either way.
    """
    now = _now(now)
    testimonial = get_owned_testimonial(store, owner_id, testimonial_id)

    if testimonial.verification_method != VerificationMethod.EMAIL:
        raise ConflictError("Only email testimonials have verification links")
    if testimonial.status != TestimonialStatus.PENDING_VERIFICATION:
        raise ConflictError(f"Testimonial is already {testimonial.status.value}")

    updated = store.update_status(
        testimonial_id,
        expected=[TestimonialStatus.PENDING_VERIFICATION],
        new_status=TestimonialStatus.PENDING_VERIFICATION,
        extra={
            "verification_token": new_verification_token(),
            "token_expires_at": _token_expiry(now),
        },
        owner_id=owner_id,
    )
    if not updated:
        current = store.get_by_id(testimonial_id)
        if not current or current.owner_id != owner_id:
            raise NotFoundError("Testimonial not found")
        raise ConflictError(f"Testimonial is already {current.status.value}")

    await _send_verification(notifier, updated, company_name)
    logger.info("verification_resent", testimonial_id=testimonial_id, owner=owner_id)
    return CreationResult(testimonial=updated, notification_sent=True)


def update_card_style(
    store: TestimonialStore,
    owner_id: str,
    testimonial_id: str,
    style: CardStyle,
) -> Testimonial:
    """Cosmetic; allowed in any state."""
    updated = store.update_fields(testimonial_id, owner_id, {"card_style": CardStyle(style).value})
    if not updated:
        raise NotFoundError("Testimonial not found")
    return updated


def cycle_card_style(store: TestimonialStore, owner_id: str, testimonial_id: str) -> Testimonial:
    """white -> lime -> dark -> white, as the dashboard toggle does."""
    testimonial = get_owned_testimonial(store, owner_id, testimonial_id)
    index = CARD_STYLE_ORDER.index(testimonial.card_style.value)
    next_style = CARD_STYLE_ORDER[(index + 1) % len(CARD_STYLE_ORDER)]
    return update_card_style(store, owner_id, testimonial_id, CardStyle(next_style))
