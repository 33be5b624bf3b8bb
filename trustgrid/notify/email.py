"""
TrustGrid — Transactional Email

Two messages leave the system:
    verify_review  — asks a client to confirm the testimonial they wrote
    invite         — invites a teammate to an owner's dashboard

Delivery goes through the Resend REST API. Any failure raises
DependencyError; callers decide whether that matters (it never rolls back
the record that triggered the email).
"""
from dataclasses import dataclass
from html import escape
from typing import Optional, Dict, Any

import httpx
import structlog

from trustgrid.config import settings
from trustgrid.errors import DependencyError

logger = structlog.get_logger()

RESEND_URL = "https://api.resend.com/emails"


@dataclass
class ReviewSummary:
    """What the client sees in the verification email."""
    reviewer_name: str
    company_name: str
    excerpt: str


def render_verification_request(summary: ReviewSummary, link: str) -> Dict[str, str]:
    company = escape(summary.company_name or "Our Company")
    reviewer = escape(summary.reviewer_name or "Valued Customer")
    excerpt = escape(summary.excerpt)
    href = escape(link, quote=True)

    html = f"""
<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; color: #333;">
  <h2>Hi {reviewer},</h2>
  <p>Thanks for your kind words! We really appreciate your feedback on working with <strong>{company}</strong>.</p>
  <blockquote style="border-left: 4px solid #ddd; padding-left: 12px; color: #555;">{excerpt}</blockquote>
  <p>To help us build trust with future clients, could you please verify this review by clicking the button below? It only takes one click.</p>
  <div style="margin: 30px 0;">
    <a href="{href}" style="display: inline-block; padding: 14px 28px; background: #D4F954; color: #000; text-decoration: none; border-radius: 8px; font-weight: bold; border: 2px solid #000;">Verify My Review</a>
  </div>
  <p style="font-size: 14px; color: #666;">If the button doesn't work, copy this link:<br/> <a href="{href}">{href}</a></p>
  <p>Thanks,<br/>{company}</p>
</div>
"""
    return {
        "subject": f"Please verify your review for {summary.company_name or 'Our Company'}",
        "html": html.strip(),
    }


def render_team_invite(role: str, link: str) -> Dict[str, str]:
    href = escape(link, quote=True)
    html = f"""
<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; color: #333;">
  <h2>Welcome to TrustGrid!</h2>
  <p>You have been invited to join the team as a <strong>{escape(role)}</strong>.</p>
  <p>Click below to accept and get started:</p>
  <a href="{href}" style="display: inline-block; padding: 12px 24px; background: #000; color: #fff; text-decoration: none; border-radius: 8px; font-weight: bold; margin-top: 10px;">Join Team</a>
</div>
"""
    return {
        "subject": "You have been invited to join TrustGrid Team",
        "html": html.strip(),
    }


class Notifier:
    """Interface for outbound notifications."""

    async def send_verification_request(self, to_email: str, summary: ReviewSummary, link: str) -> Optional[str]:
        raise NotImplementedError

    async def send_team_invite(self, to_email: str, role: str, accept_link: str) -> Optional[str]:
        raise NotImplementedError


class ResendNotifier(Notifier):

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.sender = sender or settings.EMAIL_FROM
        self._transport = transport

    async def send_verification_request(self, to_email: str, summary: ReviewSummary, link: str) -> Optional[str]:
        message = render_verification_request(summary, link)
        return await self._send(to_email, "verify_review", message)

    async def send_team_invite(self, to_email: str, role: str, accept_link: str) -> Optional[str]:
        message = render_team_invite(role, accept_link)
        return await self._send(to_email, "invite", message)

    async def _send(self, to_email: str, kind: str, message: Dict[str, str]) -> Optional[str]:
        if not self.api_key:
            raise DependencyError("Email delivery not configured", dependency="notifier")

        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": to_email,
            "subject": message["subject"],
            "html": message["html"],
        }

        async with httpx.AsyncClient(transport=self._transport, timeout=15) as client:
            try:
                response = await client.post(
                    RESEND_URL,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
            except httpx.HTTPError as e:
                logger.error("email_send_failed", kind=kind, error=str(e))
                raise DependencyError("Email provider unreachable", dependency="notifier")

        if response.status_code == 429:
            logger.warning("email_rate_limited", kind=kind)
            raise DependencyError(
                "Too many emails sent too quickly. Please wait a minute and try again.",
                dependency="notifier",
                detail={"status": 429},
            )
        if response.status_code >= 400:
            logger.error("email_rejected", kind=kind, status=response.status_code)
            raise DependencyError(
                "Email provider rejected the request",
                dependency="notifier",
                detail={"status": response.status_code},
            )

        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
        logger.info("email_sent", kind=kind, message_id=message_id)
        return message_id
