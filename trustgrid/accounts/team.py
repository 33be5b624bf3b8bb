"""
TrustGrid — Team Invites

Owners invite teammates by email. The invite is stored first; the email is
best-effort and its failure is reported back, never undone.
"""
from dataclasses import dataclass
from typing import Optional

import structlog

from trustgrid.config import settings
from trustgrid.errors import DependencyError
from trustgrid.accounts.profiles import ProfileStore, TeamInvite, new_team_invite
from trustgrid.notify.email import Notifier

logger = structlog.get_logger()


@dataclass
class InviteResult:
    invite: TeamInvite
    email_sent: bool = False
    email_error: Optional[str] = None


async def invite_member(
    profiles: ProfileStore,
    owner_id: str,
    email: str,
    role: str,
    notifier: Optional[Notifier] = None,
) -> InviteResult:
    invite = profiles.add_invite(new_team_invite(owner_id, email, role))
    logger.info("team_invite_created", owner=owner_id, invite_id=invite.id, role=invite.role.value)

    result = InviteResult(invite=invite)
    try:
        if notifier is None:
            raise DependencyError("Email delivery not configured", dependency="notifier")
        await notifier.send_team_invite(invite.email, invite.role.value, settings.invite_link(invite.id))
        result.email_sent = True
    except DependencyError as e:
        result.email_error = e.message
        logger.warning("team_invite_email_failed", invite_id=invite.id, error=e.message)

    return result
