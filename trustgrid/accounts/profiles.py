"""
TrustGrid — Owner Profiles

An owner is a business account. Its profile carries the public handle that
walls and collection links are addressed by, the branding shown on them,
and the owner's saved widget and form configuration.

Schema:
    (:Profile {id, username, full_name, company_name, ...})
    (:Profile)-[:HAS_VIEW]->(:WallView {owner_id, referrer, created_at})
    (:Profile)-[:INVITED]->(:TeamInvite {id, email, role, status})

Widget and form configuration are stored as JSON strings on the profile
node and parsed by trustgrid.widgets.config.
"""
import re
import json
import uuid
import threading
from dataclasses import dataclass, field, replace
from typing import Optional, List, Dict, Any
from enum import Enum

import structlog
from neo4j.exceptions import ConstraintError

from trustgrid.errors import ValidationError, ConflictError, NotFoundError
from trustgrid.testimonials.model import EMAIL_PATTERN, utc_now_iso, to_iso

logger = structlog.get_logger()

HANDLE_PATTERN = re.compile(r"^[a-z0-9-]{3,40}$")
COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def normalize_handle(handle: str) -> str:
    """'Acme-Studio/' -> 'acme-studio'"""
    return (handle or "").strip().rstrip("/").lower()


def validate_handle(handle: str) -> str:
    handle = normalize_handle(handle)
    if not HANDLE_PATTERN.match(handle):
        raise ValidationError(
            "Handle must be 3-40 characters of lowercase letters, digits and dashes",
            {"field": "username"},
        )
    return handle


@dataclass
class Profile:
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    logo_url: Optional[str] = None
    primary_color: str = "#D4F954"
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def display_name(self) -> str:
        return self.company_name or self.full_name or self.username or "Our Company"

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def with_changes(self, **changes) -> "Profile":
        return replace(self, **changes)

    def validated(self) -> "Profile":
        """Clean user-editable fields; raises ValidationError on bad input."""
        username = validate_handle(self.username) if self.username else None
        email = (self.email or "").strip() or None
        if email and not EMAIL_PATTERN.match(email):
            raise ValidationError("Email is malformed", {"field": "email"})
        if self.primary_color and not COLOR_PATTERN.match(self.primary_color):
            raise ValidationError("Primary color must look like #RRGGBB", {"field": "primary_color"})
        return replace(self, username=username, email=email)

    @staticmethod
    def from_record(record: dict) -> "Profile":
        if not record or not record.get("id"):
            raise ValidationError("Profile record missing id", {"field": "id"})
        return Profile(
            id=str(record["id"]),
            username=record.get("username"),
            full_name=record.get("full_name"),
            company_name=record.get("company_name"),
            website=record.get("website"),
            email=record.get("email"),
            logo_url=record.get("logo_url"),
            primary_color=record.get("primary_color") or "#D4F954",
            created_at=to_iso(record.get("created_at")) or utc_now_iso(),
        )


# =============================================
# TEAM INVITES
# =============================================

class TeamRole(str, Enum):
    ADMIN = "Admin"
    EDITOR = "Editor"
    VIEWER = "Viewer"


class InviteStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"


@dataclass
class TeamInvite:
    id: str
    owner_id: str
    email: str
    role: TeamRole
    status: InviteStatus = InviteStatus.PENDING
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "email": self.email,
            "role": self.role.value,
            "status": self.status.value,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_record(record: dict) -> "TeamInvite":
        try:
            return TeamInvite(
                id=str(record["id"]),
                owner_id=str(record["owner_id"]),
                email=str(record["email"]),
                role=TeamRole(record.get("role")),
                status=InviteStatus(record.get("status") or "Pending"),
                created_at=to_iso(record.get("created_at")) or utc_now_iso(),
            )
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Malformed team invite record: {e}")


def new_team_invite(owner_id: str, email: str, role: str) -> TeamInvite:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invite email is malformed", {"field": "email"})
    try:
        team_role = TeamRole(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role!r}", {"field": "role"})
    return TeamInvite(id=str(uuid.uuid4()), owner_id=owner_id, email=email, role=team_role)


# =============================================
# STORE INTERFACE
# =============================================

class ProfileStore:

    def get_by_id(self, owner_id: str) -> Optional[Profile]:
        raise NotImplementedError

    def get_by_handle(self, handle: str) -> Optional[Profile]:
        raise NotImplementedError

    def upsert(self, profile: Profile) -> Profile:
        """Insert or replace. A handle taken by another owner raises ConflictError."""
        raise NotImplementedError

    def get_config(self, owner_id: str, kind: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save_config(self, owner_id: str, kind: str, config: Dict[str, Any]) -> None:
        raise NotImplementedError

    def record_view(self, owner_id: str, referrer: Optional[str] = None) -> None:
        raise NotImplementedError

    def count_views(self, owner_id: str) -> int:
        raise NotImplementedError

    def add_invite(self, invite: TeamInvite) -> TeamInvite:
        raise NotImplementedError

    def list_invites(self, owner_id: str) -> List[TeamInvite]:
        raise NotImplementedError

    def require_by_handle(self, handle: str) -> Profile:
        profile = self.get_by_handle(validate_handle(handle))
        if not profile:
            raise NotFoundError("Profile not found")
        return profile


CONFIG_KINDS = {"widget": "widget_config", "form": "form_config"}


def _config_property(kind: str) -> str:
    if kind not in CONFIG_KINDS:
        raise ValueError(f"Unknown config kind: {kind}")
    return CONFIG_KINDS[kind]


# =============================================
# NEO4J
# =============================================

def _get_session():
    from trustgrid.db.neo4j import get_session
    return get_session()


class Neo4jProfileStore(ProfileStore):

    def get_by_id(self, owner_id: str) -> Optional[Profile]:
        with _get_session() as session:
            result = session.run("""
                MATCH (p:Profile {id: $id})
                RETURN p {.*} AS profile
            """, id=owner_id)
            record = result.single()
            return Profile.from_record(dict(record["profile"])) if record else None

    def get_by_handle(self, handle: str) -> Optional[Profile]:
        with _get_session() as session:
            result = session.run("""
                MATCH (p:Profile {username: $handle})
                RETURN p {.*} AS profile
            """, handle=normalize_handle(handle))
            record = result.single()
            return Profile.from_record(dict(record["profile"])) if record else None

    def upsert(self, profile: Profile) -> Profile:
        props = profile.to_dict()
        props.pop("id", None)
        props.pop("created_at", None)
        try:
            with _get_session() as session:
                result = session.run("""
                    MERGE (p:Profile {id: $id})
                    ON CREATE SET p.created_at = $created_at
                    SET p += $props
                    RETURN p {.*} AS profile
                """, id=profile.id, created_at=profile.created_at, props=props)
                record = result.single()
        except ConstraintError:
            raise ConflictError("That handle is already taken", {"field": "username"})

        logger.info("profile_saved", owner=profile.id, username=profile.username)
        return Profile.from_record(dict(record["profile"]))

    def get_config(self, owner_id: str, kind: str) -> Optional[Dict[str, Any]]:
        prop = _config_property(kind)
        with _get_session() as session:
            result = session.run(f"""
                MATCH (p:Profile {{id: $id}})
                RETURN p.{prop} AS config
            """, id=owner_id)
            record = result.single()
        if not record or not record["config"]:
            return None
        try:
            return json.loads(record["config"])
        except ValueError:
            logger.warning("stored_config_unreadable", owner=owner_id, kind=kind)
            return None

    def save_config(self, owner_id: str, kind: str, config: Dict[str, Any]) -> None:
        prop = _config_property(kind)
        with _get_session() as session:
            result = session.run(f"""
                MATCH (p:Profile {{id: $id}})
                SET p.{prop} = $config
                RETURN p.id AS id
            """, id=owner_id, config=json.dumps(config))
            if not result.single():
                raise NotFoundError("Profile not found")
        logger.info("config_saved", owner=owner_id, kind=kind)

    def record_view(self, owner_id: str, referrer: Optional[str] = None) -> None:
        with _get_session() as session:
            session.run("""
                MATCH (p:Profile {id: $id})
                CREATE (p)-[:HAS_VIEW]->(:WallView {
                    owner_id: $id,
                    referrer: $referrer,
                    created_at: $now
                })
            """, id=owner_id, referrer=referrer, now=utc_now_iso())

    def count_views(self, owner_id: str) -> int:
        with _get_session() as session:
            result = session.run("""
                MATCH (v:WallView {owner_id: $id})
                RETURN count(v) AS views
            """, id=owner_id)
            record = result.single()
            return record["views"] if record else 0

    def add_invite(self, invite: TeamInvite) -> TeamInvite:
        with _get_session() as session:
            session.run("""
                MATCH (p:Profile {id: $owner_id})
                CREATE (p)-[:INVITED]->(i:TeamInvite)
                SET i = $props
            """, owner_id=invite.owner_id, props=invite.to_dict())
        return invite

    def list_invites(self, owner_id: str) -> List[TeamInvite]:
        with _get_session() as session:
            result = session.run("""
                MATCH (i:TeamInvite {owner_id: $owner_id})
                RETURN i {.*} AS invite
                ORDER BY i.created_at DESC
            """, owner_id=owner_id)
            return [TeamInvite.from_record(dict(r["invite"])) for r in result]


# =============================================
# IN-MEMORY
# =============================================

class InMemoryProfileStore(ProfileStore):

    def __init__(self):
        self._profiles: Dict[str, Dict[str, Any]] = {}
        self._configs: Dict[str, Dict[str, str]] = {}
        self._views: List[Dict[str, Any]] = []
        self._invites: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def get_by_id(self, owner_id: str) -> Optional[Profile]:
        with self._lock:
            row = self._profiles.get(owner_id)
            return Profile.from_record(dict(row)) if row else None

    def get_by_handle(self, handle: str) -> Optional[Profile]:
        handle = normalize_handle(handle)
        with self._lock:
            row = next((r for r in self._profiles.values() if handle and r.get("username") == handle), None)
            return Profile.from_record(dict(row)) if row else None

    def upsert(self, profile: Profile) -> Profile:
        with self._lock:
            if profile.username and any(
                r.get("username") == profile.username and r["id"] != profile.id
                for r in self._profiles.values()
            ):
                raise ConflictError("That handle is already taken", {"field": "username"})
            row = dict(self._profiles.get(profile.id, {}))
            row.update(profile.to_dict())
            row.setdefault("created_at", profile.created_at)
            self._profiles[profile.id] = row
        logger.info("profile_saved", owner=profile.id, username=profile.username)
        return Profile.from_record(dict(row))

    def get_config(self, owner_id: str, kind: str) -> Optional[Dict[str, Any]]:
        prop = _config_property(kind)
        with self._lock:
            raw = self._configs.get(owner_id, {}).get(prop)
        return json.loads(raw) if raw else None

    def save_config(self, owner_id: str, kind: str, config: Dict[str, Any]) -> None:
        prop = _config_property(kind)
        with self._lock:
            if owner_id not in self._profiles:
                raise NotFoundError("Profile not found")
            self._configs.setdefault(owner_id, {})[prop] = json.dumps(config)
        logger.info("config_saved", owner=owner_id, kind=kind)

    def record_view(self, owner_id: str, referrer: Optional[str] = None) -> None:
        with self._lock:
            self._views.append({"owner_id": owner_id, "referrer": referrer, "created_at": utc_now_iso()})

    def count_views(self, owner_id: str) -> int:
        with self._lock:
            return sum(1 for v in self._views if v["owner_id"] == owner_id)

    def add_invite(self, invite: TeamInvite) -> TeamInvite:
        with self._lock:
            self._invites.append(invite.to_dict())
        return invite

    def list_invites(self, owner_id: str) -> List[TeamInvite]:
        with self._lock:
            rows = [dict(r) for r in self._invites if r["owner_id"] == owner_id]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        return [TeamInvite.from_record(r) for r in rows]
