"""
TrustGrid — Testimonial Store

The store owns the testimonial set. Everything that changes a status goes
through update_status, which is a compare-and-set on the current status:
it either applies fully or returns None and changes nothing.

Two backends share one contract:
    Neo4jTestimonialStore   — production, (:Testimonial) nodes
    InMemoryTestimonialStore — local runs (STORE_BACKEND=memory) and tests

Every row read back is parsed through Testimonial.from_record.
"""
import threading
from typing import Optional, List, Dict, Any, Iterable

import structlog
from neo4j.exceptions import ConstraintError

from trustgrid.errors import ConflictError
from trustgrid.testimonials.model import (
    Testimonial, TestimonialStatus, utc_now_iso,
)

logger = structlog.get_logger()

# Fields an owner may change without a status transition
MUTABLE_FIELDS = {"card_style", "verification_token", "token_expires_at"}


class TestimonialStore:
    """Interface shared by both backends."""

    def insert(self, testimonial: Testimonial) -> str:
        raise NotImplementedError

    def get_by_id(self, testimonial_id: str) -> Optional[Testimonial]:
        raise NotImplementedError

    def get_by_token(self, token: str) -> Optional[Testimonial]:
        raise NotImplementedError

    def update_status(
        self,
        testimonial_id: str,
        expected: Iterable[TestimonialStatus],
        new_status: TestimonialStatus,
        extra: Optional[Dict[str, Any]] = None,
        owner_id: Optional[str] = None,
    ) -> Optional[Testimonial]:
        """
        Atomically move a record to new_status if its current status is one
        of `expected` (and it belongs to owner_id, when given).
        Returns the updated record, or None if nothing matched.
        """
        raise NotImplementedError

    def update_fields(
        self,
        testimonial_id: str,
        owner_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Testimonial]:
        raise NotImplementedError

    def delete(self, testimonial_id: str, owner_id: str) -> bool:
        raise NotImplementedError

    def list_by_owner(
        self,
        owner_id: str,
        status: Optional[TestimonialStatus] = None,
    ) -> List[Testimonial]:
        raise NotImplementedError

    def list_verified_by_owner(self, owner_id: str) -> List[Testimonial]:
        return self.list_by_owner(owner_id, status=TestimonialStatus.VERIFIED)


def _status_values(expected: Iterable[TestimonialStatus]) -> List[str]:
    return [TestimonialStatus(s).value for s in expected]


def _check_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")
    return {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}


# =============================================
# NEO4J
# =============================================

def _get_session():
    from trustgrid.db.neo4j import get_session
    return get_session()


class Neo4jTestimonialStore(TestimonialStore):

    def insert(self, testimonial: Testimonial) -> str:
        props = testimonial.to_dict()
        try:
            with _get_session() as session:
                result = session.run("""
                    CREATE (t:Testimonial)
                    SET t = $props
                    WITH t
                    OPTIONAL MATCH (p:Profile {id: t.owner_id})
                    FOREACH (_ IN CASE WHEN p IS NULL THEN [] ELSE [1] END |
                        CREATE (p)-[:RECEIVED]->(t))
                    RETURN t.id AS id
                """, props=props)
                record = result.single()
        except ConstraintError:
            # Unique constraint on id / verification_token
            raise ConflictError("Testimonial id or token already in use")

        if not record:
            raise RuntimeError(f"Failed to create testimonial {testimonial.id}")

        logger.info("testimonial_inserted", testimonial_id=testimonial.id, owner=testimonial.owner_id)
        return record["id"]

    def get_by_id(self, testimonial_id: str) -> Optional[Testimonial]:
        with _get_session() as session:
            result = session.run("""
                MATCH (t:Testimonial {id: $id})
                RETURN t {.*} AS testimonial
            """, id=testimonial_id)
            record = result.single()
            return Testimonial.from_record(dict(record["testimonial"])) if record else None

    def get_by_token(self, token: str) -> Optional[Testimonial]:
        with _get_session() as session:
            result = session.run("""
                MATCH (t:Testimonial {verification_token: $token})
                RETURN t {.*} AS testimonial
            """, token=token)
            record = result.single()
            return Testimonial.from_record(dict(record["testimonial"])) if record else None

    def update_status(
        self,
        testimonial_id: str,
        expected: Iterable[TestimonialStatus],
        new_status: TestimonialStatus,
        extra: Optional[Dict[str, Any]] = None,
        owner_id: Optional[str] = None,
    ) -> Optional[Testimonial]:
        # Take the node's write lock before re-reading status, so two
        # concurrent transitions cannot both pass the WHERE clause.
        with _get_session() as session:
            result = session.run("""
                MATCH (t:Testimonial {id: $id})
                SET t._lock = true
                REMOVE t._lock
                WITH t
                WHERE t.status IN $expected
                  AND ($owner_id IS NULL OR t.owner_id = $owner_id)
                SET t += $extra,
                    t.status = $status,
                    t.updated_at = $now
                RETURN t {.*} AS testimonial
            """,
                id=testimonial_id,
                expected=_status_values(expected),
                status=TestimonialStatus(new_status).value,
                extra=extra or {},
                owner_id=owner_id,
                now=utc_now_iso(),
            )
            record = result.single()
            return Testimonial.from_record(dict(record["testimonial"])) if record else None

    def update_fields(
        self,
        testimonial_id: str,
        owner_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Testimonial]:
        fields = _check_fields(fields)
        with _get_session() as session:
            result = session.run("""
                MATCH (t:Testimonial {id: $id, owner_id: $owner_id})
                SET t += $fields,
                    t.updated_at = $now
                RETURN t {.*} AS testimonial
            """, id=testimonial_id, owner_id=owner_id, fields=fields, now=utc_now_iso())
            record = result.single()
            return Testimonial.from_record(dict(record["testimonial"])) if record else None

    def delete(self, testimonial_id: str, owner_id: str) -> bool:
        with _get_session() as session:
            result = session.run("""
                MATCH (t:Testimonial {id: $id, owner_id: $owner_id})
                DETACH DELETE t
                RETURN count(*) AS deleted
            """, id=testimonial_id, owner_id=owner_id)
            record = result.single()
            return bool(record and record["deleted"])

    def list_by_owner(
        self,
        owner_id: str,
        status: Optional[TestimonialStatus] = None,
    ) -> List[Testimonial]:
        with _get_session() as session:
            result = session.run("""
                MATCH (t:Testimonial {owner_id: $owner_id})
                WHERE $status IS NULL OR t.status = $status
                RETURN t {.*} AS testimonial
                ORDER BY t.created_at DESC
            """, owner_id=owner_id, status=TestimonialStatus(status).value if status else None)
            return [Testimonial.from_record(dict(r["testimonial"])) for r in result]


# =============================================
# IN-MEMORY
# =============================================

class InMemoryTestimonialStore(TestimonialStore):
    """
    Dict-backed store. Rows are kept as plain dicts and parsed on the way
    out, so callers never share objects with the store.
    """

    def __init__(self):
        self._rows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def insert(self, testimonial: Testimonial) -> str:
        row = testimonial.to_dict()
        with self._lock:
            if testimonial.id in self._rows:
                raise ConflictError("Testimonial id or token already in use")
            token = row.get("verification_token")
            if token and any(r.get("verification_token") == token for r in self._rows.values()):
                raise ConflictError("Testimonial id or token already in use")
            self._rows[testimonial.id] = row
        logger.info("testimonial_inserted", testimonial_id=testimonial.id, owner=testimonial.owner_id)
        return testimonial.id

    def get_by_id(self, testimonial_id: str) -> Optional[Testimonial]:
        with self._lock:
            row = self._rows.get(testimonial_id)
            row = dict(row) if row else None
        return Testimonial.from_record(row) if row else None

    def get_by_token(self, token: str) -> Optional[Testimonial]:
        with self._lock:
            row = next(
                (dict(r) for r in self._rows.values() if token and r.get("verification_token") == token),
                None,
            )
        return Testimonial.from_record(row) if row else None

    def update_status(
        self,
        testimonial_id: str,
        expected: Iterable[TestimonialStatus],
        new_status: TestimonialStatus,
        extra: Optional[Dict[str, Any]] = None,
        owner_id: Optional[str] = None,
    ) -> Optional[Testimonial]:
        expected_values = _status_values(expected)
        with self._lock:
            row = self._rows.get(testimonial_id)
            if row is None or row.get("status") not in expected_values:
                return None
            if owner_id is not None and row.get("owner_id") != owner_id:
                return None
            updated = dict(row)
            for k, v in (extra or {}).items():
                if v is None:
                    updated.pop(k, None)
                else:
                    updated[k] = v
            updated["status"] = TestimonialStatus(new_status).value
            updated["updated_at"] = utc_now_iso()
            self._rows[testimonial_id] = updated
            row = dict(updated)
        return Testimonial.from_record(row)

    def update_fields(
        self,
        testimonial_id: str,
        owner_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Testimonial]:
        fields = _check_fields(fields)
        with self._lock:
            row = self._rows.get(testimonial_id)
            if row is None or row.get("owner_id") != owner_id:
                return None
            updated = dict(row)
            updated.update(fields)
            updated["updated_at"] = utc_now_iso()
            self._rows[testimonial_id] = updated
            row = dict(updated)
        return Testimonial.from_record(row)

    def delete(self, testimonial_id: str, owner_id: str) -> bool:
        with self._lock:
            row = self._rows.get(testimonial_id)
            if row is None or row.get("owner_id") != owner_id:
                return False
            del self._rows[testimonial_id]
            return True

    def list_by_owner(
        self,
        owner_id: str,
        status: Optional[TestimonialStatus] = None,
    ) -> List[Testimonial]:
        status_value = TestimonialStatus(status).value if status else None
        with self._lock:
            rows = [
                dict(r) for r in self._rows.values()
                if r.get("owner_id") == owner_id
                and (status_value is None or r.get("status") == status_value)
            ]
        rows.sort(key=lambda r: r.get("created_at", ""), reverse=True)
        return [Testimonial.from_record(r) for r in rows]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
