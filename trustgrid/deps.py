"""
TrustGrid — Service Wiring

FastAPI dependencies that hand routers their store, analyzer and notifier.
STORE_BACKEND picks Neo4j or the in-memory stores; tests swap any of these
through app.dependency_overrides.
"""
from functools import lru_cache
from typing import Optional

import structlog

from trustgrid.config import settings
from trustgrid.testimonials.store import (
    TestimonialStore, Neo4jTestimonialStore, InMemoryTestimonialStore,
)
from trustgrid.accounts.profiles import (
    ProfileStore, Neo4jProfileStore, InMemoryProfileStore,
)
from trustgrid.analysis.analyzer import TestimonialAnalyzer, GeminiAnalyzer
from trustgrid.notify.email import Notifier, ResendNotifier

logger = structlog.get_logger()


def uses_memory_backend() -> bool:
    return settings.STORE_BACKEND == "memory"


@lru_cache()
def get_testimonial_store() -> TestimonialStore:
    if uses_memory_backend():
        logger.warning("using_in_memory_testimonial_store")
        return InMemoryTestimonialStore()
    return Neo4jTestimonialStore()


@lru_cache()
def get_profile_store() -> ProfileStore:
    if uses_memory_backend():
        return InMemoryProfileStore()
    return Neo4jProfileStore()


def get_analyzer() -> Optional[TestimonialAnalyzer]:
    """None when Gemini is not configured; callers fall back to the estimate."""
    if not settings.analyzer_enabled:
        return None
    return GeminiAnalyzer()


def get_notifier() -> Optional[Notifier]:
    if not settings.email_enabled:
        return None
    return ResendNotifier()
