import os

os.environ["STORE_BACKEND"] = "memory"
os.environ["SECRET_KEY"] = "test-secret-key-for-jwt-signing-0123456789"
os.environ["GEMINI_API_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["APP_URL"] = "https://app.test"

import uuid
from datetime import datetime, timezone

import pytest

from trustgrid.errors import DependencyError
from trustgrid.analysis.analyzer import TestimonialAnalyzer, TrustAnalysis
from trustgrid.notify.email import Notifier
from trustgrid.testimonials.model import (
    Testimonial, TestimonialStatus, VerificationMethod, Sentiment,
)
from trustgrid.testimonials.store import InMemoryTestimonialStore
from trustgrid.accounts.profiles import InMemoryProfileStore


class FakeAnalyzer(TestimonialAnalyzer):
    def __init__(self, analysis=None, error=None):
        self.analysis = analysis or TrustAnalysis(
            score=88, sentiment=Sentiment.POSITIVE, keywords=["reliable"], reasoning="Specific and detailed",
            is_authentic=True,
        )
        self.error = error
        self.calls = []

    async def analyze(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.analysis


class FakeNotifier(Notifier):
    def __init__(self, fail=False):
        self.fail = fail
        self.verification_requests = []
        self.invites = []

    async def send_verification_request(self, to_email, summary, link):
        if self.fail:
            raise DependencyError("Too many emails sent too quickly. Please wait a minute and try again.",
                                  dependency="notifier")
        self.verification_requests.append({"to": to_email, "summary": summary, "link": link})
        return "msg-1"

    async def send_team_invite(self, to_email, role, accept_link):
        if self.fail:
            raise DependencyError("Email provider unreachable", dependency="notifier")
        self.invites.append({"to": to_email, "role": role, "link": accept_link})
        return "msg-2"


@pytest.fixture
def store():
    return InMemoryTestimonialStore()


@pytest.fixture
def profiles():
    return InMemoryProfileStore()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def failing_analyzer():
    return FakeAnalyzer(error=DependencyError("Testimonial analysis unavailable", dependency="analyzer"))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def failing_notifier():
    return FakeNotifier(fail=True)


@pytest.fixture
def make_testimonial():
    """Build a Testimonial with sensible defaults; override any field."""
    def _make(**overrides):
        fields = dict(
            id=str(uuid.uuid4()),
            owner_id="owner-1",
            client_name="Abebe Kebede",
            text="They delivered our new site two weeks early.",
            verification_method=VerificationMethod.MANUAL,
            status=TestimonialStatus.VERIFIED,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        fields.update(overrides)
        return Testimonial(**fields)
    return _make


@pytest.fixture
def analyzer_factory():
    return FakeAnalyzer
