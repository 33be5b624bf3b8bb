import asyncio
import json

import httpx
import pytest

from trustgrid.errors import DependencyError
from trustgrid.notify.email import (
    ResendNotifier, ReviewSummary, render_verification_request, RESEND_URL,
)


def _notifier(handler, api_key="re_test"):
    return ResendNotifier(api_key=api_key, sender="TrustGrid <hi@trustgrid.test>",
                          transport=httpx.MockTransport(handler))


SUMMARY = ReviewSummary(reviewer_name="Sara", company_name="Acme", excerpt="Great work")


def test_verification_request_is_posted_to_resend():
    captured = []

    def handler(request):
        captured.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    message_id = asyncio.run(
        _notifier(handler).send_verification_request("sara@example.com", SUMMARY, "https://app.test/verify/abc")
    )

    assert message_id == "email_123"
    request = captured[0]
    assert str(request.url) == RESEND_URL
    assert request.headers["Authorization"] == "Bearer re_test"
    body = json.loads(request.content)
    assert body["to"] == "sara@example.com"
    assert body["subject"] == "Please verify your review for Acme"
    assert "https://app.test/verify/abc" in body["html"]


def test_team_invite_mentions_role():
    captured = []

    def handler(request):
        captured.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email_456"})

    asyncio.run(_notifier(handler).send_team_invite("dev@example.com", "Editor", "https://app.test/join/i-1"))
    assert "Editor" in captured[0]["html"]
    assert "https://app.test/join/i-1" in captured[0]["html"]


def test_rate_limited_provider_reports_friendly_message():
    notifier = _notifier(lambda request: httpx.Response(429, json={"message": "slow down"}))
    with pytest.raises(DependencyError) as exc:
        asyncio.run(notifier.send_verification_request("a@b.co", SUMMARY, "https://x"))
    assert "Too many emails" in exc.value.message
    assert exc.value.detail == {"status": 429}


def test_provider_rejection_and_missing_key():
    notifier = _notifier(lambda request: httpx.Response(422, json={"message": "bad from"}))
    with pytest.raises(DependencyError):
        asyncio.run(notifier.send_verification_request("a@b.co", SUMMARY, "https://x"))

    unconfigured = _notifier(lambda request: httpx.Response(200), api_key="")
    with pytest.raises(DependencyError):
        asyncio.run(unconfigured.send_verification_request("a@b.co", SUMMARY, "https://x"))


def test_rendered_email_escapes_reviewer_content():
    summary = ReviewSummary(reviewer_name="<b>Eve</b>", company_name="Acme & Co", excerpt="<script>x</script>")
    message = render_verification_request(summary, "https://app.test/verify/abc")
    assert "<script>" not in message["html"]
    assert "&lt;b&gt;Eve&lt;/b&gt;" in message["html"]
    assert "Acme &amp; Co" in message["html"]
