"""
Tests for the AuthFlow facade and link delivery.
"""

import pytest

from phantomauth.context import RequestSignals
from phantomauth.delivery import deliver_with_retry
from phantomauth.errors import DeliveryError, RateLimitedError, ValidationError


class FailingSender:
    def __init__(self):
        self.calls = 0

    async def send(self, email, link):
        self.calls += 1
        raise TimeoutError("mail relay timed out")


class TestDelivery:
    """Tests for the retry policy."""

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, sender):
        sender.failures = 2
        await deliver_with_retry(sender, "ada@example.com", "link", base_delay=0)

        assert sender.calls == 3
        assert sender.sent == [("ada@example.com", "link")]

    @pytest.mark.asyncio
    async def test_gives_up(self):
        failing = FailingSender()
        with pytest.raises(DeliveryError) as exc_info:
            await deliver_with_retry(failing, "ada@example.com", "link", base_delay=0)

        assert failing.calls == 3
        assert isinstance(exc_info.value.__cause__, TimeoutError)

    @pytest.mark.asyncio
    async def test_backoff_is_exponential(self, monkeypatch):
        """Waits 1s then 2s between three attempts."""
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("phantomauth.delivery.asyncio.sleep", fake_sleep)

        with pytest.raises(DeliveryError):
            await deliver_with_retry(FailingSender(), "ada@example.com", "link")
        assert delays == [1.0, 2.0]


class TestSendLoginLink:
    """Tests for the end-to-end login link path."""

    @pytest.mark.asyncio
    async def test_sent_link_redeems(self, flow, sender, make_context):
        context = make_context()
        await flow.send_login_link("ada@example.com", context)

        email, link = sender.sent[0]
        assert email == "ada@example.com"

        redemption = await flow.redeem_phantom_link(link, context)
        assert redemption.email == "ada@example.com"

    @pytest.mark.asyncio
    async def test_flaky_sender(self, flow, sender, make_context):
        sender.failures = 2
        await flow.send_login_link("ada@example.com", make_context())
        assert sender.calls == 3
        assert len(sender.sent) == 1

    @pytest.mark.asyncio
    async def test_email_rate_limit(self, flow, sender, make_context):
        """Three links per email per window; the fourth is refused."""
        context = make_context()
        for _ in range(3):
            await flow.send_login_link("ada@example.com", context)

        with pytest.raises(RateLimitedError) as exc_info:
            await flow.send_login_link("ADA@example.com", context)

        assert exc_info.value.reset_at >= flow.clock.now() + 900
        assert exc_info.value.details["scope"] == "email"
        assert len(sender.sent) == 3

        # Other addresses are unaffected
        await flow.send_login_link("grace@example.com", context)

    @pytest.mark.asyncio
    async def test_missing_email(self, flow, make_context):
        with pytest.raises(ValidationError):
            await flow.send_login_link("", make_context())


class TestFlow:
    """Tests for the facade's own helpers."""

    def test_context_from_headers(self, flow):
        context = flow.context_from_headers(
            {"X-Forwarded-For": "203.0.113.7", "User-Agent": "ua", "X-Device-Fingerprint": "fp"},
            client_ip="10.0.0.1",
        )
        expected = flow.derive_context(RequestSignals(ip="203.0.113.7", user_agent="ua", fingerprint="fp"))

        assert flow.match_context(expected, context)
        assert context.timestamp == flow.clock.now()

    @pytest.mark.asyncio
    async def test_device_token_round_trip(self, flow, make_context):
        context = make_context()
        token = await flow.issue_device_token("user-1", context)

        identity = await flow.validate_device_token(token, context)
        assert await flow.revoke_device_token("user-1", identity.device_id)
        assert await flow.revoke_all_device_tokens("user-1") == 0

    @pytest.mark.asyncio
    async def test_check_rate_limit_does_not_raise(self, flow):
        for _ in range(4):
            result = await flow.check_rate_limit("verify", "1.2.3.4")
        assert not result.allowed
