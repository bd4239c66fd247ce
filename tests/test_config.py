"""
Tests for configuration loading and validation.
"""

import base64

import pytest

from phantomauth.clock import ManualClock
from phantomauth.config import (
    Config,
    RateLimitRule,
    get_config,
    reset_config,
    set_config,
)
from phantomauth.errors import ConfigurationError
from phantomauth.service import AuthFlow
from phantomauth.store import MemoryStore

SIGNING_SECRET = "test-signing-secret-0123456789abcdef"
ENCRYPTION_KEY = "0123456789abcdef" * 4


class TestValidate:
    """Tests for fail-fast validation."""

    def test_valid(self, config):
        config.validate()

    def test_missing_secrets(self):
        """Every problem is reported, not just the first."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config().validate()

        problems = exc_info.value.details["problems"]
        assert "signing_secret is required" in problems
        assert "encryption_key is required" in problems

    def test_short_secret(self):
        config = Config(signing_secret="too-short", encryption_key=ENCRYPTION_KEY)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_bad_rate_limit(self, config):
        config.rate_limits["login"] = RateLimitRule(points=0, window_seconds=60, block_seconds=60)
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_block_shorter_than_window(self, config):
        """A block that lifts before its window ends is rejected."""
        config.rate_limits["login"] = RateLimitRule(points=5, window_seconds=600, block_seconds=60)
        with pytest.raises(ConfigurationError) as exc_info:
            config.validate()

        assert exc_info.value.details["problems"] == [
            "rate limit 'login' block_seconds must be at least window_seconds"
        ]

    def test_flow_refuses_bad_config(self, clock):
        with pytest.raises(ConfigurationError):
            AuthFlow.from_config(Config(), MemoryStore(clock), clock)


class TestEncryptionKey:
    """Tests for decoding the encryption key."""

    def test_hex(self, config):
        assert config.encryption_key_bytes() == bytes.fromhex(ENCRYPTION_KEY)

    def test_base64(self):
        key = bytes(range(32))
        for encoded in (base64.b64encode(key).decode(), base64.urlsafe_b64encode(key).decode().rstrip("=")):
            config = Config(signing_secret=SIGNING_SECRET, encryption_key=encoded)
            assert config.encryption_key_bytes() == key

    def test_wrong_length(self):
        config = Config(signing_secret=SIGNING_SECRET, encryption_key=base64.b64encode(b"x" * 16).decode())
        with pytest.raises(ConfigurationError):
            config.encryption_key_bytes()


class TestLoading:
    """Tests for YAML and environment sources."""

    def test_defaults(self):
        config = Config()

        assert config.link_expiry_seconds == 300
        assert config.max_redeem_attempts == 3
        assert config.device_token_expiry_days == 30
        assert config.device_token_expiry_seconds == 2592000
        assert config.session_expiry_days == 7
        assert config.geo_match_radius_km == 50.0
        assert config.rate_limit_for("email").points == 3
        assert config.rate_limit_for("unknown") == config.rate_limits["default"]

    def test_yaml(self, tmp_path):
        path = tmp_path / "phantomauth.yaml"
        path.write_text(
            "link_expiry_seconds: 120\n"
            "rate_limits:\n"
            "  login: {points: 2, window_seconds: 30, block_seconds: 60}\n"
            "server:\n"
            "  port: 9000\n"
        )

        config = Config.load(path)

        assert config.link_expiry_seconds == 120
        assert config.rate_limits["login"].points == 2
        # Unlisted scopes keep their defaults
        assert config.rate_limits["email"].points == 3
        assert config.server.port == 9000

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert Config.load(path).link_expiry_seconds == 300

    def test_env_overlay(self, tmp_path):
        path = tmp_path / "phantomauth.yaml"
        path.write_text("link_expiry_seconds: 120\n")

        config = Config.from_env(path, environ={
            "PHANTOMAUTH_SIGNING_SECRET": SIGNING_SECRET,
            "PHANTOMAUTH_ENCRYPTION_KEY": ENCRYPTION_KEY,
            "PHANTOMAUTH_LINK_EXPIRY": "60",
            "PHANTOMAUTH_GEO_MATCH_RADIUS_KM": "12.5",
            "PHANTOMAUTH_SESSION_EXPIRY_DAYS": "1",
        })

        assert config.signing_secret == SIGNING_SECRET
        assert config.link_expiry_seconds == 60
        assert config.geo_match_radius_km == 12.5
        assert config.session_expiry_days == 1
        config.validate()

    def test_env_bad_number(self):
        with pytest.raises(ConfigurationError):
            Config().apply_env({"PHANTOMAUTH_MAX_REDEEM_ATTEMPTS": "three"})

    def test_secrets_not_serialized_by_default(self, config):
        assert "signing_secret" not in config.to_dict()
        assert config.to_dict(include_secrets=True)["signing_secret"] == SIGNING_SECRET

    def test_link_expiry_flows_through(self, config):
        """A configured link lifetime reaches the phantom link protocol."""
        config.link_expiry_seconds = 60
        clock = ManualClock()
        flow = AuthFlow.from_config(config, MemoryStore(clock), clock)
        assert flow.phantom_links.expiry_seconds == 60

    def test_session_expiry_flows_through(self, config):
        config.session_expiry_days = 2
        clock = ManualClock()
        flow = AuthFlow.from_config(config, MemoryStore(clock), clock)
        assert flow.sessions.expiry_seconds == 2 * 24 * 60 * 60

    def test_bad_session_expiry(self, config):
        config.session_expiry_days = 0
        with pytest.raises(ConfigurationError):
            config.validate()


class TestGlobalConfig:
    """Tests for the process-wide config instance."""

    def test_set_and_reset(self, config):
        set_config(config)
        try:
            assert get_config() is config
        finally:
            reset_config()

        fresh = get_config()
        assert fresh is not config
        reset_config()
