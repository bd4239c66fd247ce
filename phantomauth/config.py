"""
Configuration management for PhantomAuth.

Handles:
- Signing secret and encryption key (validated, never defaulted)
- Credential lifetimes and attempt limits
- Named rate-limit scopes
- API server settings

Configuration is read from a YAML file and overlaid with PHANTOMAUTH_*
environment variables. Call ``validate()`` before building services.
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_API_PORT = 8420

MIN_SECRET_LENGTH = 32
ENCRYPTION_KEY_BYTES = 32  # AES-256

ENV_PREFIX = "PHANTOMAUTH_"


@dataclass
class RateLimitRule:
    """Quota for one named scope."""
    points: int
    window_seconds: int
    block_seconds: int

    def to_dict(self) -> dict:
        return {
            "points": self.points,
            "window_seconds": self.window_seconds,
            "block_seconds": self.block_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RateLimitRule":
        known_fields = {"points", "window_seconds", "block_seconds"}
        filtered = {k: int(v) for k, v in data.items() if k in known_fields}
        return cls(**filtered)


def default_rate_limits() -> Dict[str, RateLimitRule]:
    return {
        "default": RateLimitRule(points=10, window_seconds=60, block_seconds=300),
        "login": RateLimitRule(points=5, window_seconds=300, block_seconds=900),
        "verify": RateLimitRule(points=3, window_seconds=300, block_seconds=900),
        "email": RateLimitRule(points=3, window_seconds=300, block_seconds=900),
    }


@dataclass
class ServerConfig:
    """Configuration for the API server."""
    host: str = "127.0.0.1"
    port: int = DEFAULT_API_PORT
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    debug: bool = False

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "cors_origins": self.cors_origins,
            "debug": self.debug
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ServerConfig":
        return cls(**data)


@dataclass
class Config:
    """
    Main PhantomAuth configuration.

    Secrets have no defaults: a missing signing secret or encryption key
    is a startup error, not a silent fallback.
    """
    signing_secret: Optional[str] = None
    encryption_key: Optional[str] = None  # 64 hex chars or base64 of 32 bytes

    # Credential lifetimes
    link_expiry_seconds: int = 300
    max_redeem_attempts: int = 3
    device_token_expiry_days: int = 30
    session_expiry_days: int = 7

    # Context matching
    geo_match_radius_km: float = 50.0

    rate_limits: Dict[str, RateLimitRule] = field(default_factory=default_rate_limits)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def device_token_expiry_seconds(self) -> int:
        return self.device_token_expiry_days * 24 * 60 * 60

    def signing_key_bytes(self) -> bytes:
        if not self.signing_secret:
            raise ConfigurationError("signing_secret is not configured")
        return self.signing_secret.encode("utf-8")

    def encryption_key_bytes(self) -> bytes:
        """Decode the encryption key from hex or base64."""
        if not self.encryption_key:
            raise ConfigurationError("encryption_key is not configured")

        raw = self.encryption_key.strip()
        if len(raw) == ENCRYPTION_KEY_BYTES * 2:
            try:
                return bytes.fromhex(raw)
            except ValueError:
                pass

        try:
            padded = raw + "=" * (-len(raw) % 4)
            key = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError(f"encryption_key is neither hex nor base64: {e}")

        if len(key) != ENCRYPTION_KEY_BYTES:
            raise ConfigurationError(
                f"encryption_key must decode to {ENCRYPTION_KEY_BYTES} bytes, got {len(key)}"
            )
        return key

    def rate_limit_for(self, scope: str) -> RateLimitRule:
        """Get the rule for a scope, falling back to ``default``."""
        rule = self.rate_limits.get(scope) or self.rate_limits.get("default")
        if rule is None:
            raise ConfigurationError(f"No rate limit configured for scope '{scope}'")
        return rule

    def validate(self) -> None:
        """
        Fail fast on unusable configuration.

        Raises:
            ConfigurationError: listing every problem found
        """
        problems = []

        if not self.signing_secret:
            problems.append("signing_secret is required")
        elif len(self.signing_secret) < MIN_SECRET_LENGTH:
            problems.append(f"signing_secret must be at least {MIN_SECRET_LENGTH} characters")

        if not self.encryption_key:
            problems.append("encryption_key is required")
        else:
            try:
                self.encryption_key_bytes()
            except ConfigurationError as e:
                problems.append(e.message)

        if self.link_expiry_seconds <= 0:
            problems.append("link_expiry_seconds must be positive")
        if self.max_redeem_attempts <= 0:
            problems.append("max_redeem_attempts must be positive")
        if self.device_token_expiry_days <= 0:
            problems.append("device_token_expiry_days must be positive")
        if self.session_expiry_days <= 0:
            problems.append("session_expiry_days must be positive")
        if self.geo_match_radius_km < 0:
            problems.append("geo_match_radius_km cannot be negative")

        for name, rule in self.rate_limits.items():
            if rule.points <= 0 or rule.window_seconds <= 0 or rule.block_seconds <= 0:
                problems.append(f"rate limit '{name}' values must be positive")
            elif rule.block_seconds < rule.window_seconds:
                problems.append(
                    f"rate limit '{name}' block_seconds must be at least window_seconds"
                )

        if problems:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(problems),
                details={"problems": problems},
            )

    def to_dict(self, include_secrets: bool = False) -> dict:
        data = {
            "link_expiry_seconds": self.link_expiry_seconds,
            "max_redeem_attempts": self.max_redeem_attempts,
            "device_token_expiry_days": self.device_token_expiry_days,
            "session_expiry_days": self.session_expiry_days,
            "geo_match_radius_km": self.geo_match_radius_km,
            "rate_limits": {k: v.to_dict() for k, v in self.rate_limits.items()},
            "server": self.server.to_dict(),
        }
        if include_secrets:
            data["signing_secret"] = self.signing_secret
            data["encryption_key"] = self.encryption_key
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        config = cls(
            signing_secret=data.get("signing_secret"),
            encryption_key=data.get("encryption_key"),
            link_expiry_seconds=int(data.get("link_expiry_seconds", 300)),
            max_redeem_attempts=int(data.get("max_redeem_attempts", 3)),
            device_token_expiry_days=int(data.get("device_token_expiry_days", 30)),
            session_expiry_days=int(data.get("session_expiry_days", 7)),
            geo_match_radius_km=float(data.get("geo_match_radius_km", 50.0)),
        )

        # Configured scopes override the defaults one by one
        for name, rule_data in (data.get("rate_limits") or {}).items():
            config.rate_limits[name] = RateLimitRule.from_dict(rule_data)

        if "server" in data:
            config.server = ServerConfig.from_dict(data["server"])

        return config

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load configuration from a YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        config = cls.from_dict(data or {})
        logger.debug(f"Configuration loaded from {path}")
        return config

    def apply_env(self, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Overlay PHANTOMAUTH_* environment variables onto this config."""
        environ = os.environ if environ is None else environ

        def env(name: str) -> Optional[str]:
            value = environ.get(ENV_PREFIX + name)
            return value if value else None

        self.signing_secret = env("SIGNING_SECRET") or self.signing_secret
        self.encryption_key = env("ENCRYPTION_KEY") or self.encryption_key

        conversions: Dict[str, Any] = {
            "LINK_EXPIRY": ("link_expiry_seconds", int),
            "MAX_REDEEM_ATTEMPTS": ("max_redeem_attempts", int),
            "DEVICE_TOKEN_EXPIRY_DAYS": ("device_token_expiry_days", int),
            "SESSION_EXPIRY_DAYS": ("session_expiry_days", int),
            "GEO_MATCH_RADIUS_KM": ("geo_match_radius_km", float),
        }
        for name, (attr, convert) in conversions.items():
            value = env(name)
            if value is None:
                continue
            try:
                setattr(self, attr, convert(value))
            except ValueError:
                raise ConfigurationError(f"{ENV_PREFIX}{name} is not a valid number: {value!r}")

        return self

    @classmethod
    def from_env(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """Load the optional YAML file, then apply the environment."""
        config = cls.load(path) if path else cls()
        return config.apply_env(environ)


# Global config instance
_config: Optional[Config] = None


def get_config(path: Optional[Path] = None) -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env(path)
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
