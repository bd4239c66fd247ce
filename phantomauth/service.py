"""
AuthFlow: the composition root for PhantomAuth.

Wires the context engine, rate limiter, both credential protocols and
session issuance around one shared store, signer, cipher and clock, and
exposes the operations the transport layer calls.

Example:
    >>> config = Config.from_env()
    >>> flow = AuthFlow.from_config(config, MemoryStore())
    >>> link = await flow.issue_phantom_link("ada@example.com", context)
"""

import logging
from typing import Mapping, Optional

from .auth.cipher import AEADCipher
from .auth.device_token import DeviceIdentity, DeviceTokenProtocol
from .auth.phantom_link import PhantomLinkProtocol, PhantomLinkRedemption
from .auth.session import Session, SessionTokens
from .auth.signing import Signer
from .clock import Clock, SystemClock
from .config import Config
from .context import PhantomContext, RequestSignals, derive_context, match_context
from .delivery import LinkSender, LoggingLinkSender, deliver_with_retry
from .errors import RateLimitedError, ValidationError
from .ratelimit import RateLimiter, RateLimitResult
from .store import KeyValueStore

logger = logging.getLogger(__name__)


class AuthFlow:
    """
    Stateless facade over the credential protocols.

    All mutable state lives in ``store``; any number of AuthFlow instances
    may share one store.
    """

    def __init__(
        self,
        config: Config,
        store: KeyValueStore,
        phantom_links: PhantomLinkProtocol,
        device_tokens: DeviceTokenProtocol,
        rate_limiter: RateLimiter,
        sessions: SessionTokens,
        clock: Clock,
        sender: Optional[LinkSender] = None,
        delivery_base_delay: float = 1.0,
    ):
        self.config = config
        self.store = store
        self.phantom_links = phantom_links
        self.device_tokens = device_tokens
        self.rate_limiter = rate_limiter
        self.sessions = sessions
        self.clock = clock
        self.sender = sender or LoggingLinkSender()
        self.delivery_base_delay = delivery_base_delay

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        sender: Optional[LinkSender] = None,
        delivery_base_delay: float = 1.0,
    ) -> "AuthFlow":
        """
        Build every component from a validated configuration.

        Raises:
            ConfigurationError: If the configuration is unusable
        """
        config.validate()
        clock = clock or SystemClock()

        secret = config.signing_key_bytes()
        signer = Signer(secret, clock)
        cipher = AEADCipher(config.encryption_key_bytes())

        phantom_links = PhantomLinkProtocol(
            store,
            signer,
            secret,
            clock=clock,
            expiry_seconds=config.link_expiry_seconds,
            max_attempts=config.max_redeem_attempts,
            geo_radius_km=config.geo_match_radius_km,
        )
        device_tokens = DeviceTokenProtocol(
            store,
            signer,
            cipher,
            clock=clock,
            expiry_days=config.device_token_expiry_days,
            geo_radius_km=config.geo_match_radius_km,
        )
        rate_limiter = RateLimiter(store, clock, config)
        sessions = SessionTokens(signer, clock, expiry_days=config.session_expiry_days)

        return cls(
            config=config,
            store=store,
            phantom_links=phantom_links,
            device_tokens=device_tokens,
            rate_limiter=rate_limiter,
            sessions=sessions,
            clock=clock,
            sender=sender,
            delivery_base_delay=delivery_base_delay,
        )

    # ============ Context ============

    def derive_context(self, signals: RequestSignals) -> PhantomContext:
        return derive_context(signals, self.clock.now())

    def context_from_headers(
        self,
        headers: Mapping[str, str],
        client_ip: Optional[str] = None,
    ) -> PhantomContext:
        return self.derive_context(RequestSignals.from_headers(headers, client_ip))

    def match_context(self, expected: PhantomContext, actual: PhantomContext) -> bool:
        return match_context(expected, actual, self.config.geo_match_radius_km)

    # ============ Rate limiting ============

    async def check_rate_limit(self, scope: str, identifier: str) -> RateLimitResult:
        return await self.rate_limiter.check(scope, identifier)

    async def enforce_rate_limit(self, scope: str, identifier: str) -> RateLimitResult:
        """Like ``check_rate_limit`` but raises RateLimitedError when denied."""
        result = await self.rate_limiter.check(scope, identifier)
        if not result.allowed:
            raise RateLimitedError(
                "Rate limit exceeded, try again later",
                reset_at=result.reset_at,
                details={"scope": scope},
            )
        return result

    # ============ Phantom Links ============

    async def issue_phantom_link(self, email: str, context: PhantomContext) -> str:
        return await self.phantom_links.issue(email, context)

    async def redeem_phantom_link(
        self,
        link: str,
        request_context: PhantomContext,
    ) -> PhantomLinkRedemption:
        return await self.phantom_links.redeem(link, request_context)

    async def send_login_link(self, email: str, context: PhantomContext) -> None:
        """
        Rate-limit, issue and deliver a login link.

        Raises:
            RateLimitedError: Too many links requested for this email
            ValidationError: Malformed email
            DeliveryError: The sender failed every attempt
        """
        if not isinstance(email, str) or not email:
            raise ValidationError("Email is required")
        await self.enforce_rate_limit("email", email.lower())
        link = await self.phantom_links.issue(email, context)
        await deliver_with_retry(
            self.sender,
            email,
            link,
            base_delay=self.delivery_base_delay,
        )
        logger.info(f"Login link sent to {email}")

    # ============ Device tokens ============

    async def issue_device_token(self, user_id: str, context: PhantomContext) -> str:
        return await self.device_tokens.issue(user_id, context)

    async def validate_device_token(
        self,
        encrypted_token: str,
        request_context: PhantomContext,
    ) -> DeviceIdentity:
        return await self.device_tokens.validate(encrypted_token, request_context)

    async def revoke_device_token(self, user_id: str, device_id: str) -> bool:
        return await self.device_tokens.revoke(user_id, device_id)

    async def revoke_all_device_tokens(self, user_id: str) -> int:
        return await self.device_tokens.revoke_all(user_id)

    # ============ Sessions ============

    def issue_session(
        self,
        user_id: str,
        email: Optional[str] = None,
        device_id: Optional[str] = None,
    ) -> str:
        return self.sessions.issue(user_id, email, device_id)

    def validate_session(self, token: str) -> Session:
        return self.sessions.validate(token)
