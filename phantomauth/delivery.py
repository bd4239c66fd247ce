"""
Outbound delivery of login links.

Sending mail is someone else's job; this module only defines the sender
interface and the retry policy around it (3 attempts, exponential
backoff).
"""

import asyncio
import logging
from typing import Protocol

from .errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0


class LinkSender(Protocol):
    """Anything that can deliver a link to an email address."""

    async def send(self, email: str, link: str) -> None:
        ...


class LoggingLinkSender:
    """Development sender that logs a redacted link instead of mailing it."""

    async def send(self, email: str, link: str) -> None:
        logger.info(f"Login link for {email}: {link[:12]}...{link[-8:]}")


async def deliver_with_retry(
    sender: LinkSender,
    email: str,
    link: str,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> None:
    """
    Deliver ``link`` to ``email``, retrying with exponential backoff.

    Waits ``base_delay * 2**n`` seconds after the n-th failure.

    Raises:
        DeliveryError: Every attempt failed
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            await sender.send(email, link)
            if attempt:
                logger.info(f"Delivered login link to {email} on attempt {attempt + 1}")
            return
        except Exception as e:
            if attempt == attempts - 1:
                logger.error(f"Giving up delivering login link to {email}: {e}")
                raise DeliveryError(
                    "Failed to deliver login link",
                    details={"attempts": attempts},
                ) from e
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"Login link delivery to {email} failed ({e}), retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)
