"""
PhantomAuth - passwordless authentication credentials

Issues and validates single-use magic links ("Phantom Links") and
encrypted device memory tokens, both bound to the context of the request
that obtained them and guarded by a fixed-window rate limiter.

Example:
    >>> from phantomauth import AuthFlow, Config, MemoryStore
    >>> flow = AuthFlow.from_config(Config.from_env(), MemoryStore())
    >>> link = await flow.issue_phantom_link("ada@example.com", context)
"""

__version__ = "1.0.0"

from .config import Config, get_config
from .context import PhantomContext, RequestSignals
from .service import AuthFlow
from .store import KeyValueStore, MemoryStore

__all__ = [
    "__version__",
    "Config",
    "get_config",
    "PhantomContext",
    "RequestSignals",
    "AuthFlow",
    "KeyValueStore",
    "MemoryStore",
]
