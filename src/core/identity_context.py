"""Call-scoped identity for data actions running in test environments.

When ENABLE_TEST_MODE is on, the dispatcher scopes the calling workspace
and user onto a ContextVar for the duration of one tool call. The data
actions adapter reads it to act as that identity without a session.

Usage:
    from core.identity_context import IdentityContext, get_call_identity

    async with IdentityContext(workspace_id, user_id):
        await dispatcher.execute(call, context)

    identity = get_call_identity()  # None outside a scope
"""

from contextvars import ContextVar
from typing import NamedTuple, Optional
import logging

logger = logging.getLogger(__name__)


class CallIdentity(NamedTuple):
    workspace_id: str
    user_id: str


# Call-scoped identity (async-safe)
_current_call_identity: ContextVar[Optional[CallIdentity]] = ContextVar(
    'current_call_identity',
    default=None
)


def get_call_identity() -> Optional[CallIdentity]:
    """Get the identity of the tool call currently running in test mode."""
    return _current_call_identity.get()


class IdentityContext:
    """Context manager that sets the call identity and always resets it.

    The previous value is restored on exit, including when the body raises.
    """

    def __init__(self, workspace_id: str, user_id: str):
        self.identity = CallIdentity(workspace_id, user_id)
        self._token = None

    def __enter__(self):
        self._token = _current_call_identity.set(self.identity)
        logger.debug(f"Call identity set: workspace={self.identity.workspace_id}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _current_call_identity.reset(self._token)
            self._token = None
        return False

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return self.__exit__(exc_type, exc_val, exc_tb)


__all__ = [
    "CallIdentity",
    "IdentityContext",
    "get_call_identity",
]
