"""
Request-scoped storage for the validated inbound assertion.

The assertion lives in a ContextVar, so each asyncio task (and therefore each
inbound request) sees only the value set on its own call path.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Callable, Iterator, Optional, TypeVar

from .validation.token_validator import InboundAssertion

T = TypeVar("T")

_current_assertion: ContextVar[Optional[InboundAssertion]] = ContextVar(
    "current_assertion", default=None
)


def current_assertion() -> Optional[InboundAssertion]:
    """Assertion bound to the request being handled, if any."""
    return _current_assertion.get()


@contextmanager
def request_context(assertion: InboundAssertion) -> Iterator[InboundAssertion]:
    token = _current_assertion.set(assertion)
    try:
        yield assertion
    finally:
        _current_assertion.reset(token)


async def with_context(assertion: InboundAssertion, body: Callable[[], Awaitable[T]]) -> T:
    """Await ``body()`` with ``assertion`` bound as the current assertion."""
    with request_context(assertion):
        return await body()
