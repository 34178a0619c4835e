"""Request interception: one-shot tokens, subscribers, and the timeout race."""
from staticserver_lite.interception.events import (
    DEFAULT_SESSION,
    RequestEvents,
    Subscription,
)
from staticserver_lite.interception.pending import (
    InterceptedRequest,
    PendingResponse,
    ResponseState,
)
from staticserver_lite.interception.pipeline import InterceptionPipeline

__all__ = [
    "DEFAULT_SESSION",
    "RequestEvents",
    "Subscription",
    "InterceptedRequest",
    "PendingResponse",
    "ResponseState",
    "InterceptionPipeline",
]
