from .identity import EventStoreIdentityMixin
from .queries import EventStoreQueriesMixin
from .schema import EventStoreConnectionMixin

__all__ = [
    "EventStoreConnectionMixin",
    "EventStoreIdentityMixin",
    "EventStoreQueriesMixin",
]
