"""Cloud backend protocols, metadata fetchers and the in-process fake cloud."""

from fleetcore.backends.base import (
    CloudBackend,
    CredentialNotifier,
    IndexFetcher,
    LoggingNotifier,
)
from fleetcore.backends.fake import FakeBackend
from fleetcore.backends.http_index import (
    CompositeFetcher,
    HttpIndexFetcher,
    StorageIndexFetcher,
)

__all__ = [
    "CloudBackend",
    "CredentialNotifier",
    "IndexFetcher",
    "LoggingNotifier",
    "FakeBackend",
    "CompositeFetcher",
    "HttpIndexFetcher",
    "StorageIndexFetcher",
]
