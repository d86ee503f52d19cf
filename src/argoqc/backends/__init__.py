"""argoqc backends — work-item sources and artifact sinks (local and remote)."""

from argoqc.backends.base import ArtifactSink, WorkItemSource, non_fatal, select_items
from argoqc.backends.local import LocalSink, LocalSource, find_container, resolve_container
from argoqc.backends.remote import (
    RemoteEntry,
    RemoteObject,
    RemoteRepository,
    RemoteSink,
    RemoteSource,
)

__all__ = [
    "ArtifactSink",
    "LocalSink",
    "LocalSource",
    "OmeroRepository",
    "RemoteEntry",
    "RemoteObject",
    "RemoteRepository",
    "RemoteSink",
    "RemoteSource",
    "WorkItemSource",
    "non_fatal",
    "find_container",
    "resolve_container",
    "select_items",
]


def __getattr__(name: str):  # type: ignore[no-untyped-def]
    """Lazy import of the OMERO adapter to keep omero-py optional."""
    if name == "OmeroRepository":
        from argoqc.backends.omero_adapter import OmeroRepository

        return OmeroRepository
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
