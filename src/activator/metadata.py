"""Revision and service metadata consumed by the router."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, Tuple

from activator.errors import RevisionNotFoundError, ServiceNotFoundError

NAMESPACED_NAME_SEPARATOR = "/"
SERVICE_LABEL_KEY = "serving.knative.dev/service"


@dataclass(frozen=True)
class NamespacedName:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}{NAMESPACED_NAME_SEPARATOR}{self.name}"

    @classmethod
    def parse(cls, value: str) -> Optional["NamespacedName"]:
        """Parse ``namespace/name``; returns None when either part is missing."""
        namespace, sep, name = value.partition(NAMESPACED_NAME_SEPARATOR)
        if not sep or not namespace or not name:
            return None
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True)
class Revision:
    namespace: str
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)

    @property
    def id(self) -> NamespacedName:
        return NamespacedName(self.namespace, self.name)

    @property
    def service_name(self) -> str:
        return self.labels.get(SERVICE_LABEL_KEY, "")


@dataclass(frozen=True)
class Service:
    namespace: str
    name: str
    annotations: Dict[str, str] = field(default_factory=dict)


class MetadataLookup(Protocol):
    """Revision/service lookup against the cluster control plane.

    Implementations raise ``NotFoundError`` subclasses for missing objects and
    ``MetadataLookupError`` for transient failures.
    """

    async def lookup_revision(self, namespace: str, name: str) -> Revision: ...

    async def lookup_service(self, namespace: str, name: str) -> Service: ...


class StaticMetadataLookup:
    """In-memory lookup fed by whatever watches the control plane."""

    def __init__(self) -> None:
        self._revisions: Dict[Tuple[str, str], Revision] = {}
        self._services: Dict[Tuple[str, str], Service] = {}
        self._lock = threading.Lock()

    def add_revision(self, revision: Revision) -> None:
        with self._lock:
            self._revisions[(revision.namespace, revision.name)] = revision

    def remove_revision(self, namespace: str, name: str) -> None:
        with self._lock:
            self._revisions.pop((namespace, name), None)

    def add_service(self, service: Service) -> None:
        with self._lock:
            self._services[(service.namespace, service.name)] = service

    async def lookup_revision(self, namespace: str, name: str) -> Revision:
        with self._lock:
            revision = self._revisions.get((namespace, name))
        if revision is None:
            raise RevisionNotFoundError(namespace, name)
        return revision

    async def lookup_service(self, namespace: str, name: str) -> Service:
        with self._lock:
            service = self._services.get((namespace, name))
        if service is None:
            raise ServiceNotFoundError(namespace, name)
        return service


__all__ = [
    "NamespacedName",
    "MetadataLookup",
    "Revision",
    "Service",
    "StaticMetadataLookup",
]
