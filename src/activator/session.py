"""
Session key resolution.

A session key is taken from the first matching source, in order:

1. the ``K-Session`` header,
2. a service-configured header, query parameter or path segment,
3. the revision-binding equivalents of those three,
4. the ``K-Revision`` header.

An empty key disables stickiness for the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

from aiohttp import web
from multidict import CIMultiDict, MultiDict

logger = logging.getLogger(__name__)

STICKY_SESSION_HEADER = "K-Session"
STICKY_REVISION_HEADER = "K-Revision"
DEACTIVATE_HEADER = "K-Deactivate"

ANNOTATION_PREFIX = "activator.knative.dev/"
SESSION_HEADER_ANNOTATION = ANNOTATION_PREFIX + "sticky-session-header-name"
SESSION_QUERY_ANNOTATION = ANNOTATION_PREFIX + "sticky-session-query-parameter"
SESSION_PATH_ANNOTATION = ANNOTATION_PREFIX + "sticky-session-path-segment"
REVISION_HEADER_ANNOTATION = ANNOTATION_PREFIX + "sticky-revision-header-name"
REVISION_QUERY_ANNOTATION = ANNOTATION_PREFIX + "sticky-revision-query-parameter"
REVISION_PATH_ANNOTATION = ANNOTATION_PREFIX + "sticky-revision-path-segment"
DEACTIVATE_ANNOTATION = ANNOTATION_PREFIX + "deactivate"


@dataclass
class ProxyRequest:
    """The parts of an inbound request the router reads and forwards.

    ``path`` is percent-decoded and used for session path segments;
    ``raw_path`` keeps the client's encoded path and query for forwarding.
    """

    path: str = "/"
    method: str = "GET"
    raw_path: str = ""
    host: str = ""
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    query: MultiDict = field(default_factory=MultiDict)

    @classmethod
    def from_web_request(cls, request: web.Request) -> "ProxyRequest":
        return cls(
            path=request.path,
            method=request.method,
            raw_path=request.raw_path,
            host=request.host,
            headers=CIMultiDict(request.headers),
            query=MultiDict(request.query),
        )


def _parse_segment_index(annotation: str, raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        index = int(raw)
    except ValueError:
        logger.debug("Ignoring non-integer %s=%r", annotation, raw)
        return None
    if index < 0:
        logger.debug("Ignoring negative %s=%r", annotation, raw)
        return None
    return index


@dataclass(frozen=True)
class SessionPolicy:
    """Where a service asks the router to look for its session key."""

    header_name: str = ""
    query_parameter: str = ""
    path_segment: Optional[int] = None
    revision_header_name: str = ""
    revision_query_parameter: str = ""
    revision_path_segment: Optional[int] = None
    deactivate: str = ""

    @classmethod
    def from_annotations(cls, annotations: Optional[Mapping[str, str]]) -> "SessionPolicy":
        if not annotations:
            return cls()
        return cls(
            header_name=annotations.get(SESSION_HEADER_ANNOTATION, ""),
            query_parameter=annotations.get(SESSION_QUERY_ANNOTATION, ""),
            path_segment=_parse_segment_index(SESSION_PATH_ANNOTATION, annotations.get(SESSION_PATH_ANNOTATION)),
            revision_header_name=annotations.get(REVISION_HEADER_ANNOTATION, ""),
            revision_query_parameter=annotations.get(REVISION_QUERY_ANNOTATION, ""),
            revision_path_segment=_parse_segment_index(REVISION_PATH_ANNOTATION, annotations.get(REVISION_PATH_ANNOTATION)),
            deactivate=annotations.get(DEACTIVATE_ANNOTATION, ""),
        )


def path_segment(path: str, index: int) -> str:
    """Return the ``index``-th slash-delimited segment of ``path``, or "" when out of range."""
    parts = path[1:].split("/") if path.startswith("/") else path.split("/")
    if index < len(parts):
        return parts[index]
    return ""


def _record(request: ProxyRequest, session: str) -> str:
    if session:
        request.headers[STICKY_SESSION_HEADER] = session
    return session


def resolve_session_key(request: ProxyRequest, policy: SessionPolicy) -> str:
    """Derive the stickiness key for ``request``; "" means no stickiness."""
    session = request.headers.get(STICKY_SESSION_HEADER, "")
    if session:
        return session

    if policy.header_name:
        session = _record(request, request.headers.get(policy.header_name, ""))
        if session:
            return session

    if policy.query_parameter:
        session = _record(request, request.query.get(policy.query_parameter, ""))
        if session:
            return session

    if policy.path_segment is not None:
        session = _record(request, path_segment(request.path, policy.path_segment))
        if session:
            return session

    if policy.revision_header_name:
        session = request.headers.get(policy.revision_header_name, "")
        if session:
            return session

    if policy.revision_query_parameter:
        session = request.query.get(policy.revision_query_parameter, "")
        if session:
            return session

    if policy.revision_path_segment is not None:
        session = path_segment(request.path, policy.revision_path_segment)
        if session:
            return session

    return request.headers.get(STICKY_REVISION_HEADER, "")


def apply_deactivate_marker(request: ProxyRequest, policy: SessionPolicy) -> None:
    """Propagate the service's deactivate marker as a request header."""
    if policy.deactivate:
        request.headers.add(DEACTIVATE_HEADER, policy.deactivate)


__all__ = [
    "DEACTIVATE_HEADER",
    "STICKY_REVISION_HEADER",
    "STICKY_SESSION_HEADER",
    "ProxyRequest",
    "SessionPolicy",
    "apply_deactivate_marker",
    "path_segment",
    "resolve_session_key",
]
