"""Canonical forms for registry locators.

Equivalent locators (an SSH remote and its HTTPS URL, a bucket with or
without ``s3://``, a path with ``..`` segments) must collapse to the same
string so they hash to the same registry key. Every function here is pure
and total: malformed input degrades to a best-effort lowercase/trim rather
than raising.
"""

from __future__ import annotations

import os
import posixpath
import re
from urllib.parse import urlsplit, urlunsplit

from armcache.constants.registry import SSH_SHORTHAND_HOSTS, RegistryKind

_REPEATED_SLASHES = re.compile(r"/+")
_GENERIC_SSH_REMOTE = re.compile(r"^git@([^:]+):(.+)$")
_LEADING_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def normalize_locator(registry_type: str, raw: str) -> str:
    """Return the canonical form of ``raw`` for the given registry type."""
    match registry_type:
        case RegistryKind.GIT:
            return normalize_git_url(raw)
        case RegistryKind.GITLAB:
            return normalize_gitlab_url(raw)
        case RegistryKind.S3:
            return normalize_s3_locator(raw)
        case RegistryKind.HTTPS:
            return normalize_https_url(raw)
        case RegistryKind.LOCAL:
            return normalize_local_path(raw)
        case _:
            return normalize_generic_locator(raw)


def normalize_git_url(raw: str) -> str:
    """Rewrite SSH remotes to HTTPS and drop ``.git`` so clones share one key."""
    normalized = raw.strip().lower().rstrip("/")

    for host in SSH_SHORTHAND_HOSTS:
        prefix = f"git@{host}:"
        if normalized.startswith(prefix):
            normalized = f"https://{host}/{normalized[len(prefix):]}"
            break

    ssh_match = _GENERIC_SSH_REMOTE.match(normalized)
    if ssh_match:
        normalized = f"https://{ssh_match.group(1)}/{ssh_match.group(2)}"

    normalized = normalized.removesuffix(".git")

    if not _has_http_scheme(normalized) and "." in normalized and not normalized.startswith("/"):
        normalized = f"https://{normalized}"
    return normalized


def normalize_gitlab_url(raw: str) -> str:
    """Lowercase, force a scheme, and collapse slashes in the path only."""
    normalized = raw.strip().lower().rstrip("/")
    if not _has_http_scheme(normalized):
        normalized = f"https://{normalized}"
    return _collapse_after_scheme(normalized)


def normalize_s3_locator(raw: str) -> str:
    """Strip ``s3://`` and redundant separators; bucket and key case is kept."""
    normalized = raw.strip().removeprefix("s3://")
    normalized = normalized.replace("\\", "/")
    normalized = _REPEATED_SLASHES.sub("/", normalized)
    return normalized.rstrip("/")


def normalize_https_url(raw: str) -> str:
    """Lowercase scheme and host, clean the path, drop the fragment, keep the query."""
    text = raw.strip()
    candidate = text if _LEADING_SCHEME.match(text) else f"https://{text}"
    try:
        parts = urlsplit(candidate)
    except ValueError:
        return _https_fallback(text)

    scheme = (parts.scheme or "https").lower()
    netloc = _lowercase_host(parts.netloc)
    path = _clean_url_path(parts.path)
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def normalize_local_path(raw: str) -> str:
    """Resolve to an absolute, cleaned path with forward slashes."""
    normalized = raw.strip().removeprefix("file://")
    try:
        normalized = os.path.abspath(normalized)
    except (OSError, ValueError):
        normalized = os.path.normpath(normalized)
    return normalized.replace(os.sep, "/")


def normalize_generic_locator(raw: str) -> str:
    """Fallback for unknown registry types."""
    normalized = raw.strip().lower().rstrip("/")
    return _collapse_after_scheme(normalized)


def _has_http_scheme(value: str) -> bool:
    return value.startswith(("http://", "https://"))


def _collapse_after_scheme(value: str) -> str:
    scheme = _LEADING_SCHEME.match(value)
    if scheme is None:
        return _REPEATED_SLASHES.sub("/", value)
    return scheme.group(0) + _REPEATED_SLASHES.sub("/", value[scheme.end() :])


def _lowercase_host(netloc: str) -> str:
    userinfo, sep, host = netloc.rpartition("@")
    return f"{userinfo}{sep}{host.lower()}"


def _https_fallback(text: str) -> str:
    normalized = text.lower().rstrip("/")
    if not _has_http_scheme(normalized):
        normalized = f"https://{normalized}"
    return normalized


def _clean_url_path(path: str) -> str:
    if not path:
        return path
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    if cleaned == ".":
        return ""
    if cleaned != "/":
        cleaned = cleaned.rstrip("/")
    return cleaned
