"""Registry type identifiers."""

from __future__ import annotations

from enum import StrEnum


class RegistryKind(StrEnum):
    """Closed set of registry backends the cache understands."""

    GIT = "git"
    GITLAB = "gitlab"
    S3 = "s3"
    HTTPS = "https"
    LOCAL = "local"


VALID_REGISTRY_TYPES: frozenset[str] = frozenset(kind.value for kind in RegistryKind)
GIT_REGISTRY_TYPES: frozenset[str] = frozenset({RegistryKind.GIT.value})

SSH_SHORTHAND_HOSTS: tuple[str, ...] = ("github.com", "gitlab.com", "bitbucket.org")
