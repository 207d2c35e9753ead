"""
Tag naming and compare-and-set minting.

Naming:
- RELEASE / HOTFIX: ``v<major>.<minor>.<patch>``
- PRERELEASE: ``v<full version>``
- ENVIRONMENT: ``<env>/<version>-<YYYYMMDD-HHMMSS>-<short sha>``
- SUPPORT: ``<service>-v<version>``, or ``v<version>`` without a service

A tag name is write-once: minting the same name at the same commit returns
the existing tag, minting it at another commit raises TagConflictError.
Develop build identifiers are never tagged.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone

import structlog

from release_engine.adapters.base import VcsAdapter
from release_engine.exceptions import IllegalTransitionError, TagConflictError
from release_engine.models import Tag, TagKind
from release_engine.version import SemanticVersion, try_parse_version

logger = structlog.get_logger(__name__)

_FINAL_KINDS = (TagKind.RELEASE, TagKind.HOTFIX)


class TagManager:
    """
    Mints tags against a VCS tag store.

    Args:
        vcs: Adapter holding the authoritative tag store.
        prefix: Prefix of version tags.
        short_sha_length: Length of the sha embedded in environment tags.
        clock: Source of the current UTC time for environment tags.
    """

    def __init__(
        self,
        vcs: VcsAdapter,
        prefix: str = "v",
        short_sha_length: int = 7,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._vcs = vcs
        self._prefix = prefix
        self._short_sha_length = short_sha_length
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._minted: dict[str, Tag] = {}

    @property
    def prefix(self) -> str:
        return self._prefix

    def tag_name(
        self,
        version: SemanticVersion,
        kind: TagKind,
        sha: str | None = None,
        env: str | None = None,
        service: str | None = None,
        at: datetime | None = None,
    ) -> str:
        """
        Name a tag.

        Raises:
            IllegalTransitionError: If the version cannot carry this kind of tag.
        """
        if version.is_dev():
            raise IllegalTransitionError.rejected(
                "tag", "develop builds are never tagged", version=str(version)
            )

        if kind in _FINAL_KINDS:
            if version.is_prerelease():
                raise IllegalTransitionError.rejected(
                    "tag", f"{kind.value} tags need a final version", version=str(version)
                )
            return f"{self._prefix}{version.core}"

        if kind is TagKind.PRERELEASE:
            if not version.is_prerelease():
                raise IllegalTransitionError.rejected(
                    "tag", "prerelease tags need a prerelease version", version=str(version)
                )
            return f"{self._prefix}{version}"

        if kind is TagKind.ENVIRONMENT:
            if not env:
                raise IllegalTransitionError.rejected("tag", "environment tags need an env")
            if not sha:
                raise IllegalTransitionError.rejected("tag", "environment tags need a sha")
            stamp = (at or self._clock()).astimezone(timezone.utc).strftime("%Y%m%d-%H%M%S")
            return f"{env}/{version}-{stamp}-{sha[: self._short_sha_length]}"

        if kind is TagKind.SUPPORT:
            if service:
                return f"{service}-{self._prefix}{version}"
            return f"{self._prefix}{version}"

        raise ValueError(f"Unknown tag kind: {kind}")

    def exists(self, name: str) -> bool:
        return name in self._minted or name in self._vcs.list_tags()

    def plan(
        self,
        version: SemanticVersion,
        kind: TagKind,
        sha: str,
        env: str | None = None,
        service: str | None = None,
        at: datetime | None = None,
        tags: Mapping[str, str] | None = None,
    ) -> Tag:
        """
        Check that a tag could be minted, without recording it.

        Raises:
            IllegalTransitionError: If the version cannot carry this kind of tag.
            TagConflictError: If the name already points at another commit.
        """
        name = self.tag_name(version, kind, sha=sha, env=env, service=service, at=at)
        existing = (tags if tags is not None else self._vcs.list_tags()).get(name)
        if existing is None and name in self._minted:
            existing = self._minted[name].created_from_sha
        if existing is not None and existing != sha:
            raise TagConflictError.for_tag(name, existing, sha)
        return Tag(name=name, version=version, kind=kind, created_from_sha=sha)

    def mint(
        self,
        version: SemanticVersion,
        kind: TagKind,
        sha: str,
        env: str | None = None,
        service: str | None = None,
        at: datetime | None = None,
    ) -> Tag:
        """Plan and record a tag."""
        return self.apply(self.plan(version, kind, sha, env=env, service=service, at=at))

    def apply(self, tag: Tag) -> Tag:
        """
        Record a planned tag with compare-and-set semantics.

        Returns:
            The tag, or the identical previously minted tag.

        Raises:
            TagConflictError: If the name already points at another commit.
        """
        cached = self._minted.get(tag.name)
        if cached is not None:
            if cached.created_from_sha != tag.created_from_sha:
                raise TagConflictError.for_tag(
                    tag.name, cached.created_from_sha, tag.created_from_sha
                )
            logger.info("tag_already_minted", tag=tag.name, sha=tag.created_from_sha)
            return cached

        existing = self._vcs.list_tags().get(tag.name)
        if existing is None:
            try:
                self._vcs.create_tag(tag.name, tag.created_from_sha)
            except TagConflictError:
                # Lost a race with a concurrent writer; re-check what won.
                existing = self._vcs.list_tags().get(tag.name)
                if existing != tag.created_from_sha:
                    raise
            else:
                logger.info(
                    "tag_minted", tag=tag.name, kind=tag.kind.value, sha=tag.created_from_sha
                )
        elif existing != tag.created_from_sha:
            raise TagConflictError.for_tag(tag.name, existing, tag.created_from_sha)
        else:
            logger.info("tag_already_present", tag=tag.name, sha=tag.created_from_sha)

        self._minted[tag.name] = tag
        return tag

    def version_from_tag(self, name: str, service: str | None = None) -> SemanticVersion | None:
        """Version encoded in a release, prerelease or support tag name."""
        prefix = f"{service}-{self._prefix}" if service else self._prefix
        if not name.startswith(prefix):
            return None
        return try_parse_version(name[len(prefix) :])

    def release_versions(
        self, tags: Mapping[str, str] | None = None, service: str | None = None
    ) -> dict[SemanticVersion, str]:
        """Final versions carried by version tags, mapped to their tag name."""
        found: dict[SemanticVersion, str] = {}
        for name in tags if tags is not None else self._vcs.list_tags():
            if "/" in name:
                continue
            version = self.version_from_tag(name, service=service)
            if version is not None and not version.is_prerelease():
                found[version] = name
        return found

    def latest_release(
        self,
        tags: Mapping[str, str] | None = None,
        line: str | None = None,
        service: str | None = None,
    ) -> SemanticVersion | None:
        """
        Highest final version tagged, optionally restricted to a ``X.Y`` line.
        """
        versions = [
            v
            for v in self.release_versions(tags, service=service)
            if line is None or v.line == line
        ]
        return max(versions) if versions else None
