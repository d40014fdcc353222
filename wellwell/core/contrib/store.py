"""
Contribution store: namespaced fan-in tables backed by the state store.

Many producer units ``add()`` entries to a namespace; exactly one
resolver unit per namespace calls ``resolve()`` and ``write()``. Raw
contributions live under ``contrib.<namespace>`` and the merged result
under ``resolved.<namespace>``.

Resolution policies:
    paths       prepend entries, then append entries, first occurrence wins
    aliases     name → value, last registration wins
    env vars    name → value, last registration wins
    packages    manager → [entries], registration order
    shell-init  registration order, verbatim
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Generic

from pydantic import BaseModel, ValidationError

from wellwell.core.models.contribution import (
    AliasEntry,
    Contribution,
    EntryT,
    EnvVarEntry,
    PackageEntry,
    PathEntry,
    ShellInitEntry,
)
from wellwell.core.persistence.state_file import StateStore

logger = logging.getLogger(__name__)


class ContributionTable(Generic[EntryT]):
    """One strongly typed namespace of contributions.

    Subclasses set ``entry_type``, the two state keys and ``merge()``.
    A table is bound to one platform and one state store, i.e. to one
    context.
    """

    namespace: str = ""
    contrib_key: str = ""
    resolved_key: str = ""
    entry_type: type[BaseModel] = BaseModel
    # camelCase keys written by older releases
    legacy_fields: dict[str, str] = {}

    def __init__(self, state: StateStore, platform: str):
        self._state = state
        self._platform = platform
        self._model = Contribution[self.entry_type]  # type: ignore[name-defined]
        self._migrated = False

    # ── Contributions ───────────────────────────────────────────

    def add(self, entry: EntryT, platforms: Sequence[str] | None = None) -> bool:
        """Register an entry.

        Returns:
            True if the entry was stored; False if ``platforms`` excludes
            the current platform or an entry with the same identity exists.
        """
        if platforms is not None and self._platform not in platforms:
            return False

        contributions = self.contributions()
        identity = entry.identity  # type: ignore[attr-defined]
        if any(c.id == identity for c in contributions):
            return False

        contributions.append(
            self._model(
                id=identity,
                data=entry,
                platforms=list(platforms) if platforms is not None else None,
            )
        )
        self._save(contributions)
        logger.debug("Contributed %s to %s", identity, self.namespace)
        return True

    def contributions(self) -> list[Contribution[EntryT]]:
        """All stored wrappers, unfiltered, in registration order."""
        raw = self._state.get(self.contrib_key, [])
        if not isinstance(raw, list):
            logger.warning(
                "Discarding malformed %s (expected a list, got %s)",
                self.contrib_key, type(raw).__name__,
            )
            return []
        if not self._migrated:
            raw = self._migrate(raw)
            self._migrated = True

        contributions = []
        for item in raw:
            try:
                contributions.append(self._model.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping invalid %s contribution %r: %s", self.namespace, item, e)
        return contributions

    def list(self) -> list[EntryT]:
        """All contributed entries, unfiltered."""
        return [c.data for c in self.contributions()]

    def active(self) -> list[EntryT]:
        """Entries whose platform list includes the current platform."""
        return [c.data for c in self.contributions() if c.applies_to(self._platform)]

    # ── Resolution ──────────────────────────────────────────────

    def resolve(self) -> Any:
        """Deterministically merge the active entries."""
        return self.merge(self.active())

    def merge(self, entries: list[EntryT]) -> Any:
        raise NotImplementedError

    def write(self, resolved: Any) -> None:
        """Overwrite the resolved value wholesale."""
        self._state.set(self.resolved_key, self.dump(resolved))

    def read(self) -> Any:
        """The last written resolved value, or None if never written."""
        raw = self._state.get(self.resolved_key)
        if raw is None:
            return None
        return self.load(raw)

    def is_current(self) -> bool:
        """Whether the written resolution matches a fresh resolve."""
        written = self._state.get(self.resolved_key)
        return written is not None and written == self.dump(self.resolve())

    def dump(self, resolved: Any) -> Any:
        return resolved

    def load(self, raw: Any) -> Any:
        return raw

    # ── Storage ─────────────────────────────────────────────────

    def _save(self, contributions: list[Contribution[EntryT]]) -> None:
        self._state.set(self.contrib_key, [c.model_dump(mode="json") for c in contributions])

    def _migrate(self, raw: list[Any]) -> list[Any]:
        """Upgrade flat legacy entries to ``{id, data, platforms}`` wrappers."""
        if not any(isinstance(item, dict) and "data" not in item for item in raw):
            return raw

        upgraded = []
        for item in raw:
            if not isinstance(item, dict) or "data" in item:
                upgraded.append(item)
                continue
            fields = {self.legacy_fields.get(k, k): v for k, v in item.items() if k != "platforms"}
            try:
                entry = self.entry_type.model_validate(fields)
            except ValidationError as e:
                logger.warning("Dropping unreadable legacy %s entry %r: %s", self.namespace, item, e)
                continue
            upgraded.append({
                "id": entry.identity,  # type: ignore[attr-defined]
                "data": entry.model_dump(mode="json"),
                "platforms": item.get("platforms"),
            })

        self._state.set(self.contrib_key, upgraded)
        logger.info("Migrated %d legacy %s contributions", len(upgraded), self.namespace)
        return upgraded


# ── Namespaces ──────────────────────────────────────────────────


class PathTable(ContributionTable[PathEntry]):
    namespace = "paths"
    contrib_key = "contrib.paths"
    resolved_key = "resolved.paths"
    entry_type = PathEntry

    def merge(self, entries: list[PathEntry]) -> list[str]:
        ordered = [e.path for e in entries if e.prepend] + [e.path for e in entries if not e.prepend]
        return list(dict.fromkeys(ordered))


class AliasTable(ContributionTable[AliasEntry]):
    namespace = "aliases"
    contrib_key = "contrib.aliases"
    resolved_key = "resolved.aliases"
    entry_type = AliasEntry

    def merge(self, entries: list[AliasEntry]) -> dict[str, str]:
        return _last_write_wins(entries)


class EnvVarTable(ContributionTable[EnvVarEntry]):
    namespace = "env_vars"
    contrib_key = "contrib.env_vars"
    resolved_key = "resolved.env_vars"
    entry_type = EnvVarEntry

    def merge(self, entries: list[EnvVarEntry]) -> dict[str, str]:
        return _last_write_wins(entries)


class PackageTable(ContributionTable[PackageEntry]):
    namespace = "packages"
    contrib_key = "contrib.packages"
    resolved_key = "resolved.packages"
    entry_type = PackageEntry

    def merge(self, entries: list[PackageEntry]) -> dict[str, list[PackageEntry]]:
        grouped: dict[str, list[PackageEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.manager, []).append(entry)
        return grouped

    def dump(self, resolved: dict[str, list[PackageEntry]]) -> dict[str, list[dict]]:
        return {m: [e.model_dump(mode="json") for e in pkgs] for m, pkgs in resolved.items()}

    def load(self, raw: dict[str, list[dict]]) -> dict[str, list[PackageEntry]]:
        return {m: [PackageEntry.model_validate(e) for e in pkgs] for m, pkgs in raw.items()}

    def resolve_for(self, manager: str) -> list[PackageEntry]:
        """Resolved packages for a single manager."""
        return self.resolve().get(manager, [])


class ShellInitTable(ContributionTable[ShellInitEntry]):
    namespace = "shell_init"
    contrib_key = "contrib.shell.init"
    resolved_key = "resolved.shell.init"
    entry_type = ShellInitEntry
    legacy_fields = {"initCode": "init_code"}

    def merge(self, entries: list[ShellInitEntry]) -> list[ShellInitEntry]:
        return list(entries)

    def dump(self, resolved: list[ShellInitEntry]) -> list[dict]:
        return [e.model_dump(mode="json") for e in resolved]

    def load(self, raw: list[dict]) -> list[ShellInitEntry]:
        return [ShellInitEntry.model_validate(e) for e in raw]


def _last_write_wins(entries: list[AliasEntry] | list[EnvVarEntry]) -> dict[str, str]:
    merged: dict[str, str] = {}
    for entry in entries:
        merged[entry.name] = entry.value
    return merged


class ContributionStore:
    """All contribution namespaces bound to one context."""

    def __init__(self, state: StateStore, platform: str):
        self.paths = PathTable(state, platform)
        self.aliases = AliasTable(state, platform)
        self.env_vars = EnvVarTable(state, platform)
        self.packages = PackageTable(state, platform)
        self.shell_init = ShellInitTable(state, platform)

    def tables(self) -> list[ContributionTable[Any]]:
        return [self.paths, self.aliases, self.env_vars, self.packages, self.shell_init]

    def table(self, namespace: str) -> ContributionTable[Any]:
        for table in self.tables():
            if table.namespace == namespace:
                return table
        raise KeyError(f"Unknown contribution namespace: {namespace}")
