"""
Contribution models: fragments units register into shared namespaces.

Every namespace stores a list of ``Contribution`` wrappers. The wrapper
id is the entry's identity key, used to reject duplicate registrations.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

from wellwell.core.platform import Platform


class PathEntry(BaseModel):
    """A directory to put on PATH."""

    path: str
    prepend: bool = False

    @property
    def identity(self) -> str:
        return self.path


class AliasEntry(BaseModel):
    """A shell alias."""

    name: str
    value: str

    @property
    def identity(self) -> str:
        return f"{self.name}={self.value}"


class EnvVarEntry(BaseModel):
    """An exported environment variable."""

    name: str
    value: str

    @property
    def identity(self) -> str:
        return f"{self.name}={self.value}"


class PackageEntry(BaseModel):
    """A package requested from a specific package manager."""

    name: str
    manager: str                  # homebrew, apt, yum, mise
    language: str | None = None   # mise runtimes (node, python, ...)
    version: str | None = None

    @property
    def identity(self) -> str:
        return f"{self.manager}:{self.name}"


class ShellInitEntry(BaseModel):
    """A snippet evaluated at shell startup, e.g. ``eval "$(starship init zsh)"``."""

    name: str
    init_code: str

    @property
    def identity(self) -> str:
        return self.name


EntryT = TypeVar("EntryT", bound=BaseModel)


class Contribution(BaseModel, Generic[EntryT]):
    """A producer-registered fragment of a namespace."""

    id: str
    data: EntryT
    platforms: list[Platform] | None = None

    def applies_to(self, platform: str) -> bool:
        return self.platforms is None or platform in self.platforms
