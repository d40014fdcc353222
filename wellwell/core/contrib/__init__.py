from wellwell.core.contrib.store import (
    AliasTable,
    ContributionStore,
    ContributionTable,
    EnvVarTable,
    PackageTable,
    PathTable,
    ShellInitTable,
)

__all__ = [
    "AliasTable",
    "ContributionStore",
    "ContributionTable",
    "EnvVarTable",
    "PackageTable",
    "PathTable",
    "ShellInitTable",
]
