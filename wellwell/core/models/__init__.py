"""
Domain models for the reconciliation engine.

All models are re-exported here for convenient access:

    from wellwell.core.models import Unit, PlanResult, ModuleResult, StatusResult
"""

from wellwell.core.models.contribution import (
    AliasEntry,
    Contribution,
    EnvVarEntry,
    PackageEntry,
    PathEntry,
    ShellInitEntry,
)
from wellwell.core.models.results import (
    ModuleResult,
    PlanChange,
    PlanResult,
    Status,
    StatusDetails,
    StatusMetadata,
    StatusResult,
)
from wellwell.core.models.snapshot import ModuleApplyMetadata, ModuleStateSnapshot
from wellwell.core.models.unit import Unit

__all__ = [
    "AliasEntry",
    "Contribution",
    "EnvVarEntry",
    "ModuleApplyMetadata",
    "ModuleResult",
    "ModuleStateSnapshot",
    "PackageEntry",
    "PathEntry",
    "PlanChange",
    "PlanResult",
    "ShellInitEntry",
    "Status",
    "StatusDetails",
    "StatusMetadata",
    "StatusResult",
    "Unit",
]
