from wellwell.core.engine.executor import (
    Engine,
    EngineHooks,
    ModuleMessage,
    RunSummary,
    StatusChange,
)
from wellwell.core.engine.graph import (
    CycleError,
    DuplicateModuleError,
    GraphError,
    MissingDependencyError,
    UnknownModuleError,
    build_order,
)

__all__ = [
    "CycleError",
    "DuplicateModuleError",
    "Engine",
    "EngineHooks",
    "GraphError",
    "MissingDependencyError",
    "ModuleMessage",
    "RunSummary",
    "StatusChange",
    "UnknownModuleError",
    "build_order",
]
