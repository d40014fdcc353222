"""
Run context: everything a unit may look at during one operation.

A Context is built by the engine for each plan/apply/status call and
passed by reference to every unit in that call. Units must not keep it
after the call returns: the state store's contents change between runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

from wellwell.core.contrib.store import ContributionStore
from wellwell.core.persistence.state_file import StateStore
from wellwell.core.platform import Platform

UNIT_LOGGER = "wellwell.units"


@dataclass
class Context:
    platform: Platform
    home_dir: Path
    cwd: Path
    is_ci: bool
    state: StateStore
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(UNIT_LOGGER))
    # Receives (unit_id, message) for progress reporting.
    message_sink: Callable[[str, str], None] | None = None

    @cached_property
    def contributions(self) -> ContributionStore:
        """Contribution tables bound to this context's platform and state."""
        return ContributionStore(self.state, self.platform)

    def progress(self, unit_id: str, message: str) -> None:
        """Report progress on behalf of a unit."""
        self.logger.info("[%s] %s", unit_id, message)
        if self.message_sink is not None:
            self.message_sink(unit_id, message)
