"""
Tests for data models: units, results, snapshots, contributions.
"""

import pytest

from wellwell.core.models import (
    AliasEntry,
    Contribution,
    ModuleApplyMetadata,
    ModuleResult,
    ModuleStateSnapshot,
    PackageEntry,
    PlanResult,
    StatusResult,
)
from wellwell.core.models.unit import OPTIONAL_CAPABILITIES, Unit


def _noop_unit(**extra):
    return Unit(
        id="u",
        is_applicable=lambda ctx: True,
        plan=lambda ctx: PlanResult(),
        apply=lambda ctx: ModuleResult.ok(),
        **extra,
    )


class TestUnit:
    def test_optional_capabilities_absent_by_default(self):
        unit = _noop_unit()
        assert not any(unit.supports(name) for name in OPTIONAL_CAPABILITIES)

    def test_supports_present_capability(self):
        unit = _noop_unit(capture_state=lambda ctx: {})
        assert unit.supports("capture_state")

    def test_unknown_capability(self):
        with pytest.raises(ValueError):
            _noop_unit().supports("teleport")

    def test_depends_on_normalized(self):
        assert _noop_unit(depends_on=["a", "b"]).depends_on == ("a", "b")

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            Unit(id="", is_applicable=None, plan=None, apply=None)

    def test_frozen(self):
        unit = _noop_unit()
        with pytest.raises(AttributeError):
            unit.id = "other"


class TestResults:
    def test_plan_of(self):
        plan = PlanResult.of("one", "two")
        assert plan.has_changes
        assert plan.summaries == ["one", "two"]
        assert not PlanResult().has_changes

    def test_skipped_shape(self):
        skipped = ModuleResult.skipped()
        assert skipped.model_dump() == {"success": True, "changed": False, "message": "skipped", "error": None}

    def test_failure(self):
        result = ModuleResult.failure("boom", "exception")
        assert result.success is False
        assert result.error == "boom"

    def test_status_result(self):
        assert StatusResult(status="applied").is_applied
        with pytest.raises(ValueError):
            StatusResult(status="unknown")


class TestSnapshots:
    def test_error_checksum(self):
        assert ModuleStateSnapshot(unit_id="a", checksum="error").is_error
        assert not ModuleStateSnapshot(unit_id="a", checksum="0123456789abcdef").is_error

    def test_metadata_round_trip(self):
        snap = ModuleStateSnapshot(unit_id="a", checksum="abc", state={"k": [1]})
        metadata = ModuleApplyMetadata(
            unit_id="a", before_state=snap, after_state=snap, expected_state=snap, plan_checksum="abc",
        )
        restored = ModuleApplyMetadata.model_validate(metadata.model_dump(mode="json"))
        assert restored == metadata


class TestContributions:
    def test_identities(self):
        assert AliasEntry(name="ls", value="eza").identity == "ls=eza"
        assert PackageEntry(name="eza", manager="homebrew").identity == "homebrew:eza"

    def test_applies_to(self):
        everywhere = Contribution[AliasEntry](id="x", data=AliasEntry(name="x", value="y"))
        mac_only = Contribution[AliasEntry](id="x", data=AliasEntry(name="x", value="y"), platforms=["macos"])
        assert everywhere.applies_to("al2")
        assert mac_only.applies_to("macos")
        assert not mac_only.applies_to("ubuntu")

    def test_unknown_platform_rejected(self):
        with pytest.raises(ValueError):
            Contribution[AliasEntry](id="x", data=AliasEntry(name="x", value="y"), platforms=["windows"])
