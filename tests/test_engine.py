"""
Tests for the engine: registration, plan, apply with skip propagation, statuses.
"""

from dataclasses import replace

import pytest

from wellwell.core.engine.executor import (
    Engine,
    EngineHooks,
    RunSummary,
    generate_run_id,
)
from wellwell.core.engine.graph import (
    CycleError,
    DuplicateModuleError,
    MissingDependencyError,
    UnknownModuleError,
)
from wellwell.core.models.results import ModuleResult, StatusResult
from wellwell.core.persistence.audit import AuditWriter
from wellwell.core.persistence.state_file import MemoryStateStore

# ── Registration ─────────────────────────────────────────────────────


class TestRegistration:
    def test_register_and_list(self, engine, recorder):
        engine.register(recorder.unit("a"))
        engine.register(recorder.unit("b", ("a",)))
        assert [u.id for u in engine.units] == ["a", "b"]
        assert engine.get("b").depends_on == ("a",)

    def test_duplicate_id_rejected(self, engine, recorder):
        engine.register(recorder.unit("a"))
        with pytest.raises(DuplicateModuleError) as exc:
            engine.register(recorder.unit("a"))
        assert exc.value.unit_id == "a"

    def test_build_context_is_fresh(self, engine, home_dir):
        first = engine.build_context()
        second = engine.build_context()
        assert first is not second
        assert first.platform == "macos"
        assert first.home_dir == home_dir
        assert first.state is second.state

    def test_ci_detected_from_env(self, memory_state, home_dir, monkeypatch):
        monkeypatch.setenv("CI", "true")
        engine = Engine(memory_state, platform="ubuntu", home_dir=home_dir)
        assert engine.build_context().is_ci is True


# ── Plan ─────────────────────────────────────────────────────────────


class TestPlan:
    def test_plan_in_dependency_order(self, engine, recorder):
        engine.register(recorder.unit("b", ("a",), changes=("do b",)))
        engine.register(recorder.unit("a"))
        plans = engine.plan()
        assert list(plans) == ["a", "b"]
        assert plans["b"].summaries == ["do b"]
        assert not plans["a"].has_changes

    def test_not_applicable_skipped(self, engine, recorder):
        engine.register(recorder.unit("a", applicable=False))
        assert engine.plan() == {}
        assert recorder.ids("plan") == []

    def test_plan_errors_are_captured(self, engine, recorder):
        def broken(ctx):
            raise RuntimeError("no network")

        engine.register(recorder.unit("a"))
        engine.register(replace(recorder.unit("b"), plan=broken))
        plans = engine.plan()
        assert plans["b"].error == "no network"
        assert plans["b"].changes == []

    def test_plan_restricted_to_closure(self, engine, recorder):
        engine.register(recorder.unit("a"))
        engine.register(recorder.unit("b", ("a",)))
        engine.register(recorder.unit("c"))
        assert list(engine.plan(["b"])) == ["a", "b"]

    def test_plan_does_not_flush(self, engine, recorder, memory_state):
        engine.register(recorder.unit("a", changes=("x",)))
        engine.plan()
        assert memory_state.flush_count == 0


# ── Apply ────────────────────────────────────────────────────────────


class TestApply:
    def test_apply_order_and_results(self, engine, recorder):
        engine.register(recorder.unit("b", ("a",)))
        engine.register(recorder.unit("a"))
        results = engine.apply()
        assert recorder.ids("apply") == ["a", "b"]
        assert all(r.success for r in results.values())

    def test_failed_dependency_skips_dependents(self, engine, recorder):
        engine.register(recorder.unit("a", apply_error=RuntimeError("boom")))
        engine.register(recorder.unit("b", ("a",)))
        engine.register(recorder.unit("c", ("b",)))
        engine.register(recorder.unit("d"))

        results = engine.apply()

        assert results["a"].success is False
        assert results["a"].error == "boom"
        assert results["a"].message == "exception"
        for skipped in ("b", "c"):
            assert results[skipped] == ModuleResult(success=True, changed=False, message="skipped")
        assert results["d"].success is True
        assert recorder.ids("apply") == ["a", "d"]

    def test_returned_failure_also_skips(self, engine, recorder):
        engine.register(recorder.unit("a", apply_result=ModuleResult.failure("exit 1")))
        engine.register(recorder.unit("b", ("a",)))
        summary = engine.run_apply()
        assert summary.skipped_by == {"b": "a"}
        assert recorder.ids("apply") == ["a"]

    def test_missing_dependency_runs_nothing(self, engine, recorder):
        engine.register(recorder.unit("a", ("ghost",)))
        with pytest.raises(MissingDependencyError):
            engine.apply()
        assert recorder.calls == []

    def test_cycle_runs_nothing(self, engine, recorder):
        engine.register(recorder.unit("a", ("b",)))
        engine.register(recorder.unit("b", ("a",)))
        with pytest.raises(CycleError):
            engine.apply()
        assert recorder.ids("apply") == []

    def test_not_applicable_omitted(self, engine, recorder):
        engine.register(recorder.unit("a", applicable=False))
        assert engine.apply() == {}

    def test_applicability_error_fails_unit(self, engine, recorder):
        def explode(ctx):
            raise OSError("cannot stat")

        engine.register(replace(recorder.unit("a"), is_applicable=explode))
        engine.register(recorder.unit("b", ("a",)))
        summary = engine.run_apply()
        assert summary.results["a"].success is False
        assert summary.is_skipped("b")

    def test_hooks_receive_status_changes(self, engine, recorder):
        seen = []
        own = []
        engine.hooks = EngineHooks(on_module_status_change=lambda c: seen.append((c.id, c.status)))
        engine.register(recorder.unit("a", apply_error=RuntimeError("x"), on_status_change=own.append))
        engine.register(recorder.unit("b", ("a",)))
        engine.register(recorder.unit("c"))
        engine.apply()
        assert seen == [
            ("a", "pending"),
            ("a", "failed"),
            ("b", "skipped"),
            ("c", "pending"),
            ("c", "applied"),
        ]
        assert own == ["pending", "failed"]

    def test_progress_messages_routed(self, engine, recorder):
        messages = []
        progress = []
        engine.hooks = EngineHooks(on_module_message=lambda m: messages.append((m.id, m.message)))

        def apply(ctx):
            ctx.progress("a", "working")
            return ModuleResult.ok()

        engine.register(replace(recorder.unit("a", on_progress=progress.append), apply=apply))
        engine.apply()
        assert messages == [("a", "working")]
        assert progress == ["working"]

    def test_apply_records_metadata_and_flushes(self, engine, recorder, memory_state):
        engine.register(recorder.unit("a"))
        engine.apply()
        assert memory_state.has("apply_metadata:a")
        # once in record_apply, once at the end of the run
        assert memory_state.flush_count == 2

    def test_flush_failure_fails_unit(self, home_dir, recorder):
        class FailingStore(MemoryStateStore):
            def flush(self):
                raise OSError("disk full")

        engine = Engine(FailingStore(), platform="macos", home_dir=home_dir, is_ci=False)
        engine.register(recorder.unit("a"))
        engine.register(recorder.unit("b", ("a",)))
        summary = engine.run_apply()
        assert summary.results["a"].success is False
        assert "disk full" in summary.results["a"].error
        assert summary.is_skipped("b")
        assert summary.flush_error == "disk full"

    def test_run_ledger_written(self, home_dir, recorder, tmp_path):
        audit = AuditWriter(tmp_path / "runs.ndjson")
        engine = Engine(MemoryStateStore(), platform="macos", home_dir=home_dir, is_ci=False, audit=audit)
        engine.register(recorder.unit("a", apply_error=RuntimeError("bad")))
        engine.register(recorder.unit("b", ("a",)))
        engine.register(recorder.unit("c"))
        engine.apply()

        entries = audit.read_all()
        assert len(entries) == 1
        entry = entries[0]
        assert entry.status == "partial"
        assert entry.units_failed == 1
        assert entry.units_skipped == 1
        assert entry.units_succeeded == 1
        assert entry.units == ["a", "b", "c"]
        assert entry.errors == ["a: bad"]


# ── Statuses ─────────────────────────────────────────────────────────


class TestStatuses:
    def test_prefers_unit_status(self, engine, recorder):
        engine.register(recorder.unit("a", changes=("x",), status=lambda ctx: StatusResult(status="applied")))
        assert engine.statuses() == {"a": "applied"}
        assert recorder.ids("plan") == []

    def test_falls_back_to_plan(self, engine, recorder):
        engine.register(recorder.unit("clean"))
        engine.register(recorder.unit("dirty", changes=("x",)))
        assert engine.statuses() == {"clean": "applied", "dirty": "stale"}

    def test_both_failing_means_stale(self, engine, recorder):
        def broken(ctx):
            raise RuntimeError("nope")

        engine.register(replace(recorder.unit("a"), plan=broken, status=broken))
        assert engine.statuses() == {"a": "stale"}

    def test_not_applicable_omitted(self, engine, recorder):
        engine.register(recorder.unit("a", applicable=False))
        assert engine.statuses() == {}
        assert engine.detailed_statuses() == {}

    def test_statuses_have_no_side_effects(self, engine, recorder, memory_state):
        engine.register(recorder.unit("a"))
        engine.statuses()
        engine.detailed_statuses()
        assert recorder.ids("apply") == []
        assert memory_state.flush_count == 0

    def test_detailed_statuses_use_comparator(self, engine, recorder):
        engine.register(recorder.unit("a", changes=("install x",)))
        result = engine.detailed_statuses()["a"]
        assert result.status == "stale"
        assert result.details.diff == ["install x"]
        assert result.metadata.state_comparison.differs is True


# ── Details ──────────────────────────────────────────────────────────


class TestDetails:
    def test_details_from_unit(self, engine, recorder):
        engine.register(recorder.unit("a", get_details=lambda ctx: [f"home: {ctx.home_dir.name}"]))
        assert engine.details("a") == ["home: home"]

    def test_no_details_capability(self, engine, recorder):
        engine.register(recorder.unit("a"))
        assert engine.details("a") == []

    def test_unknown_unit(self, engine):
        with pytest.raises(UnknownModuleError):
            engine.details("ghost")


# ── Run summary ──────────────────────────────────────────────────────


class TestRunSummary:
    def test_counts_and_status(self):
        summary = RunSummary(results={
            "a": ModuleResult.ok(changed=True),
            "b": ModuleResult.failure("x"),
        })
        summary.skip("c", "b")
        assert summary.total == 3
        assert summary.succeeded == 1
        assert summary.failed == 1
        assert summary.skipped == 1
        assert summary.changed == 1
        assert summary.status == "partial"

    def test_all_ok(self):
        summary = RunSummary(results={"a": ModuleResult.ok()})
        assert summary.status == "ok"
        assert summary.to_dict()["results"]["a"]["success"] is True

    def test_all_failed(self):
        summary = RunSummary(results={"a": ModuleResult.failure("x")})
        summary.skip("b", "a")
        assert summary.status == "failed"

    def test_unit_reporting_skipped_message_is_not_a_skip(self):
        summary = RunSummary(results={"a": ModuleResult.ok(message="skipped")})
        assert summary.skipped == 0
        assert summary.succeeded == 1
        assert not summary.is_skipped("a")

    def test_skip_records_cause(self):
        summary = RunSummary(results={"a": ModuleResult.failure("x")})
        summary.skip("b", "a")
        assert summary.results["b"] == ModuleResult.skipped()
        assert summary.to_dict()["skipped_by"] == {"b": "a"}

    def test_run_id_format(self):
        run_id = generate_run_id()
        assert run_id.startswith("run-")
        assert run_id != generate_run_id()
