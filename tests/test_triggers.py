"""Test cases for the trigger predicate model."""

import pytest

from cigraph.core.enums import EventKind
from cigraph.core.errors import InvalidTrigger
from cigraph.core.models import Event, Trigger
from cigraph.pipeline.triggers import (
    TriggerEvaluator, check_trigger, condition, condition_matches, cron_trigger, default_trigger,
    labels_match, merge_triggers, promote_trigger, status_trigger, tag_trigger, trigger_problems
)


class TestConditionMatching:
    """Per-axis include/exclude semantics."""

    def test_axis_with_neither_set_is_vacuously_true(self):
        assert condition_matches(None, "main")
        assert condition_matches(condition(), None)

    def test_include_requires_membership(self):
        cond = condition(include=["main"])

        assert condition_matches(cond, "main")
        assert not condition_matches(cond, "feature")
        assert not condition_matches(cond, None)

    def test_exclude_wins_over_include(self):
        cond = condition(include=["release-*"], exclude=["release-1.0"])

        assert condition_matches(cond, "release-1.1")
        assert not condition_matches(cond, "release-1.0")

    def test_glob_patterns(self):
        cond = condition(exclude=["renovate/*"])

        assert not condition_matches(cond, "renovate/bump-x")
        assert condition_matches(cond, "renovate")

    def test_labels_need_overlap_with_include(self):
        cond = condition(include=["integration", "e2e"])

        assert labels_match(cond, ("docs", "e2e"))
        assert not labels_match(cond, ("docs",))
        assert not labels_match(cond, ())

    def test_any_excluded_label_fails(self):
        cond = condition(include=["integration"], exclude=["skip"])

        assert not labels_match(cond, ("integration", "skip"))


class TestTriggerEvaluator:
    """Whole-trigger evaluation against events."""

    @pytest.fixture
    def evaluator(self):
        return TriggerEvaluator()

    @pytest.mark.parametrize("kind", [e.value for e in EventKind])
    def test_dependency_bot_branch_rejected_for_every_event_kind(self, evaluator, kind):
        trigger = Trigger(
            event=condition(exclude=["tag", "promote", "cron"]),
            branch=condition(exclude=["renovate/*", "dependabot/*"]),
        )

        assert not evaluator.matches(trigger, Event(kind=kind, branch="renovate/bump-x"))

    def test_default_trigger(self, evaluator):
        trigger = default_trigger()

        assert evaluator.matches(trigger, Event(kind="push", branch="main"))
        assert evaluator.matches(trigger, Event(kind="pull_request", branch="feature/x"))
        assert not evaluator.matches(trigger, Event(kind="tag", ref="refs/tags/v1.4.0"))
        assert not evaluator.matches(trigger, Event(kind="push", branch="dependabot/npm/x"))

    def test_missing_trigger_matches_everything(self, evaluator):
        assert evaluator.matches(None, Event(kind="cron", cron="nightly"))

    def test_cron_trigger_needs_schedule_intersection(self, evaluator):
        trigger = cron_trigger(["thrice-daily", "nightly"])

        assert evaluator.matches(trigger, Event(kind="cron", cron="nightly"))
        assert not evaluator.matches(trigger, Event(kind="cron", cron="weekly"))
        assert not evaluator.matches(trigger, Event(kind="cron"))
        assert not evaluator.matches(trigger, Event(kind="push", branch="main"))

    def test_promote_trigger_needs_target_intersection(self, evaluator):
        trigger = promote_trigger(["integration", "integration-qemu"])

        assert evaluator.matches(trigger, Event(kind="promote", targets=("integration-qemu",)))
        assert not evaluator.matches(trigger, Event(kind="promote", targets=("e2e",)))
        assert not evaluator.matches(trigger, Event(kind="promote"))

    def test_tag_trigger_excludes_refs(self, evaluator):
        trigger = tag_trigger(exclude_refs=["refs/tags/pkg/*"])

        assert evaluator.matches(trigger, Event(kind="tag", ref="refs/tags/v1.4.0"))
        assert not evaluator.matches(trigger, Event(kind="tag", ref="refs/tags/pkg/v1.4.0"))

    def test_status_trigger(self, evaluator):
        trigger = status_trigger(["failure"])

        assert evaluator.matches(trigger, Event(kind="push", branch="main", status="failure"))
        assert not evaluator.matches(trigger, Event(kind="push", branch="main", status="success"))

    def test_step_filter_and_pipeline_trigger_must_both_pass(self, evaluator, step_builder, pipeline_builder):
        step = step_builder.build("e2e-qemu-short", when=Trigger(event=condition(include=["pull_request"])))
        pipeline = pipeline_builder.build_pipeline("default", [step], trigger=default_trigger())

        assert evaluator.step_runs(pipeline, step, Event(kind="pull_request", branch="feature"))
        assert not evaluator.step_runs(pipeline, step, Event(kind="push", branch="main"))
        assert not evaluator.step_runs(pipeline, step, Event(kind="pull_request", branch="renovate/x"))

    def test_firing_lists_pipelines_and_filtered_steps(self, evaluator, step_builder, pipeline_builder):
        build = step_builder.build("build")
        pr_only = step_builder.build("pr-only", when=Trigger(event=condition(include=["pull_request"])))
        default = pipeline_builder.build_pipeline("default", [build, pr_only], trigger=default_trigger())
        nightly = pipeline_builder.build_pipeline("nightly", [build], trigger=cron_trigger(["nightly"]))

        firing = evaluator.firing([default, nightly], Event(kind="push", branch="main"))

        assert [(p.name, [s.name for s in steps]) for p, steps in firing] == [("default", ["build"])]


class TestTriggerChecks:
    """Combinations the runner cannot honor."""

    def test_cron_and_target_cannot_be_combined(self):
        trigger = Trigger(cron=condition(include=["nightly"]), target=condition(include=["e2e"]))

        with pytest.raises(InvalidTrigger):
            check_trigger(trigger, "integration")

    def test_cron_axis_with_event_excluding_cron(self):
        trigger = merge_triggers(default_trigger(), Trigger(cron=condition(include=["nightly"])))

        problems = trigger_problems(trigger, "default")
        assert len(problems) == 1
        assert "cron" in str(problems[0])

    def test_target_axis_with_event_not_admitting_promote(self):
        trigger = Trigger(event=condition(include=["push"]), target=condition(include=["e2e"]))

        assert len(trigger_problems(trigger, "e2e")) == 1

    def test_unknown_schedule_name(self):
        problems = trigger_problems(cron_trigger(["hourly"]), "cron-default", schedules=["nightly"])

        assert len(problems) == 1
        assert "hourly" in str(problems[0])

    def test_unknown_status_value(self):
        assert trigger_problems(Trigger(status=condition(include=["cancelled"])), "notify")

    def test_valid_triggers_pass(self):
        for trigger in (default_trigger(), cron_trigger(["nightly"]), promote_trigger(["e2e"]),
                        tag_trigger(), status_trigger(), None):
            assert check_trigger(trigger, "pipeline") == trigger


class TestMergeTriggers:
    """Axis-wise overlay of triggers."""

    def test_later_axis_replaces_earlier(self):
        merged = merge_triggers(default_trigger(), Trigger(event=condition(include=["cron"])),
                                Trigger(cron=condition(include=["nightly"])))

        assert merged.event == condition(include=["cron"])
        assert merged.branch == default_trigger().branch
        assert merged.cron == condition(include=["nightly"])

    def test_none_layers_are_skipped(self):
        assert merge_triggers(None, default_trigger(), None) == default_trigger()
