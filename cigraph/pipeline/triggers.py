"""
Trigger predicate model.

A trigger carries at most one condition per axis (event, branch, ref, cron,
target, status). For each axis an exclude hit fails the axis regardless of the
include set; otherwise a present include set must match; an axis with neither
set passes vacuously. A trigger matches an event iff every present axis passes.

The runner evaluates triggers against live events. The evaluator here mirrors
that behavior so the emitted predicates can be checked offline.
"""
import logging
from fnmatch import fnmatchcase
from typing import Iterable, List, Optional, Sequence, Tuple

from ..core.enums import EventKind, TriggerAxis
from ..core.errors import InvalidTrigger
from ..core.models import Condition, Event, Pipeline, Step, Trigger

BUILD_STATUSES = ("success", "failure")
DEPENDENCY_BOT_BRANCHES = ("renovate/*", "dependabot/*")


def condition(include: Iterable[str] = (), exclude: Iterable[str] = ()) -> Condition:
    return Condition(include=tuple(include), exclude=tuple(exclude))


def pattern_matches(value: str, patterns: Sequence[str]) -> bool:
    """True if ``value`` matches any shell-style pattern"""
    return any(fnmatchcase(value, pattern) for pattern in patterns)


def condition_matches(cond: Optional[Condition], value: Optional[str]) -> bool:
    """Evaluate a single-valued axis; exclude wins over include"""
    if cond is None or cond.is_empty:
        return True
    if value is not None and cond.exclude and pattern_matches(value, cond.exclude):
        return False
    if cond.include:
        return value is not None and pattern_matches(value, cond.include)
    return True


def labels_match(cond: Optional[Condition], labels: Sequence[str]) -> bool:
    """Evaluate a multi-valued axis: any excluded label fails, include needs an overlap"""
    if cond is None or cond.is_empty:
        return True
    if cond.exclude and any(pattern_matches(label, cond.exclude) for label in labels):
        return False
    if cond.include:
        return any(pattern_matches(label, cond.include) for label in labels)
    return True


class TriggerEvaluator:
    """Evaluates triggers against build events"""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def axis_matches(self, trigger: Trigger, axis: TriggerAxis, event: Event) -> bool:
        cond = getattr(trigger, axis.value)
        if axis == TriggerAxis.TARGET:
            return labels_match(cond, event.targets)
        value = {
            TriggerAxis.EVENT: event.kind,
            TriggerAxis.BRANCH: event.branch,
            TriggerAxis.REF: event.ref,
            TriggerAxis.CRON: event.cron,
            TriggerAxis.STATUS: event.status,
        }[axis]
        return condition_matches(cond, value)

    def matches(self, trigger: Optional[Trigger], event: Event) -> bool:
        if trigger is None:
            return True
        for axis, _ in trigger.conditions():
            if not self.axis_matches(trigger, axis, event):
                self.logger.debug(f"Trigger axis '{axis.value}' rejected event {event}")
                return False
        return True

    def step_runs(self, pipeline: Pipeline, step: Step, event: Event) -> bool:
        """Pipeline trigger is the primary gate; the step filter is evaluated independently"""
        return self.matches(pipeline.trigger, event) and self.matches(step.when, event)

    def firing(self, pipelines: Iterable[Pipeline], event: Event) -> List[Tuple[Pipeline, List[Step]]]:
        """Pipelines whose trigger matches ``event`` with the steps that would run"""
        result = []
        for pipeline in pipelines:
            if not self.matches(pipeline.trigger, event):
                continue
            steps = [step for step in pipeline.steps if self.matches(step.when, event)]
            result.append((pipeline, steps))
        return result


def _admits(cond: Optional[Condition], value: str) -> bool:
    return condition_matches(cond, value)


def trigger_problems(trigger: Optional[Trigger], owner: Optional[str] = None,
                     pipeline: Optional[str] = None,
                     schedules: Optional[Iterable[str]] = None) -> List[InvalidTrigger]:
    """Every reason ``trigger`` cannot be honored by the runner"""
    problems: List[InvalidTrigger] = []
    if trigger is None:
        return problems

    has_cron = trigger.cron is not None and not trigger.cron.is_empty
    has_target = trigger.target is not None and not trigger.target.is_empty

    if has_cron and has_target:
        problems.append(InvalidTrigger(
            "cron and promotion-target gating cannot be combined", owner, pipeline))
    if has_cron and not _admits(trigger.event, EventKind.CRON.value):
        problems.append(InvalidTrigger(
            "cron axis is set but the event axis never admits 'cron' events", owner, pipeline))
    if has_target and not _admits(trigger.event, EventKind.PROMOTE.value):
        problems.append(InvalidTrigger(
            "target axis is set but the event axis never admits 'promote' events", owner, pipeline))

    if trigger.status is not None:
        unknown = [s for s in trigger.status.include + trigger.status.exclude if s not in BUILD_STATUSES]
        if unknown:
            problems.append(InvalidTrigger(
                f"unknown build status values {unknown} (expected {list(BUILD_STATUSES)})", owner, pipeline))

    if schedules is not None and has_cron:
        known = set(schedules)
        for name in trigger.cron.include + trigger.cron.exclude:
            if name not in known:
                problems.append(InvalidTrigger(
                    f"cron axis references undeclared schedule '{name}'", owner, pipeline))
    return problems


def check_trigger(trigger: Optional[Trigger], owner: Optional[str] = None) -> Optional[Trigger]:
    """Raise the first problem found in ``trigger``; return it unchanged otherwise"""
    problems = trigger_problems(trigger, owner)
    if problems:
        raise problems[0]
    return trigger


def merge_triggers(*triggers: Optional[Trigger]) -> Trigger:
    """Overlay triggers axis by axis; a later non-empty axis replaces the earlier one"""
    axes = {}
    for trigger in triggers:
        if trigger is None:
            continue
        for axis, cond in trigger.conditions():
            axes[axis.value] = cond
    return Trigger(**axes)


def default_trigger() -> Trigger:
    """Pushes and pull requests, excluding dependency-bot branches"""
    return Trigger(
        event=condition(exclude=(EventKind.TAG.value, EventKind.PROMOTE.value, EventKind.CRON.value)),
        branch=condition(exclude=DEPENDENCY_BOT_BRANCHES),
    )


def tag_trigger(exclude_refs: Iterable[str] = ()) -> Trigger:
    return Trigger(
        event=condition(include=(EventKind.TAG.value,)),
        ref=condition(exclude=exclude_refs) if exclude_refs else None,
    )


def cron_trigger(schedules: Iterable[str]) -> Trigger:
    return Trigger(
        event=condition(include=(EventKind.CRON.value,)),
        cron=condition(include=schedules),
    )


def promote_trigger(targets: Iterable[str]) -> Trigger:
    return Trigger(
        event=condition(include=(EventKind.PROMOTE.value,)),
        target=condition(include=targets),
    )


def status_trigger(statuses: Iterable[str] = BUILD_STATUSES) -> Trigger:
    """Fires on completed builds, used by the final aggregate pipeline"""
    return Trigger(
        status=condition(include=statuses),
        branch=condition(exclude=DEPENDENCY_BOT_BRANCHES),
    )
