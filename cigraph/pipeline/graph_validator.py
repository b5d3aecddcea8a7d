"""
Graph validation over a fully assembled set of pipelines.

Dependencies are stored as plain names. The validator builds a name -> index
lookup once per graph, resolves every edge through it and then checks the
resulting directed graph for cycles. Validation is exhaustive: every violation
found is collected into the report instead of stopping at the first one.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import networkx as nx

from ..core.errors import (
    CycleDetected, DuplicateName, ManifestError, UnknownSecret, UnknownVolume,
    UnresolvedDependency, ValidationFailed
)
from ..core.models import Pipeline, SecretRef, Step
from .triggers import trigger_problems
from .volumes import VolumeRegistry


@dataclass
class ValidationReport:
    """Outcome of a validation run"""
    errors: List[ManifestError] = field(default_factory=list)
    step_order: Dict[str, List[str]] = field(default_factory=dict)
    pipeline_order: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ValidationFailed(self.errors)


def resolve_graph(
    nodes: Sequence[Tuple[str, Sequence[str]]],
    entity: str,
    pipeline: Optional[str] = None,
) -> Tuple[List[ManifestError], List[str]]:
    """Resolve ``(name, depends_on)`` pairs and topologically sort them.

    Edges point from a dependency to its dependent. Ties are broken by
    declaration order so the resulting order is stable. Returns the errors
    found and the order (empty if the graph has a cycle).
    """
    errors: List[ManifestError] = []
    index: Dict[str, int] = {}
    graph = nx.DiGraph()

    for position, (name, _) in enumerate(nodes):
        if name in index:
            errors.append(DuplicateName(entity, name, pipeline))
            continue
        index[name] = position
        graph.add_node(name)

    for name, depends_on in nodes:
        for dependency in depends_on:
            if dependency not in index:
                errors.append(UnresolvedDependency(name, dependency, pipeline))
                continue
            graph.add_edge(dependency, name)

    components = [
        component for component in nx.strongly_connected_components(graph)
        if len(component) > 1 or any(graph.has_edge(node, node) for node in component)
    ]
    components.sort(key=lambda component: min(index[node] for node in component))
    for component in components:
        start = min(component, key=index.__getitem__)
        edges = nx.find_cycle(graph.subgraph(component), source=start)
        errors.append(CycleDetected([edge[0] for edge in edges], pipeline))

    if components:
        return errors, []
    order = list(nx.lexicographical_topological_sort(graph, key=index.__getitem__))
    return errors, order


class GraphValidator:
    """Checks acyclicity and referential integrity of steps, pipelines, volumes, triggers and secrets"""

    def __init__(
        self,
        registry: VolumeRegistry,
        secrets: Optional[Iterable[str]] = None,
        schedules: Optional[Iterable[str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.secrets = None if secrets is None else set(secrets)
        self.schedules = None if schedules is None else tuple(schedules)
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, pipelines: Sequence[Pipeline]) -> ValidationReport:
        report = ValidationReport()

        for pipeline in pipelines:
            errors, order = resolve_graph(
                [(step.name, step.depends_on) for step in pipeline.steps], "step", pipeline.name
            )
            report.errors.extend(errors)
            report.step_order[pipeline.name] = order

        errors, order = resolve_graph(
            [(pipeline.name, pipeline.depends_on) for pipeline in pipelines], "pipeline"
        )
        report.errors.extend(errors)
        report.pipeline_order = order

        for pipeline in pipelines:
            report.errors.extend(self._check_volumes(pipeline))
            report.errors.extend(self._check_triggers(pipeline))
            if self.secrets is not None:
                report.errors.extend(self._check_secrets(pipeline))

        if report.ok:
            self.logger.info(f"Validated {len(pipelines)} pipeline(s): no violations")
        else:
            self.logger.warning(f"Validation found {len(report.errors)} violation(s) in {len(pipelines)} pipeline(s)")
        return report

    def _check_volumes(self, pipeline: Pipeline) -> List[ManifestError]:
        errors: List[ManifestError] = []
        owners = [(step.name, step.volumes) for step in pipeline.steps]
        owners.extend((service.name, service.volumes) for service in pipeline.services)
        for owner, mounts in owners:
            for mount in mounts:
                volume = self.registry.get(mount.name)
                if volume is None:
                    errors.append(UnknownVolume(owner, mount.name, pipeline.name))
                elif volume.mount_path != mount.path:
                    errors.append(UnknownVolume(
                        owner, mount.name, pipeline.name,
                        detail=(
                            f"'{owner}' in pipeline '{pipeline.name}' mounts volume '{mount.name}' "
                            f"at {mount.path or '<none>'}, registry path is {volume.mount_path}"
                        ),
                    ))
        for volume in pipeline.volumes:
            if self.registry.get(volume.name) != volume:
                errors.append(UnknownVolume(
                    pipeline.name, volume.name, pipeline.name,
                    detail=f"Pipeline '{pipeline.name}' declares volume '{volume.name}' that differs from the registry",
                ))
        return errors

    def _check_triggers(self, pipeline: Pipeline) -> List[ManifestError]:
        errors: List[ManifestError] = list(
            trigger_problems(pipeline.trigger, pipeline.name, pipeline.name, self.schedules)
        )
        for step in pipeline.steps:
            errors.extend(trigger_problems(step.when, step.name, pipeline.name, self.schedules))
        return errors

    def _check_secrets(self, pipeline: Pipeline) -> List[ManifestError]:
        errors: List[ManifestError] = []
        if pipeline.token is not None and pipeline.token.name not in self.secrets:
            errors.append(UnknownSecret(pipeline.name, pipeline.token.name, pipeline.name))
        for step in pipeline.steps:
            for ref in _secret_refs(step):
                if ref.name not in self.secrets:
                    errors.append(UnknownSecret(step.name, ref.name, pipeline.name))
        return errors


def _secret_refs(step: Step) -> List[SecretRef]:
    return [value for value in step.environment.values() if isinstance(value, SecretRef)]
