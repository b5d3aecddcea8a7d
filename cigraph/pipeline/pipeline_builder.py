import logging
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from ..config.global_config_loader import GeneratorSettings
from ..core.enums import PipelineKind
from ..core.models import CloudServer, Pipeline, SecretRef, ServiceContainer, Step, Trigger
from .step_builder import substitute_registry
from .volumes import VolumeRegistry


class PipelineBuilder:
    """Composes ordered steps into pipelines, attaching triggers, services and volumes"""

    def __init__(self, registry: VolumeRegistry, settings: Optional[GeneratorSettings] = None,
                 logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.settings = settings or GeneratorSettings.default()
        self.logger = logger or logging.getLogger(__name__)

    def docker_service(self) -> ServiceContainer:
        """Privileged build daemon mounting the standard step volumes"""
        docker = self.settings.docker
        return ServiceContainer(
            name=docker.name,
            image=substitute_registry(docker.image, self.settings.registry),
            entrypoint=tuple(docker.entrypoint),
            command=tuple(docker.command),
            privileged=True,
            volumes=self.registry.for_step(),
        )

    def cloud_server(self) -> CloudServer:
        cloud = self.settings.hosted_cloud
        return CloudServer(image=cloud.image, size=cloud.size, region=cloud.region)

    def runner_type(self, kind: PipelineKind) -> str:
        if kind == PipelineKind.HOSTED_CLOUD:
            return self.settings.runner.hosted_cloud_type
        return self.settings.runner.standard_type

    def build_pipeline(
        self,
        name: str,
        steps: Sequence[Step],
        depends_on: Iterable[str] = (),
        kind: PipelineKind = PipelineKind.STANDARD,
        with_docker: bool = True,
        clone_disabled: bool = False,
        trigger: Optional[Trigger] = None,
        final: bool = False,
    ) -> Pipeline:
        """Build a pipeline from already-built steps.

        Standard pipelines built with ``with_docker`` get the build daemon
        service. Hosted-cloud pipelines get server defaults and a token secret
        instead. Every pipeline declares the standard volume set plus any extra
        registered volume its steps mount. Dependency names stay unresolved
        until the graph validator runs.
        """
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Pipeline name must be a non-empty string")
        name = name.strip()
        kind = PipelineKind(kind)

        services = ()
        server = None
        token = None
        if kind == PipelineKind.HOSTED_CLOUD:
            server = self.cloud_server()
            token = SecretRef(self.settings.hosted_cloud.token_secret)
        elif with_docker:
            services = (self.docker_service(),)

        mounts = [mount for step in steps for mount in step.volumes]
        pipeline = Pipeline(
            name=name,
            kind=kind,
            type=self.runner_type(kind),
            steps=tuple(steps),
            services=services,
            volumes=self.registry.declarations_for(mounts),
            depends_on=tuple(depends_on),
            trigger=trigger if trigger is not None and not trigger.is_empty else None,
            clone_disabled=bool(clone_disabled),
            clone_depth=None if clone_disabled else self.settings.runner.clone_depth,
            server=server,
            token=token,
            final=bool(final),
        )
        self.logger.debug(
            f"Built pipeline '{name}' ({kind.value}) with {len(pipeline.steps)} step(s), "
            f"depends_on={list(pipeline.depends_on)}"
        )
        return pipeline

    def variant(self, pipeline: Pipeline, name: str, trigger: Optional[Trigger] = None,
                depends_on: Optional[Iterable[str]] = None) -> Pipeline:
        """Derive a renamed copy of ``pipeline`` with its own trigger and dependencies"""
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Pipeline variant name must be a non-empty string")
        return replace(
            pipeline,
            name=name.strip(),
            trigger=trigger if trigger is not None and not trigger.is_empty else pipeline.trigger,
            depends_on=pipeline.depends_on if depends_on is None else tuple(depends_on),
            final=False,
        )
