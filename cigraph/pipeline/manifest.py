import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple

from ..config.config_serializer import ManifestSerializer
from ..config.global_config_loader import GeneratorSettings
from ..config.hasher import ManifestHasher
from ..core.enums import OutputFormat
from ..core.models import Pipeline, Schedule, Secret
from .graph_validator import GraphValidator, ValidationReport
from .volumes import VolumeRegistry


class ManifestEmitter:
    """Flattens validated pipelines into the ordered manifest the runner consumes.

    Emission is all-or-nothing: the assembled pipelines are validated first and
    nothing is serialized if any violation is found.
    """

    def __init__(
        self,
        registry: VolumeRegistry,
        settings: Optional[GeneratorSettings] = None,
        secrets: Optional[Sequence[Secret]] = None,
        schedules: Optional[Sequence[Schedule]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.registry = registry
        self.settings = settings or GeneratorSettings.default()
        self.secrets = None if secrets is None else tuple(secrets)
        self.schedules = None if schedules is None else tuple(schedules)
        self.hasher = ManifestHasher()
        self.logger = logger or logging.getLogger(__name__)

    def assemble(self, pipelines: Iterable[Pipeline]) -> Tuple[Pipeline, ...]:
        """Keep first-definition order and append the final aggregate pipeline.

        The final pipeline depends on every other pipeline, so it only fires
        after all of them have resolved.
        """
        pipelines = list(pipelines)
        finals = [pipeline for pipeline in pipelines if pipeline.final]
        if len(finals) > 1:
            raise ValueError(
                f"Only one final pipeline may be declared, found: {[p.name for p in finals]}"
            )
        ordered = [pipeline for pipeline in pipelines if not pipeline.final]
        if finals:
            final = replace(finals[0], depends_on=tuple(pipeline.name for pipeline in ordered))
            ordered.append(final)
        return tuple(ordered)

    def validator(self) -> GraphValidator:
        return GraphValidator(
            self.registry,
            secrets=None if self.secrets is None else [secret.name for secret in self.secrets],
            schedules=None if self.schedules is None else [schedule.name for schedule in self.schedules],
        )

    def validate(self, pipelines: Iterable[Pipeline]) -> ValidationReport:
        return self.validator().validate(self.assemble(pipelines))

    def documents(self, pipelines: Sequence[Pipeline]) -> List[Dict[str, Any]]:
        documents = [ManifestSerializer.secret_to_dict(secret) for secret in self.secrets or ()]
        documents.extend(ManifestSerializer.pipeline_to_dict(pipeline) for pipeline in pipelines)
        return documents

    def emit(self, pipelines: Iterable[Pipeline], fmt: OutputFormat = OutputFormat.YAML,
             signing_key: Optional[str] = None) -> str:
        """Assemble, validate and serialize; raises ValidationFailed before producing any output"""
        assembled = self.assemble(pipelines)
        report = self.validator().validate(assembled)
        report.raise_for_errors()

        documents = self.documents(assembled)
        text = ManifestSerializer.dump(documents, fmt)
        if signing_key:
            signature = self.hasher.signature_document(text, signing_key)
            text = ManifestSerializer.dump(documents + [signature], fmt)

        self.logger.info(
            f"Emitted {len(assembled)} pipeline(s) as {OutputFormat(fmt).value} "
            f"(digest {self.hasher.compute_digest(documents)[:12]})"
        )
        return text

    def write(self, pipelines: Iterable[Pipeline], stream: TextIO, fmt: OutputFormat = OutputFormat.YAML,
              signing_key: Optional[str] = None) -> None:
        """Emit and write the manifest in a single write"""
        stream.write(self.emit(pipelines, fmt, signing_key))
