import logging
from typing import Iterable, Mapping, Optional, Sequence

from ..config.global_config_loader import GeneratorSettings
from ..core.enums import PullPolicy
from ..core.merge import merge_with_override
from ..core.models import EnvValue, Step, Trigger
from .volumes import VolumeRegistry


def substitute_registry(image: str, registry: str) -> str:
    """Replace the ``{registry}`` placeholder in an image name verbatim"""
    return image.replace("{registry}", registry)


class StepBuilder:
    """Builds Step values against a volume registry and generator settings"""

    def __init__(self, registry: VolumeRegistry, settings: Optional[GeneratorSettings] = None,
                 logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.settings = settings or GeneratorSettings.default()
        self.logger = logger or logging.getLogger(__name__)

    def command_for(self, target: str) -> str:
        return f"{self.settings.command} {target}"

    def build(
        self,
        name: str,
        target: Optional[str] = None,
        image: Optional[str] = None,
        privileged: bool = False,
        depends_on: Sequence[str] = (),
        environment: Optional[Mapping[str, EnvValue]] = None,
        extra_volumes: Iterable[str] = (),
        when: Optional[Trigger] = None,
        pull: Optional[PullPolicy] = None,
    ) -> Step:
        """Build a step.

        The command is ``"<command> <target>"`` with target defaulting to the
        step name. Environment is the settings baseline overlaid by
        ``environment``. Dependency names are stored as given and resolved by
        the graph validator.
        """
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Step name must be a non-empty string")
        name = name.strip()
        resolved_target = (target or "").strip() or name
        resolved_image = substitute_registry(image or self.settings.build_image, self.settings.registry)

        env = merge_with_override(self.settings.environment, environment)

        step = Step(
            name=name,
            target=resolved_target,
            image=resolved_image,
            commands=(self.command_for(resolved_target),),
            privileged=bool(privileged),
            environment=env,
            volumes=self.registry.mounts(extra_volumes),
            depends_on=tuple(depends_on),
            when=when if when is not None and not when.is_empty else None,
            pull=pull or PullPolicy(self.settings.pull_policy),
        )
        self.logger.debug(f"Built step '{name}' (target={resolved_target}, depends_on={list(step.depends_on)})")
        return step
