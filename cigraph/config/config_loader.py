import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TextIO, Tuple

import yaml
from croniter import croniter

from ..core.enums import OutputFormat, PipelineKind, PullPolicy, VolumeKind
from ..core.errors import DuplicateName
from ..core.merge import merge_with_override
from ..core.models import (
    Condition, EnvValue, Pipeline, Schedule, Secret, SecretRef, Step, Trigger, Volume
)
from ..pipeline.graph_validator import ValidationReport
from ..pipeline.manifest import ManifestEmitter
from ..pipeline.pipeline_builder import PipelineBuilder
from ..pipeline.step_builder import StepBuilder
from ..pipeline.triggers import merge_triggers
from ..pipeline.volumes import VolumeRegistry, default_volumes
from .global_config_loader import GeneratorSettings, resolve_env_vars

logger = logging.getLogger(__name__)

TOP_LEVEL_KEYS = {'settings', 'volumes', 'secrets', 'schedules', 'triggers', 'step_groups', 'pipelines'}
STEP_KEYS = {'name', 'target', 'image', 'privileged', 'depends_on', 'environment', 'volumes', 'when', 'pull'}
GROUP_REF_KEYS = {'group', 'environment'}
PIPELINE_KEYS = {
    'name', 'kind', 'steps', 'depends_on', 'with_docker', 'clone_disabled', 'trigger', 'final', 'variants'
}
VARIANT_KEYS = {'name', 'trigger', 'depends_on'}
TRIGGER_AXES = ('event', 'branch', 'ref', 'cron', 'target', 'status')


@dataclass
class SourceDefinition:
    """Everything one generation run needs, built from a source definition"""
    settings: GeneratorSettings
    registry: VolumeRegistry
    pipelines: List[Pipeline] = field(default_factory=list)
    secrets: Optional[List[Secret]] = None
    schedules: Optional[List[Schedule]] = None

    def emitter(self) -> ManifestEmitter:
        return ManifestEmitter(self.registry, self.settings, self.secrets, self.schedules)

    def validate(self) -> ValidationReport:
        return self.emitter().validate(self.pipelines)

    def assembled(self) -> Tuple[Pipeline, ...]:
        return self.emitter().assemble(self.pipelines)

    def emit(self, fmt: OutputFormat = OutputFormat.YAML, signing_key: Optional[str] = None) -> str:
        return self.emitter().emit(self.pipelines, fmt, signing_key)


class ConfigLoader:
    """Load source definitions into registries, steps and pipelines"""

    @staticmethod
    def load_from_yaml(file_path: str, settings: Optional[GeneratorSettings] = None) -> SourceDefinition:
        """Load a source definition from YAML file"""
        with open(file_path, 'r') as file:
            return ConfigLoader.load_from_stream(file, settings, source=file_path)

    @staticmethod
    def load_from_stream(stream: TextIO, settings: Optional[GeneratorSettings] = None,
                         source: str = "<stream>") -> SourceDefinition:
        config_dict = yaml.safe_load(stream)
        if config_dict is None:
            raise ValueError(f"Empty or invalid YAML file: {source}")
        if not isinstance(config_dict, dict):
            raise ValueError(f"Source definition must be a mapping: {source}")
        return ConfigLoader.load_from_dict(config_dict, settings)

    @staticmethod
    def load_from_dict(config_dict: Dict[str, Any], settings: Optional[GeneratorSettings] = None) -> SourceDefinition:
        """Load a source definition from dictionary"""
        unknown = set(config_dict) - TOP_LEVEL_KEYS
        if unknown:
            raise ValueError(f"Unknown top-level keys in source definition: {sorted(unknown)}")

        base = settings or GeneratorSettings.default()
        effective = base.with_overrides(config_dict.get('settings'))

        registry = VolumeRegistry()
        if 'volumes' in config_dict:
            for index, volume_dict in enumerate(config_dict.get('volumes') or []):
                registry.register(ConfigLoader._process_volume(volume_dict, f"volumes[{index}]"))
        else:
            for volume in default_volumes():
                registry.register(volume)
        registry.freeze()

        secrets = None
        if 'secrets' in config_dict:
            secrets = ConfigLoader._process_secrets(config_dict.get('secrets') or [])

        schedules = None
        if 'schedules' in config_dict:
            schedules = ConfigLoader._process_schedules(config_dict.get('schedules') or [])

        named_triggers: Dict[str, Trigger] = {}
        for name, trigger_dict in (config_dict.get('triggers') or {}).items():
            named_triggers[name] = ConfigLoader._process_trigger(trigger_dict, named_triggers, f"triggers.{name}")

        step_builder = StepBuilder(registry, effective)
        pipeline_builder = PipelineBuilder(registry, effective)

        groups: Dict[str, List[Dict[str, Any]]] = {}
        for name, steps in (config_dict.get('step_groups') or {}).items():
            if not isinstance(steps, list):
                raise ValueError(f"step_groups.{name} must be a list of steps")
            groups[name] = steps

        pipelines: List[Pipeline] = []
        for index, pipeline_dict in enumerate(config_dict.get('pipelines') or []):
            pipelines.extend(ConfigLoader._process_pipeline(
                pipeline_dict, groups, named_triggers, step_builder, pipeline_builder, f"pipelines[{index}]"
            ))

        logger.info(
            f"Loaded source definition: {len(registry)} volume(s), {len(pipelines)} pipeline(s), "
            f"{len(secrets or [])} secret(s), {len(schedules or [])} schedule(s)"
        )
        return SourceDefinition(
            settings=effective,
            registry=registry,
            pipelines=pipelines,
            secrets=secrets,
            schedules=schedules,
        )

    @staticmethod
    def _require_mapping(value: Any, path: str) -> Dict[str, Any]:
        if not isinstance(value, dict):
            raise ValueError(f"{path} must be a mapping (got {type(value).__name__})")
        return value

    @staticmethod
    def _check_keys(value: Dict[str, Any], allowed: set, path: str) -> None:
        unknown = set(value) - allowed
        if unknown:
            raise ValueError(f"Unknown keys at {path}: {sorted(unknown)}")

    @staticmethod
    def _string_list(value: Any, path: str) -> Tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        if not isinstance(value, list):
            raise ValueError(f"{path} must be a string or a list of strings")
        return tuple(str(item) for item in value)

    @staticmethod
    def _process_volume(volume_dict: Any, path: str) -> Volume:
        volume_dict = ConfigLoader._require_mapping(volume_dict, path)
        if 'name' not in volume_dict:
            raise ValueError(f"{path} requires a name")
        try:
            kind = VolumeKind(volume_dict.get('kind', VolumeKind.EPHEMERAL_TEMP.value))
        except ValueError:
            raise ValueError(
                f"{path}.kind must be one of {[k.value for k in VolumeKind]} (got {volume_dict.get('kind')!r})"
            )
        return Volume(
            name=str(volume_dict['name']),
            kind=kind,
            mount_path=volume_dict.get('mount_path') or volume_dict.get('path', ''),
            host_path=volume_dict.get('host_path'),
            standard=bool(volume_dict.get('standard', True)),
        )

    @staticmethod
    def _process_secrets(secrets_data: List[Any]) -> List[Secret]:
        secrets: List[Secret] = []
        seen = set()
        for index, secret_dict in enumerate(secrets_data):
            path = f"secrets[{index}]"
            secret_dict = ConfigLoader._require_mapping(secret_dict, path)
            missing = [key for key in ('name', 'path', 'key') if key not in secret_dict]
            if missing:
                raise ValueError(f"{path} is missing required keys: {missing}")
            if secret_dict['name'] in seen:
                raise DuplicateName("secret", secret_dict['name'])
            seen.add(secret_dict['name'])
            secrets.append(Secret(name=str(secret_dict['name']), path=str(secret_dict['path']),
                                  key=str(secret_dict['key'])))
        return secrets

    @staticmethod
    def _process_schedules(schedules_data: List[Any]) -> List[Schedule]:
        schedules: List[Schedule] = []
        seen = set()
        for index, schedule_dict in enumerate(schedules_data):
            path = f"schedules[{index}]"
            schedule_dict = ConfigLoader._require_mapping(schedule_dict, path)
            name, expression = schedule_dict.get('name'), schedule_dict.get('cron')
            if not name or not expression:
                raise ValueError(f"{path} requires both name and cron")
            if name in seen:
                raise DuplicateName("schedule", name)
            if not croniter.is_valid(expression):
                raise ValueError(f"{path} has invalid cron expression '{expression}'")
            seen.add(name)
            schedules.append(Schedule(name=str(name), expression=str(expression)))
        return schedules

    @staticmethod
    def _process_condition(value: Any, path: str) -> Condition:
        """A list is shorthand for an include set"""
        if isinstance(value, (list, str)):
            return Condition(include=ConfigLoader._string_list(value, path))
        value = ConfigLoader._require_mapping(value, path)
        ConfigLoader._check_keys(value, {'include', 'exclude'}, path)
        return Condition(
            include=ConfigLoader._string_list(value.get('include'), f"{path}.include"),
            exclude=ConfigLoader._string_list(value.get('exclude'), f"{path}.exclude"),
        )

    @staticmethod
    def _process_trigger(value: Any, named: Dict[str, Trigger], path: str) -> Optional[Trigger]:
        """Parse a trigger: a mapping of axes, a named trigger, or a list of either merged in order"""
        if value is None:
            return None
        if isinstance(value, str):
            if value not in named:
                raise ValueError(f"{path} references unknown trigger '{value}'")
            return named[value]
        if isinstance(value, list):
            return merge_triggers(*[
                ConfigLoader._process_trigger(item, named, f"{path}[{index}]") for index, item in enumerate(value)
            ])
        value = ConfigLoader._require_mapping(value, path)
        ConfigLoader._check_keys(value, set(TRIGGER_AXES), path)
        return Trigger(**{
            axis: ConfigLoader._process_condition(value[axis], f"{path}.{axis}")
            for axis in TRIGGER_AXES if axis in value
        })

    @staticmethod
    def _process_environment(value: Any, path: str) -> Dict[str, EnvValue]:
        if value is None:
            return {}
        value = ConfigLoader._require_mapping(resolve_env_vars(value), path)
        environment: Dict[str, EnvValue] = {}
        for key, item in value.items():
            if isinstance(item, dict):
                if set(item) != {'from_secret'}:
                    raise ValueError(f"{path}.{key} must be a string or {{from_secret: name}}")
                environment[str(key)] = SecretRef(str(item['from_secret']))
            elif isinstance(item, bool):
                environment[str(key)] = "true" if item else "false"
            else:
                environment[str(key)] = str(item)
        return environment

    @staticmethod
    def _process_step(step_dict: Dict[str, Any], overlay: Dict[str, EnvValue], named: Dict[str, Trigger],
                      builder: StepBuilder, path: str) -> Step:
        ConfigLoader._check_keys(step_dict, STEP_KEYS, path)
        if 'name' not in step_dict:
            raise ValueError(f"{path} requires a name")
        pull = None
        if 'pull' in step_dict:
            try:
                pull = PullPolicy(step_dict['pull'])
            except ValueError:
                raise ValueError(f"{path}.pull must be one of {[p.value for p in PullPolicy]}")
        environment = merge_with_override(
            ConfigLoader._process_environment(step_dict.get('environment'), f"{path}.environment"),
            overlay,
        )
        return builder.build(
            name=str(step_dict['name']),
            target=step_dict.get('target'),
            image=step_dict.get('image'),
            privileged=bool(step_dict.get('privileged', False)),
            depends_on=ConfigLoader._string_list(step_dict.get('depends_on'), f"{path}.depends_on"),
            environment=environment,
            extra_volumes=ConfigLoader._string_list(step_dict.get('volumes'), f"{path}.volumes"),
            when=ConfigLoader._process_trigger(step_dict.get('when'), named, f"{path}.when"),
            pull=pull,
        )

    @staticmethod
    def _process_steps(steps_data: Any, groups: Dict[str, List[Dict[str, Any]]], named: Dict[str, Trigger],
                       builder: StepBuilder, path: str) -> List[Step]:
        """Build steps, expanding ``group`` references in place.

        A group reference may carry an environment overlay applied on top of
        every step of the group.
        """
        if not isinstance(steps_data, list):
            raise ValueError(f"{path} must be a list")
        steps: List[Step] = []
        for index, entry in enumerate(steps_data):
            entry_path = f"{path}[{index}]"
            entry = ConfigLoader._require_mapping(entry, entry_path)
            if 'group' in entry:
                ConfigLoader._check_keys(entry, GROUP_REF_KEYS, entry_path)
                group_name = entry['group']
                if group_name not in groups:
                    raise ValueError(f"{entry_path} references unknown step group '{group_name}'")
                overlay = ConfigLoader._process_environment(entry.get('environment'), f"{entry_path}.environment")
                for group_index, step_dict in enumerate(groups[group_name]):
                    step_dict = ConfigLoader._require_mapping(step_dict, f"step_groups.{group_name}[{group_index}]")
                    steps.append(ConfigLoader._process_step(
                        step_dict, overlay, named, builder, f"step_groups.{group_name}[{group_index}]"
                    ))
            else:
                steps.append(ConfigLoader._process_step(entry, {}, named, builder, entry_path))
        return steps

    @staticmethod
    def _process_pipeline(pipeline_dict: Any, groups: Dict[str, List[Dict[str, Any]]], named: Dict[str, Trigger],
                          step_builder: StepBuilder, pipeline_builder: PipelineBuilder, path: str) -> List[Pipeline]:
        """Build a pipeline and any variants derived from it"""
        pipeline_dict = ConfigLoader._require_mapping(pipeline_dict, path)
        ConfigLoader._check_keys(pipeline_dict, PIPELINE_KEYS, path)
        if 'name' not in pipeline_dict:
            raise ValueError(f"{path} requires a name")
        try:
            kind = PipelineKind(pipeline_dict.get('kind', PipelineKind.STANDARD.value))
        except ValueError:
            raise ValueError(f"{path}.kind must be one of {[k.value for k in PipelineKind]}")

        steps = ConfigLoader._process_steps(pipeline_dict.get('steps') or [], groups, named, step_builder,
                                            f"{path}.steps")
        pipeline = pipeline_builder.build_pipeline(
            name=str(pipeline_dict['name']),
            steps=steps,
            depends_on=ConfigLoader._string_list(pipeline_dict.get('depends_on'), f"{path}.depends_on"),
            kind=kind,
            with_docker=bool(pipeline_dict.get('with_docker', True)),
            clone_disabled=bool(pipeline_dict.get('clone_disabled', False)),
            trigger=ConfigLoader._process_trigger(pipeline_dict.get('trigger'), named, f"{path}.trigger"),
            final=bool(pipeline_dict.get('final', False)),
        )
        result = [pipeline]

        for index, variant_dict in enumerate(pipeline_dict.get('variants') or []):
            variant_path = f"{path}.variants[{index}]"
            variant_dict = ConfigLoader._require_mapping(variant_dict, variant_path)
            ConfigLoader._check_keys(variant_dict, VARIANT_KEYS, variant_path)
            if 'name' not in variant_dict:
                raise ValueError(f"{variant_path} requires a name")
            depends_on = None
            if 'depends_on' in variant_dict:
                depends_on = ConfigLoader._string_list(variant_dict['depends_on'], f"{variant_path}.depends_on")
            result.append(pipeline_builder.variant(
                pipeline,
                name=str(variant_dict['name']),
                trigger=ConfigLoader._process_trigger(variant_dict.get('trigger'), named, f"{variant_path}.trigger"),
                depends_on=depends_on,
            ))
        return result
