import json
from typing import Any, Dict, List, Optional, Sequence

import yaml

from ..core.enums import OutputFormat, VolumeKind
from ..core.models import (
    CloudServer, Condition, EnvValue, Pipeline, Secret, SecretRef, ServiceContainer,
    Step, Trigger, Volume, VolumeMount
)


class ManifestSerializer:
    """Converts value objects into the document shapes the runner reads"""

    @staticmethod
    def pipeline_to_dict(pipeline: Pipeline) -> Dict[str, Any]:
        """Convert Pipeline to dictionary"""
        result: Dict[str, Any] = {
            'kind': 'pipeline',
            'type': pipeline.type,
            'name': pipeline.name,
        }

        if pipeline.token is not None:
            result['token'] = ManifestSerializer._secret_ref_to_dict(pipeline.token)
        if pipeline.server is not None:
            result['server'] = ManifestSerializer._server_to_dict(pipeline.server)

        if pipeline.clone_disabled:
            result['clone'] = {'disable': True}
        elif pipeline.clone_depth is not None:
            result['clone'] = {'depth': pipeline.clone_depth}

        if pipeline.services:
            result['services'] = [ManifestSerializer._service_to_dict(service) for service in pipeline.services]
        result['volumes'] = [ManifestSerializer._volume_to_dict(volume) for volume in pipeline.volumes]
        result['steps'] = [ManifestSerializer._step_to_dict(step) for step in pipeline.steps]

        trigger = ManifestSerializer._trigger_to_dict(pipeline.trigger)
        if trigger:
            result['trigger'] = trigger
        result['depends_on'] = list(pipeline.depends_on)
        return result

    @staticmethod
    def secret_to_dict(secret: Secret) -> Dict[str, Any]:
        """Convert Secret to a secret document; the runner resolves the value"""
        return {
            'kind': 'secret',
            'name': secret.name,
            'get': {
                'path': secret.path,
                'name': secret.key,
            },
        }

    @staticmethod
    def _step_to_dict(step: Step) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': step.name,
            'image': step.image,
            'pull': step.pull.value,
            'commands': list(step.commands),
            'privileged': step.privileged,
            'environment': {
                key: ManifestSerializer._env_value_to_dict(value) for key, value in step.environment.items()
            },
            'volumes': [ManifestSerializer._mount_to_dict(mount) for mount in step.volumes],
            'depends_on': list(step.depends_on),
        }
        when = ManifestSerializer._trigger_to_dict(step.when)
        if when:
            result['when'] = when
        return result

    @staticmethod
    def _service_to_dict(service: ServiceContainer) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'name': service.name,
            'image': service.image,
        }
        if service.entrypoint:
            result['entrypoint'] = list(service.entrypoint)
        if service.command:
            result['command'] = list(service.command)
        result['privileged'] = service.privileged
        result['volumes'] = [ManifestSerializer._mount_to_dict(mount) for mount in service.volumes]
        return result

    @staticmethod
    def _server_to_dict(server: CloudServer) -> Dict[str, Any]:
        return {
            'image': server.image,
            'size': server.size,
            'region': server.region,
        }

    @staticmethod
    def _volume_to_dict(volume: Volume) -> Dict[str, Any]:
        """Pipeline-scope volume declaration"""
        if volume.kind == VolumeKind.HOST_PATH:
            return {'name': volume.name, 'host': {'path': volume.host_path}}
        if volume.kind == VolumeKind.MEMORY_TEMP:
            return {'name': volume.name, 'temp': {'medium': 'memory'}}
        return {'name': volume.name, 'temp': {}}

    @staticmethod
    def _mount_to_dict(mount: VolumeMount) -> Dict[str, Any]:
        return {'name': mount.name, 'path': mount.path}

    @staticmethod
    def _secret_ref_to_dict(ref: SecretRef) -> Dict[str, Any]:
        return {'from_secret': ref.name}

    @staticmethod
    def _env_value_to_dict(value: EnvValue) -> Any:
        if isinstance(value, SecretRef):
            return ManifestSerializer._secret_ref_to_dict(value)
        return value

    @staticmethod
    def _condition_to_dict(condition: Condition) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {}
        if condition.include:
            result['include'] = list(condition.include)
        if condition.exclude:
            result['exclude'] = list(condition.exclude)
        return result

    @staticmethod
    def _trigger_to_dict(trigger: Optional[Trigger]) -> Dict[str, Any]:
        if trigger is None:
            return {}
        return {
            axis.value: ManifestSerializer._condition_to_dict(condition)
            for axis, condition in trigger.conditions()
        }

    @staticmethod
    def dump(documents: Sequence[Dict[str, Any]], fmt: OutputFormat = OutputFormat.YAML) -> str:
        """Serialize documents; YAML output is a multi-document stream"""
        fmt = OutputFormat(fmt)
        if fmt == OutputFormat.JSON:
            return json.dumps(list(documents), indent=2) + "\n"
        return yaml.safe_dump_all(
            list(documents),
            default_flow_style=False,
            sort_keys=False,
            explicit_start=True,
        )
