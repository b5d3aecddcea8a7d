from .enums import EventKind, OutputFormat, PipelineKind, PullPolicy, TriggerAxis, VolumeKind
from .errors import (
    CycleDetected, DuplicateName, InvalidTrigger, ManifestError, UnknownSecret,
    UnknownVolume, UnresolvedDependency, ValidationFailed
)
from .merge import merge_with_override
from .models import (
    CloudServer, Condition, Event, Pipeline, Schedule, Secret, SecretRef,
    ServiceContainer, Step, Trigger, Volume, VolumeMount
)

__all__ = [
    'EventKind', 'OutputFormat', 'PipelineKind', 'PullPolicy', 'TriggerAxis', 'VolumeKind',
    'CycleDetected', 'DuplicateName', 'InvalidTrigger', 'ManifestError', 'UnknownSecret',
    'UnknownVolume', 'UnresolvedDependency', 'ValidationFailed',
    'merge_with_override',
    'CloudServer', 'Condition', 'Event', 'Pipeline', 'Schedule', 'Secret', 'SecretRef',
    'ServiceContainer', 'Step', 'Trigger', 'Volume', 'VolumeMount',
]
