# Pipeline package initialization
from .volumes import VolumeRegistry, default_volumes
from .step_builder import StepBuilder
from .triggers import TriggerEvaluator
from .pipeline_builder import PipelineBuilder
from .graph_validator import GraphValidator, ValidationReport
from .manifest import ManifestEmitter

__all__ = [
    'VolumeRegistry',
    'default_volumes',
    'StepBuilder',
    'TriggerEvaluator',
    'PipelineBuilder',
    'GraphValidator',
    'ValidationReport',
    'ManifestEmitter'
]
