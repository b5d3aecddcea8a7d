"""
cigraph - declarative CI pipeline composition and dependency-graph engine

Main modules:
- core: value objects, enums and the error taxonomy
- pipeline: volume registry, step/pipeline builders, triggers, graph validation, manifest emission
- config: settings, source definition loading and manifest serialization
- cli: the `cigraph` command
"""

from .config.config_loader import ConfigLoader, SourceDefinition
from .config.global_config_loader import GeneratorSettings, load_settings
from .pipeline import (
    GraphValidator, ManifestEmitter, PipelineBuilder, StepBuilder, TriggerEvaluator, VolumeRegistry
)

__version__ = "1.0.0"
__all__ = [
    'ConfigLoader',
    'SourceDefinition',
    'GeneratorSettings',
    'load_settings',
    'GraphValidator',
    'ManifestEmitter',
    'PipelineBuilder',
    'StepBuilder',
    'TriggerEvaluator',
    'VolumeRegistry',
]
