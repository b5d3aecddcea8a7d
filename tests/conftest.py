"""Pytest configuration and fixtures for cigraph tests."""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cigraph.config.global_config_loader import GeneratorSettings
from cigraph.pipeline.pipeline_builder import PipelineBuilder
from cigraph.pipeline.step_builder import StepBuilder
from cigraph.pipeline.volumes import VolumeRegistry, default_volumes

# Configure logging
logging.basicConfig(level=logging.INFO)


@pytest.fixture
def settings() -> GeneratorSettings:
    return GeneratorSettings.default()


@pytest.fixture
def registry() -> VolumeRegistry:
    """Standard volume set, frozen as it is after initialization."""
    return VolumeRegistry(default_volumes()).freeze()


@pytest.fixture
def step_builder(registry, settings) -> StepBuilder:
    return StepBuilder(registry, settings)


@pytest.fixture
def pipeline_builder(registry, settings) -> PipelineBuilder:
    return PipelineBuilder(registry, settings)


@pytest.fixture
def example_definition_path() -> Path:
    return project_root / "examples" / "talos.yaml"


@pytest.fixture
def minimal_definition() -> Dict[str, Any]:
    """Small source definition with two dependent pipelines and a final one."""
    return {
        'secrets': [
            {'name': 'ghcr_token', 'path': 'buildx', 'key': 'token'},
        ],
        'triggers': {
            'default': {
                'event': {'exclude': ['tag', 'promote', 'cron']},
                'branch': {'exclude': ['renovate/*', 'dependabot/*']},
            },
        },
        'pipelines': [
            {
                'name': 'default',
                'trigger': 'default',
                'steps': [
                    {'name': 'build'},
                    {'name': 'lint', 'depends_on': ['build']},
                    {
                        'name': 'push',
                        'depends_on': ['lint'],
                        'environment': {'GHCR_PASSWORD': {'from_secret': 'ghcr_token'}},
                    },
                ],
            },
            {
                'name': 'integration',
                'depends_on': ['default'],
                'trigger': {'event': ['promote'], 'target': ['integration']},
                'steps': [{'name': 'e2e-qemu', 'privileged': True}],
            },
            {
                'name': 'notify',
                'final': True,
                'with_docker': False,
                'clone_disabled': True,
                'trigger': {'status': ['success', 'failure']},
                'steps': [{'name': 'slack', 'image': 'plugins/slack'}],
            },
        ],
    }
