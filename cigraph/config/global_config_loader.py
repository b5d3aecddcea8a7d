import os
import yaml
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.merge import merge_with_override


def resolve_env_vars(value: Any) -> Any:
    """Substitute ``${VAR}`` and ``${VAR:default}`` strings from the environment"""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        default_value = ""
        if ":" in env_var:
            env_var, default_value = env_var.split(":", 1)
        return os.getenv(env_var, default_value)
    elif isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    return value


@dataclass
class DockerServiceConfig:
    """Privileged build daemon attached to pipelines that build images"""
    name: str = "docker"
    image: str = "docker:20.10-dind"
    entrypoint: List[str] = field(default_factory=lambda: ["dockerd"])
    command: List[str] = field(default_factory=lambda: [
        "--dns=8.8.8.8",
        "--dns=8.8.4.4",
        "--mtu=1500",
        "--log-level=error",
    ])


@dataclass
class HostedCloudConfig:
    """Defaults injected into hosted-cloud pipelines"""
    image: str = "ubuntu-20-04-x64"
    size: str = "c-32"
    region: str = "nyc3"
    token_secret: str = "digitalocean_token"


@dataclass
class RunnerConfig:
    """Runner type strings emitted for each pipeline kind"""
    standard_type: str = "kubernetes"
    hosted_cloud_type: str = "digitalocean"
    clone_depth: int = 0


@dataclass
class GeneratorSettings:
    """Settings shared by every builder during one generation run"""
    build_image: str = "autonomy/build-container:latest"
    registry: str = "registry.dev.siderolabs.io"
    command: str = "build"
    pull_policy: str = "always"
    environment: Dict[str, str] = field(default_factory=lambda: {"PLATFORM": "linux/amd64,linux/arm64"})
    signing_key_env: str = "CIGRAPH_SIGNING_KEY"
    docker: DockerServiceConfig = field(default_factory=DockerServiceConfig)
    hosted_cloud: HostedCloudConfig = field(default_factory=HostedCloudConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional['GeneratorSettings'] = None) -> 'GeneratorSettings':
        """Create settings from a dictionary, overlaying ``base`` (or the defaults)"""
        current = asdict(base or cls())
        data = resolve_env_vars(data or {})
        unknown = set(data) - set(current)
        if unknown:
            raise ValueError(f"Unknown settings keys: {sorted(unknown)}")

        merged: Dict[str, Any] = {}
        for key, value in current.items():
            overlay = data.get(key)
            if isinstance(value, dict) and overlay is not None:
                if not isinstance(overlay, dict):
                    raise ValueError(f"Settings key '{key}' must be a mapping")
                # environment is free-form; the nested configs have fixed fields
                if key != 'environment':
                    nested_unknown = set(overlay) - set(value)
                    if nested_unknown:
                        raise ValueError(f"Unknown settings keys at {key}: {sorted(nested_unknown)}")
                merged[key] = merge_with_override(value, overlay)
            elif overlay is not None:
                merged[key] = overlay
            else:
                merged[key] = value

        return cls(
            build_image=merged['build_image'],
            registry=merged['registry'],
            command=merged['command'],
            pull_policy=merged['pull_policy'],
            environment={str(k): str(v) for k, v in merged['environment'].items()},
            signing_key_env=merged['signing_key_env'],
            docker=DockerServiceConfig(**merged['docker']),
            hosted_cloud=HostedCloudConfig(**merged['hosted_cloud']),
            runner=RunnerConfig(**merged['runner']),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'GeneratorSettings':
        """Load settings from YAML file"""
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {yaml_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def default(cls) -> 'GeneratorSettings':
        """Return default settings"""
        return cls()

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> 'GeneratorSettings':
        """Return new settings with ``overrides`` applied on top of these"""
        if not overrides:
            return self
        return GeneratorSettings.from_dict(overrides, base=self)


def load_settings(settings_path: Optional[str] = None) -> GeneratorSettings:
    """
    Load generator settings from YAML file.
    If no path provided, looks for cigraph.yaml in standard locations.
    """
    if settings_path:
        return GeneratorSettings.from_yaml(settings_path)

    search_paths = [
        Path("./cigraph.yaml"),
        Path("./.cigraph.yaml"),
        Path("./hack/cigraph.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            return GeneratorSettings.from_yaml(str(path))

    return GeneratorSettings.default()
