from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple, Union

from .enums import PipelineKind, PullPolicy, TriggerAxis, VolumeKind


@dataclass(frozen=True)
class Volume:
    """Shared mount declaration held by the volume registry"""
    name: str
    kind: VolumeKind
    mount_path: str
    host_path: Optional[str] = None
    standard: bool = True

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("Volume name must be a non-empty string")
        if not self.mount_path:
            raise ValueError(f"Volume '{self.name}' requires a mount path")
        if self.kind == VolumeKind.HOST_PATH and not self.host_path:
            raise ValueError(f"Host-path volume '{self.name}' requires a host path")
        if self.kind != VolumeKind.HOST_PATH and self.host_path:
            raise ValueError(f"Volume '{self.name}' of kind {self.kind.value} cannot set a host path")


@dataclass(frozen=True)
class VolumeMount:
    """Per-step mount of a registered volume"""
    name: str
    path: str


@dataclass(frozen=True)
class SecretRef:
    """Reference to a secret by name; the value is resolved by the runner"""
    name: str


EnvValue = Union[str, SecretRef]


@dataclass(frozen=True)
class Secret:
    """Secret declaration pointing at an external secrets store entry"""
    name: str
    path: str
    key: str


@dataclass(frozen=True)
class Schedule:
    """Named cron job registered with the runner"""
    name: str
    expression: str


@dataclass(frozen=True)
class Condition:
    """Include/exclude pattern sets for one trigger axis"""
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.include and not self.exclude


@dataclass(frozen=True)
class Trigger:
    """Predicate over incoming build events, one optional condition per axis"""
    event: Optional[Condition] = None
    branch: Optional[Condition] = None
    ref: Optional[Condition] = None
    cron: Optional[Condition] = None
    target: Optional[Condition] = None
    status: Optional[Condition] = None

    def conditions(self) -> Iterator[Tuple[TriggerAxis, Condition]]:
        """Yield the axes that carry a non-empty condition, in axis order"""
        for axis in TriggerAxis:
            condition = getattr(self, axis.value)
            if condition is not None and not condition.is_empty:
                yield axis, condition

    @property
    def is_empty(self) -> bool:
        return next(self.conditions(), None) is None


@dataclass(frozen=True)
class Event:
    """Incoming build event as seen by the runner"""
    kind: str
    branch: Optional[str] = None
    ref: Optional[str] = None
    cron: Optional[str] = None
    targets: Tuple[str, ...] = ()
    status: str = "success"


@dataclass(frozen=True)
class Step:
    """Single executable unit of a pipeline"""
    name: str
    target: str
    image: str
    commands: Tuple[str, ...]
    privileged: bool = False
    environment: Mapping[str, EnvValue] = field(default_factory=dict, hash=False)
    volumes: Tuple[VolumeMount, ...] = ()
    depends_on: Tuple[str, ...] = ()
    when: Optional[Trigger] = None
    pull: PullPolicy = PullPolicy.ALWAYS

    def __post_init__(self):
        # read-only view over a private copy; steps are shared between variants
        object.__setattr__(self, 'environment', MappingProxyType(dict(self.environment)))


@dataclass(frozen=True)
class ServiceContainer:
    """Long-running container attached to a pipeline, e.g. the build daemon"""
    name: str
    image: str
    entrypoint: Tuple[str, ...] = ()
    command: Tuple[str, ...] = ()
    privileged: bool = False
    volumes: Tuple[VolumeMount, ...] = ()


@dataclass(frozen=True)
class CloudServer:
    """Compute settings for pipelines running on a hosted cloud runner"""
    image: str
    size: str
    region: str


@dataclass(frozen=True)
class Pipeline:
    """Named, ordered collection of steps plus activation metadata"""
    name: str
    kind: PipelineKind
    type: str
    steps: Tuple[Step, ...]
    services: Tuple[ServiceContainer, ...] = ()
    volumes: Tuple[Volume, ...] = ()
    depends_on: Tuple[str, ...] = ()
    trigger: Optional[Trigger] = None
    clone_disabled: bool = False
    clone_depth: Optional[int] = None
    server: Optional[CloudServer] = None
    token: Optional[SecretRef] = None
    final: bool = False

    def step_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def get_step(self, name: str) -> Optional[Step]:
        for step in self.steps:
            if step.name == name:
                return step
        return None
