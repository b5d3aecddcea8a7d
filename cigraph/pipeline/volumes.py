import logging
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.enums import VolumeKind
from ..core.errors import DuplicateName
from ..core.models import Volume, VolumeMount


class VolumeRegistry:
    """Canonical set of shared volumes.

    Steps and pipelines that ask for the standard set get identical names and
    mount paths, which is what lets independent steps share a build cache or
    the build daemon socket. The registry is written during initialization and
    frozen afterwards.
    """

    def __init__(self, volumes: Iterable[Volume] = (), logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._volumes: List[Volume] = []
        self._by_name: Dict[str, Volume] = {}
        self._by_mount_path: Dict[str, Volume] = {}
        self._frozen = False
        for volume in volumes:
            self.register(volume)

    def register(self, volume: Volume) -> Volume:
        """Register a volume; names and mount paths must be unique"""
        if self._frozen:
            raise RuntimeError(f"Volume registry is frozen; cannot register '{volume.name}'")
        if volume.name in self._by_name:
            raise DuplicateName("volume", volume.name)
        if volume.mount_path in self._by_mount_path:
            owner = self._by_mount_path[volume.mount_path].name
            raise DuplicateName("volume mount path", f"{volume.mount_path} (already used by '{owner}')")

        self._volumes.append(volume)
        self._by_name[volume.name] = volume
        self._by_mount_path[volume.mount_path] = volume
        self.logger.debug(f"Registered volume '{volume.name}' at {volume.mount_path} ({volume.kind.value})")
        return volume

    def freeze(self) -> 'VolumeRegistry':
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Optional[Volume]:
        return self._by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._volumes)

    def names(self) -> Tuple[str, ...]:
        return tuple(volume.name for volume in self._volumes)

    def standard(self) -> Tuple[Volume, ...]:
        return tuple(volume for volume in self._volumes if volume.standard)

    def for_step(self) -> Tuple[VolumeMount, ...]:
        """Mount list for the standard set"""
        return tuple(VolumeMount(name=volume.name, path=volume.mount_path) for volume in self.standard())

    def for_pipeline(self) -> Tuple[Volume, ...]:
        """Pipeline-scope declarations for the standard set"""
        return self.standard()

    def mounts(self, extras: Iterable[str] = ()) -> Tuple[VolumeMount, ...]:
        """Standard set plus step-specific extras.

        Extras already covered by the standard set (by name or mount path) are
        skipped. Unregistered extras are kept with an empty path so the graph
        validator can report them.
        """
        result = list(self.for_step())
        seen_names = {mount.name for mount in result}
        seen_paths = {mount.path for mount in result}
        for name in extras:
            if name in seen_names:
                continue
            volume = self._by_name.get(name)
            if volume is None:
                result.append(VolumeMount(name=name, path=""))
                seen_names.add(name)
                continue
            if volume.mount_path in seen_paths:
                continue
            result.append(VolumeMount(name=volume.name, path=volume.mount_path))
            seen_names.add(volume.name)
            seen_paths.add(volume.mount_path)
        return tuple(result)

    def declarations_for(self, mounts: Iterable[VolumeMount]) -> Tuple[Volume, ...]:
        """Pipeline declarations covering the standard set and every registered mount given"""
        declared = list(self.for_pipeline())
        seen = {volume.name for volume in declared}
        for mount in mounts:
            volume = self._by_name.get(mount.name)
            if volume is not None and volume.name not in seen:
                declared.append(volume)
                seen.add(volume.name)
        return tuple(declared)


def default_volumes() -> Tuple[Volume, ...]:
    """Volumes every build pipeline shares: the outer daemon socket, buildx state, and scratch space"""
    return (
        Volume(name="outer-docker-socket", kind=VolumeKind.HOST_PATH,
               mount_path="/var/outer-run", host_path="/var/ci-docker"),
        Volume(name="docker-socket", kind=VolumeKind.EPHEMERAL_TEMP, mount_path="/var/run"),
        Volume(name="buildx", kind=VolumeKind.EPHEMERAL_TEMP, mount_path="/root/.docker/buildx"),
        Volume(name="ssh", kind=VolumeKind.EPHEMERAL_TEMP, mount_path="/root/.ssh"),
        Volume(name="dev", kind=VolumeKind.HOST_PATH, mount_path="/dev", host_path="/dev"),
        Volume(name="tmp", kind=VolumeKind.MEMORY_TEMP, mount_path="/tmp"),
    )
