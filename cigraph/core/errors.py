"""
Errors raised while building and validating a manifest.

Every error is detected at generation time. Generation is deterministic, so
none of them can be recovered by retrying: the source definition has to be fixed.
"""
from typing import List, Optional, Sequence


class ManifestError(ValueError):
    """Base class for manifest build and validation errors"""

    def __init__(self, message: str, pipeline: Optional[str] = None):
        self.pipeline = pipeline
        super().__init__(message)


class DuplicateName(ManifestError):
    """Two entities of the same kind share a name in the same scope"""

    def __init__(self, entity: str, name: str, pipeline: Optional[str] = None):
        self.entity = entity
        self.name = name
        scope = f" in pipeline '{pipeline}'" if pipeline else ""
        super().__init__(f"Duplicate {entity} name '{name}'{scope}", pipeline)


class UnresolvedDependency(ManifestError):
    """A dependency name has no matching sibling step or pipeline"""

    def __init__(self, owner: str, dependency: str, pipeline: Optional[str] = None):
        self.owner = owner
        self.dependency = dependency
        if pipeline:
            message = f"Step '{owner}' in pipeline '{pipeline}' depends on unknown step '{dependency}'"
        else:
            message = f"Pipeline '{owner}' depends on unknown pipeline '{dependency}'"
        super().__init__(message, pipeline)


class CycleDetected(ManifestError):
    """A dependency graph contains a cycle"""

    def __init__(self, cycle: Sequence[str], pipeline: Optional[str] = None):
        self.cycle: List[str] = list(cycle)
        path = " -> ".join(self.cycle + self.cycle[:1])
        if pipeline:
            message = f"Step dependency cycle in pipeline '{pipeline}': {path}"
        else:
            message = f"Pipeline dependency cycle: {path}"
        super().__init__(message, pipeline)


class UnknownVolume(ManifestError):
    """A step or service mounts a volume absent from the registry, or at the wrong path"""

    def __init__(self, step: str, volume: str, pipeline: Optional[str] = None, detail: Optional[str] = None):
        self.step = step
        self.volume = volume
        where = f"'{step}'" + (f" in pipeline '{pipeline}'" if pipeline else "")
        message = detail or f"{where} mounts unregistered volume '{volume}'"
        super().__init__(message, pipeline)


class InvalidTrigger(ManifestError):
    """A trigger combines axes in a way the runner cannot honor"""

    def __init__(self, reason: str, owner: Optional[str] = None, pipeline: Optional[str] = None):
        self.reason = reason
        self.owner = owner
        prefix = f"Invalid trigger on '{owner}'" if owner else "Invalid trigger"
        super().__init__(f"{prefix}: {reason}", pipeline)


class UnknownSecret(ManifestError):
    """An environment value references an undeclared secret"""

    def __init__(self, step: str, secret: str, pipeline: Optional[str] = None):
        self.step = step
        self.secret = secret
        super().__init__(
            f"'{step}' in pipeline '{pipeline}' references undeclared secret '{secret}'", pipeline
        )


class ValidationFailed(ManifestError):
    """Aggregate of every violation found in a validation run"""

    def __init__(self, errors: Sequence[ManifestError]):
        self.errors: List[ManifestError] = list(errors)
        lines = "\n".join(f"  - {error}" for error in self.errors)
        super().__init__(f"Manifest validation failed with {len(self.errors)} error(s):\n{lines}")
