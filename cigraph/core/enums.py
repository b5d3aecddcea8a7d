from enum import Enum


class VolumeKind(str, Enum):
    EPHEMERAL_TEMP = "ephemeral-temp"
    HOST_PATH = "host-path"
    MEMORY_TEMP = "memory-temp"


class PipelineKind(str, Enum):
    STANDARD = "standard"
    HOSTED_CLOUD = "hosted-cloud"


class EventKind(str, Enum):
    """Build events a runner can deliver"""
    PUSH = "push"
    PULL_REQUEST = "pull_request"
    TAG = "tag"
    PROMOTE = "promote"
    ROLLBACK = "rollback"
    CRON = "cron"
    CUSTOM = "custom"


class PullPolicy(str, Enum):
    ALWAYS = "always"
    IF_NOT_EXISTS = "if-not-exists"
    NEVER = "never"


class OutputFormat(str, Enum):
    YAML = "yaml"
    JSON = "json"


class TriggerAxis(str, Enum):
    EVENT = "event"
    BRANCH = "branch"
    REF = "ref"
    CRON = "cron"
    TARGET = "target"
    STATUS = "status"
