# src/models/deployment.py
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union
import json


# Ordered function names/ARNs to roll a package out to
TargetList = Tuple[str, ...]


class Status(str, Enum):
    SUCCESS = "Success"
    FAILURE = "Failure"


# Location of one deployment package version in S3
@dataclass(frozen=True)
class ArtifactReference:
    bucket_name: str
    object_key: str
    object_version: Optional[str] = None  # S3 VersionId, versioned buckets only

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket_name}/{self.object_key}"

    def code_location(self) -> Dict[str, str]:
        """Kwargs for lambda:UpdateFunctionCode pointing at this package."""
        loc = {"S3Bucket": self.bucket_name, "S3Key": self.object_key}
        if self.object_version:
            loc["S3ObjectVersion"] = self.object_version
        return loc


# Result of updating + publishing one target
@dataclass(frozen=True)
class UpdateOutcome:
    target: str
    status: Status
    detail: Optional[str] = None
    version: Optional[str] = None      # published version number
    code_sha256: Optional[str] = None  # CodeSha256 reported by Lambda

    @property
    def ok(self) -> bool:
        return self.status is Status.SUCCESS


# Aggregate of one dispatcher run
@dataclass(frozen=True)
class RunResult:
    outcomes: Tuple[UpdateOutcome, ...] = field(default_factory=tuple)

    @property
    def overall(self) -> Status:
        if all(o.ok for o in self.outcomes):
            return Status.SUCCESS
        return Status.FAILURE

    @property
    def succeeded(self) -> Tuple[UpdateOutcome, ...]:
        return tuple(o for o in self.outcomes if o.ok)

    @property
    def failed(self) -> Tuple[UpdateOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.value,
            "outcomes": [to_dict(o) for o in self.outcomes],
        }


# ---- Terminal signals sent back to CodePipeline ----
@dataclass(frozen=True)
class JobSuccessResult:
    message: str

    @property
    def status(self) -> Status:
        return Status.SUCCESS


@dataclass(frozen=True)
class JobFailureResult:
    message: str

    @property
    def status(self) -> Status:
        return Status.FAILURE


TerminalSignal = Union[JobSuccessResult, JobFailureResult]


# ---- Helpers ----
def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


# Convert a dataclass object into a JSON-friendly dict
def to_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, RunResult):
        return obj.to_dict()
    return _plain(asdict(obj))


# Convert a dataclass object into a JSON string
def to_json(obj: Any, pretty: bool = False) -> str:
    if pretty:
        return json.dumps(to_dict(obj), ensure_ascii=False, indent=2)
    return json.dumps(to_dict(obj), ensure_ascii=False, separators=(",", ":"))


__all__ = [
    "TargetList", "Status", "ArtifactReference", "UpdateOutcome", "RunResult",
    "JobSuccessResult", "JobFailureResult", "TerminalSignal", "to_dict", "to_json",
]
