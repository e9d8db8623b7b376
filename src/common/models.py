from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobType(str, Enum):
    CREATE_DEPLOYMENT = "CreateDeployment"
    UPDATE_DEPLOYMENT = "UpdateDeployment"
    DELETE_DEPLOYMENT = "DeleteDeployment"
    REPLACE_DEPLOYMENT = "ReplaceDeployment"


class RemediationType(str, Enum):
    SCALE_UP = "scale-up"
    SCALE_DOWN = "scale-down"
    SCALE_OUT = "scale-out"
    SCALE_IN = "scale-in"
    PATCH = "patch"
    REALLOCATE = "reallocate"
    REPLACE = "replace"
    SECURE = "secure"


class JobState(str, Enum):
    CREATED = "Created"
    PROGRESSING = "Progressing"
    FINISHED = "Finished"
    DEGRADED = "Degraded"


class RemediationStatus(str, Enum):
    PENDING = "Pending"
    APPLIED = "Applied"
    FAILED = "Failed"


class OrchestratorType(str, Enum):
    OCM = "ocm"
    NUVLA = "nuvla"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _blank_to_none(value: Any) -> Any:
    # the job manager serialises unset enums and times as "" or null
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


class Condition(_WireModel):
    type: str
    status: str = "True"
    reason: str = ""
    message: str = ""
    observed_generation: int = Field(default=0, alias="observedGeneration")
    last_transition_time: Optional[datetime] = Field(default_factory=_utcnow, alias="lastTransitionTime")

    @field_validator("last_transition_time", mode="before")
    @classmethod
    def blank_time(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @classmethod
    def now(
        cls,
        type: str,
        reason: str,
        message: str,
        *,
        status: str = "True",
        observed_generation: int = 0,
    ) -> "Condition":
        return cls(
            type=type,
            status=status,
            reason=reason,
            message=message,
            observed_generation=observed_generation,
        )


class Content(_WireModel):
    id: Optional[int] = None
    name: str = ""
    instruction_id: Optional[str] = None
    yaml: str = ""


class Instruction(_WireModel):
    id: Optional[str] = None
    component_name: str = Field(default="", alias="componentName")
    type: Optional[str] = None
    job_id: Optional[str] = None
    contents: List[Content] = Field(default_factory=list)


class Target(_WireModel):
    id: Optional[int] = None
    cluster_name: str = ""
    node_name: Optional[str] = None
    orchestrator: Optional[OrchestratorType] = None

    @field_validator("orchestrator", mode="before")
    @classmethod
    def blank_orchestrator(cls, value: Any) -> Any:
        return _blank_to_none(value)


class RemediationTarget(_WireModel):
    id: Optional[str] = None
    remediation_id: Optional[str] = None
    container: Optional[str] = None
    pod_uid: Optional[str] = None
    pod: Optional[str] = None
    node: Optional[str] = None
    namespace: Optional[str] = None
    command: Optional[str] = None


class Remediation(_WireModel):
    id: Optional[str] = None
    remediation_type: Optional[RemediationType] = Field(default=None, alias="remediationType")
    status: RemediationStatus = Field(default=RemediationStatus.PENDING, alias="remediationStatus")
    remediation_target: Optional[RemediationTarget] = Field(default=None, alias="remediationTarget")
    resource_id: Optional[str] = None

    @field_validator("remediation_type", mode="before")
    @classmethod
    def blank_type(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, value: Any) -> Any:
        return _blank_to_none(value) or RemediationStatus.PENDING


class Resource(_WireModel):
    resource_uid: Optional[str] = Field(default=None, alias="resource_uuid")
    job_id: Optional[str] = None
    resource_name: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)
    remediations: List[Remediation] = Field(default_factory=list)

    def append_conditions(self, conditions: Iterable[Condition]) -> None:
        # history is append-only; the tail is the authoritative entry
        self.conditions.extend(conditions)

    @property
    def latest_condition(self) -> Optional[Condition]:
        return self.conditions[-1] if self.conditions else None


class Job(_WireModel):
    id: str
    job_group_id: Optional[str] = None
    owner_id: Optional[str] = None
    type: str
    sub_type: Optional[str] = None
    state: JobState = JobState.CREATED
    target: Target = Field(default_factory=Target, alias="targets")
    orchestrator: Optional[OrchestratorType] = None
    instruction: Optional[Instruction] = None
    resource: Optional[Resource] = None
    namespace: str = ""

    @field_validator("type", "sub_type", mode="before")
    @classmethod
    def coerce_enum_value(cls, value: Any) -> Any:
        return value.value if isinstance(value, Enum) else value

    @field_validator("state", mode="before")
    @classmethod
    def default_state(cls, value: Any) -> Any:
        return _blank_to_none(value) or JobState.CREATED

    @field_validator("orchestrator", mode="before")
    @classmethod
    def blank_orchestrator(cls, value: Any) -> Any:
        return _blank_to_none(value)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ResourceStatus(_WireModel):
    id: str
    manifest_name: str
    node_target: str
    conditions: List[Condition] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "Condition",
    "Content",
    "Instruction",
    "Job",
    "JobState",
    "JobType",
    "OrchestratorType",
    "Remediation",
    "RemediationStatus",
    "RemediationTarget",
    "RemediationType",
    "Resource",
    "ResourceStatus",
    "Target",
]
