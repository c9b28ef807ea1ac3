"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .brd_content import BRDContent
from .models import (
    ProjectStatus,
    OutputFormat,
    SourceType,
    SourceStatus,
    RequirementCategory,
    RequirementPriority,
    RequirementStatus,
    StakeholderInfluence,
    StakeholderSentiment,
    DecisionStatus,
    TimelineEventType,
    ConflictSeverity,
    ConflictStatus,
    DocumentType,
    DocumentStatus,
    RunStatus,
    AgentName,
    LogLevel,
    SharePermission,
    LLMProviderName,
    IntegrationStatus,
)


# Project Schemas

class ProjectCreate(BaseModel):
    """Schema for creating a project."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    output_format: OutputFormat = OutputFormat.BRD
    color: Optional[str] = Field(None, max_length=20)


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[ProjectStatus] = None
    output_format: Optional[OutputFormat] = None
    color: Optional[str] = Field(None, max_length=20)
    progress: Optional[int] = Field(None, ge=0, le=100)


class ProjectResponse(BaseModel):
    id: UUID
    name: str
    description: str
    status: ProjectStatus
    output_format: OutputFormat
    color: str
    progress: int
    source_count: int
    requirement_count: int
    stakeholder_count: int
    decision_count: int
    conflict_count: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ProjectListResponse(BaseModel):
    items: list[ProjectResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# Source Schemas

class SourceMetadata(BaseModel):
    author: Optional[str] = None
    date: Optional[str] = None
    channel: Optional[str] = None
    subject: Optional[str] = None
    participants: list[str] = Field(default_factory=list)
    word_count: Optional[int] = None
    integration_app_id: Optional[str] = None


class SourceCreate(BaseModel):
    """Schema for uploading a communication source."""

    name: str = Field(..., min_length=1, max_length=500)
    type: SourceType
    content: str = Field(..., min_length=1)
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)


class SourceResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    type: SourceType
    status: SourceStatus
    relevance_score: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="source_metadata")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True, populate_by_name=True)


# Extracted Intelligence Schemas

class RequirementResponse(BaseModel):
    id: UUID
    project_id: UUID
    requirement_id: str
    title: str
    description: str
    category: RequirementCategory
    priority: RequirementPriority
    status: RequirementStatus
    confidence_score: float
    source_id: Optional[UUID] = None
    source_excerpt: str
    extraction_reasoning: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    extracted_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class StakeholderResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    role: str
    department: Optional[str] = None
    influence: StakeholderInfluence
    sentiment: Optional[StakeholderSentiment] = None
    mention_count: int
    extracted_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class DecisionResponse(BaseModel):
    id: UUID
    project_id: UUID
    decision_id: str
    title: str
    description: str
    type: str
    status: DecisionStatus
    confidence_score: float
    impacted_requirement_ids: list[str] = Field(default_factory=list)
    extracted_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class TimelineEventResponse(BaseModel):
    id: UUID
    project_id: UUID
    title: str
    description: str
    date: Optional[str] = None
    type: TimelineEventType
    confidence_score: float

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class TraceabilityLinkResponse(BaseModel):
    id: UUID
    from_type: str
    from_id: str
    to_type: str
    to_id: str
    relationship: str = Field(validation_alias="relationship_type")
    strength: float

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class DocumentResponse(BaseModel):
    id: UUID
    project_id: UUID
    type: DocumentType
    version: int
    status: DocumentStatus
    content: BRDContent
    generated_from: dict[str, int] = Field(default_factory=dict)
    generated_at: datetime

    model_config = ConfigDict(use_enum_values=True)


# Conflict Schemas

class ConflictResponse(BaseModel):
    id: UUID
    project_id: UUID
    conflict_id: str
    title: str
    description: str
    severity: ConflictSeverity
    status: ConflictStatus
    requirement_ids: list[str] = Field(default_factory=list)
    resolution: Optional[str] = None
    detected_at: datetime
    resolved_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ConflictResolve(BaseModel):
    """Schema for settling a conflict. Resolution text must not be blank."""

    resolution: str = Field(..., min_length=1, max_length=10000)

    @field_validator("resolution")
    @classmethod
    def resolution_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Resolution text cannot be blank")
        return value.strip()


class ConflictStatusUpdate(BaseModel):
    status: ConflictStatus


class ConflictStats(BaseModel):
    total: int
    resolved: int
    critical: int
    accuracy: int


class ConflictListResponse(BaseModel):
    items: list[ConflictResponse]
    stats: ConflictStats


# Pipeline Schemas

class PipelineStartRequest(BaseModel):
    """Schema for starting an extraction run.

    api_key is optional: when omitted the stored key for the provider is used.
    """

    provider: Optional[LLMProviderName] = None
    api_key: Optional[str] = Field(None, max_length=500)
    regenerate: bool = False


class RunHandle(BaseModel):
    run_id: UUID
    project_id: UUID
    status: RunStatus
    provider: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class ExtractionRunResponse(BaseModel):
    id: UUID
    project_id: UUID
    status: RunStatus
    provider: Optional[str] = None
    regenerate: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None
    sources_processed: int
    requirements_found: int
    stakeholders_found: int
    decisions_found: int
    conflicts_found: int
    error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class AgentLogResponse(BaseModel):
    id: UUID
    extraction_run_id: UUID
    sequence: int
    agent: AgentName
    level: LogLevel
    message: str
    detail: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class PipelineRunningResponse(BaseModel):
    is_running: bool
    run_id: Optional[UUID] = None
    status: Optional[RunStatus] = None

    model_config = ConfigDict(use_enum_values=True)


class CancelResponse(BaseModel):
    success: bool
    cancelled_count: int


class ClearHistoryRequest(BaseModel):
    keep_latest: int = Field(1, ge=0)


class ClearHistoryResponse(BaseModel):
    deleted: int


class PreflightCheck(BaseModel):
    key: str
    label: str
    status: str  # pass | fail
    message: str


class PreflightResponse(BaseModel):
    checks: list[PreflightCheck]
    passed: int
    failed: int


# Sharing Schemas

class SharedLinkCreate(BaseModel):
    permission: SharePermission = SharePermission.VIEW
    password: Optional[str] = Field(None, max_length=255)
    expires_in_days: Optional[float] = Field(None, gt=0)


class SharedLinkCreateResponse(BaseModel):
    id: UUID
    token: str


class SharedLinkResponse(BaseModel):
    id: UUID
    project_id: UUID
    token: str
    permission: SharePermission
    has_password: bool
    expires_at: Optional[datetime] = None
    is_active: bool
    created_at: datetime
    access_count: int
    last_accessed_at: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


class SharedLinkPermissionUpdate(BaseModel):
    permission: SharePermission


class SharedSourceMeta(BaseModel):
    id: UUID
    name: str
    type: SourceType
    relevance_score: Optional[float] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(use_enum_values=True)


class SharedProjectSummary(BaseModel):
    name: str
    description: str


class SharedSnapshotResponse(BaseModel):
    """Result of a token lookup. error is set (and nothing else) on failure."""

    error: Optional[str] = None
    permission: Optional[SharePermission] = None
    has_password: bool = False
    project: Optional[SharedProjectSummary] = None
    brd_content: Optional[BRDContent] = None
    version: int = 1
    requirements: list[RequirementResponse] = Field(default_factory=list)
    stakeholders: list[StakeholderResponse] = Field(default_factory=list)
    conflicts: list[ConflictResponse] = Field(default_factory=list)
    sources: list[SharedSourceMeta] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)


# API Key Schemas

class ApiKeyCreate(BaseModel):
    provider: LLMProviderName
    key: str = Field(..., min_length=1, max_length=500)


class ApiKeyResponse(BaseModel):
    id: UUID
    provider: LLMProviderName
    key_preview: str
    is_active: bool
    created_at: datetime
    last_used: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Integration Schemas

class IntegrationCreate(BaseModel):
    app_id: str = Field(..., min_length=1, max_length=50)
    label: Optional[str] = Field(None, max_length=255)
    project_id: Optional[UUID] = None
    status: IntegrationStatus = IntegrationStatus.DISCONNECTED


class IntegrationStatusUpdate(BaseModel):
    status: IntegrationStatus


class IntegrationResponse(BaseModel):
    id: UUID
    app_id: str
    label: Optional[str] = None
    status: IntegrationStatus
    project_id: Optional[UUID] = None
    items_synced: int
    last_sync_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)
