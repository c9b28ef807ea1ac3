"""SQLAlchemy database models."""
from datetime import datetime
from uuid import uuid4
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    UniqueConstraint,
    JSON,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


# =============================================================================
# Project & Source Enums
# =============================================================================


class ProjectStatus(str, enum.Enum):
    """Project status enum, driven by the extraction pipeline."""

    DRAFT = "draft"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    GENERATING = "generating"
    ACTIVE = "active"
    COMPLETED = "completed"


class OutputFormat(str, enum.Enum):
    """Document family the project should produce."""

    BRD = "brd"
    PRD = "prd"
    BOTH = "both"


class SourceType(str, enum.Enum):
    """Kind of ingested communication."""

    EMAIL = "email"
    MEETING_TRANSCRIPT = "meeting_transcript"
    CHAT_LOG = "chat_log"
    DOCUMENT = "document"
    UPLOADED_FILE = "uploaded_file"


class SourceStatus(str, enum.Enum):
    """Processing status of a single source."""

    UPLOADED = "uploaded"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    FAILED = "failed"


# =============================================================================
# Extracted Intelligence Enums
# =============================================================================


class RequirementCategory(str, enum.Enum):
    FUNCTIONAL = "functional"
    NON_FUNCTIONAL = "non_functional"
    BUSINESS = "business"
    TECHNICAL = "technical"
    SECURITY = "security"
    PERFORMANCE = "performance"
    COMPLIANCE = "compliance"
    INTEGRATION = "integration"


class RequirementPriority(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RequirementStatus(str, enum.Enum):
    DISCOVERED = "discovered"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    DEFERRED = "deferred"


class StakeholderInfluence(str, enum.Enum):
    DECISION_MAKER = "decision_maker"
    INFLUENCER = "influencer"
    CONTRIBUTOR = "contributor"
    OBSERVER = "observer"


class StakeholderSentiment(str, enum.Enum):
    SUPPORTIVE = "supportive"
    NEUTRAL = "neutral"
    RESISTANT = "resistant"
    UNKNOWN = "unknown"


class DecisionStatus(str, enum.Enum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEFERRED = "deferred"


class TimelineEventType(str, enum.Enum):
    MILESTONE = "milestone"
    DEADLINE = "deadline"
    DECISION = "decision"
    APPROVAL = "approval"
    DEPENDENCY = "dependency"


class ConflictSeverity(str, enum.Enum):
    """Conflict severity. Ordering lives in conflict_policy.SEVERITY_ORDER."""

    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class ConflictStatus(str, enum.Enum):
    """Conflict lifecycle: detected -> reviewing -> resolved | accepted."""

    DETECTED = "detected"
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    ACCEPTED = "accepted"


class DocumentType(str, enum.Enum):
    BRD = "brd"
    PRD = "prd"
    TRACEABILITY_MATRIX = "traceability_matrix"


class DocumentStatus(str, enum.Enum):
    GENERATING = "generating"
    READY = "ready"
    OUTDATED = "outdated"


# =============================================================================
# Pipeline Enums
# =============================================================================


class RunStatus(str, enum.Enum):
    """Extraction run status.

    Active stages run in declaration order, one agent per stage. Terminal
    statuses are completed, failed and cancelled. Transition rules live in
    pipeline_state_machine.
    """

    QUEUED = "queued"
    INGESTING = "ingesting"
    CLASSIFYING = "classifying"
    EXTRACTING_REQUIREMENTS = "extracting_requirements"
    EXTRACTING_STAKEHOLDERS = "extracting_stakeholders"
    EXTRACTING_DECISIONS = "extracting_decisions"
    EXTRACTING_TIMELINE = "extracting_timeline"
    DETECTING_CONFLICTS = "detecting_conflicts"
    BUILDING_TRACEABILITY = "building_traceability"
    GENERATING_DOCUMENTS = "generating_documents"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AgentName(str, enum.Enum):
    """Originating agent of a pipeline log entry."""

    INGESTION = "ingestion_agent"
    CLASSIFICATION = "classification_agent"
    REQUIREMENT = "requirement_agent"
    STAKEHOLDER = "stakeholder_agent"
    DECISION = "decision_agent"
    TIMELINE = "timeline_agent"
    CONFLICT = "conflict_agent"
    TRACEABILITY = "traceability_agent"
    DOCUMENT = "document_agent"
    ORCHESTRATOR = "orchestrator"
    INTEGRATION = "integration_agent"


class LogLevel(str, enum.Enum):
    INFO = "info"
    PROCESSING = "processing"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Sharing, Keys & Integrations Enums
# =============================================================================


class SharePermission(str, enum.Enum):
    """Share-link permission, ordered view < comment < edit."""

    VIEW = "view"
    COMMENT = "comment"
    EDIT = "edit"


class LLMProviderName(str, enum.Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    CUSTOM = "custom"


class IntegrationStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    PAUSED = "paused"


# =============================================================================
# Models
# =============================================================================


class Project(Base):
    """
    Project model: the unit a pipeline run extracts intelligence for.

    Counts are denormalised for dashboards and refreshed by the pipeline.
    """

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(
        Enum(ProjectStatus, values_callable=_enum_values),
        nullable=False,
        default=ProjectStatus.DRAFT,
        index=True,
    )
    output_format = Column(
        Enum(OutputFormat, values_callable=_enum_values),
        nullable=False,
        default=OutputFormat.BRD,
    )
    color = Column(String(20), nullable=False, default="#6B7AE8")
    progress = Column(Integer, nullable=False, default=0)

    source_count = Column(Integer, nullable=False, default=0)
    requirement_count = Column(Integer, nullable=False, default=0)
    stakeholder_count = Column(Integer, nullable=False, default=0)
    decision_count = Column(Integer, nullable=False, default=0)
    conflict_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    sources = relationship("Source", back_populates="project", cascade="all, delete-orphan")
    requirements = relationship("Requirement", back_populates="project", cascade="all, delete-orphan")
    stakeholders = relationship("Stakeholder", back_populates="project", cascade="all, delete-orphan")
    decisions = relationship("Decision", back_populates="project", cascade="all, delete-orphan")
    timeline_events = relationship("TimelineEvent", back_populates="project", cascade="all, delete-orphan")
    conflicts = relationship("Conflict", back_populates="project", cascade="all, delete-orphan")
    traceability_links = relationship("TraceabilityLink", back_populates="project", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="project", cascade="all, delete-orphan")
    extraction_runs = relationship("ExtractionRun", back_populates="project", cascade="all, delete-orphan")
    shared_links = relationship("SharedLink", back_populates="project", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="valid_project_progress"),
    )

    def __repr__(self) -> str:
        return f"<Project {self.name} ({self.status.value if self.status else None})>"


class Source(Base):
    """An ingested communication (email, transcript, chat log, document)."""

    __tablename__ = "sources"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    type = Column(Enum(SourceType, values_callable=_enum_values), nullable=False)
    content = Column(Text, nullable=False)
    # author, date, channel, subject, participants, word_count, integration_app_id
    source_metadata = Column("metadata", JSON, nullable=False, default=dict)
    status = Column(
        Enum(SourceStatus, values_callable=_enum_values),
        nullable=False,
        default=SourceStatus.UPLOADED,
        index=True,
    )
    relevance_score = Column(Float)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="sources")

    def __repr__(self) -> str:
        return f"<Source {self.name} ({self.type.value if self.type else None})>"


class Requirement(Base):
    """A requirement extracted from a source by the requirement agent."""

    __tablename__ = "requirements"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    requirement_id = Column(String(20), nullable=False)  # e.g. REQ-001
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(Enum(RequirementCategory, values_callable=_enum_values), nullable=False, index=True)
    priority = Column(Enum(RequirementPriority, values_callable=_enum_values), nullable=False, index=True)
    status = Column(
        Enum(RequirementStatus, values_callable=_enum_values),
        nullable=False,
        default=RequirementStatus.DISCOVERED,
    )
    confidence_score = Column(Float, nullable=False, default=0.5)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="SET NULL"), index=True)
    source_excerpt = Column(Text, nullable=False, default="")
    extraction_reasoning = Column(Text)
    tags = Column(JSON, nullable=False, default=list)
    extracted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="requirements")

    __table_args__ = (
        UniqueConstraint("project_id", "requirement_id", name="unique_project_requirement_id"),
        CheckConstraint("confidence_score >= 0 AND confidence_score <= 1", name="valid_requirement_confidence"),
    )

    def __repr__(self) -> str:
        return f"<Requirement {self.requirement_id}: {self.title}>"


class Stakeholder(Base):
    """A person or group identified across sources."""

    __tablename__ = "stakeholders"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(255), nullable=False, default="")
    department = Column(String(255))
    influence = Column(
        Enum(StakeholderInfluence, values_callable=_enum_values),
        nullable=False,
        default=StakeholderInfluence.CONTRIBUTOR,
    )
    sentiment = Column(Enum(StakeholderSentiment, values_callable=_enum_values))
    mention_count = Column(Integer, nullable=False, default=1)
    source_ids = Column(JSON, nullable=False, default=list)
    extracted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="stakeholders")


class Decision(Base):
    """A decision recorded in the communications."""

    __tablename__ = "decisions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    decision_id = Column(String(20), nullable=False)  # e.g. DEC-001
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    type = Column(String(100), nullable=False, default="general")  # free-form, the model picks categories
    status = Column(
        Enum(DecisionStatus, values_callable=_enum_values),
        nullable=False,
        default=DecisionStatus.PROPOSED,
    )
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="SET NULL"))
    source_excerpt = Column(Text, nullable=False, default="")
    confidence_score = Column(Float, nullable=False, default=0.5)
    impacted_requirement_ids = Column(JSON, nullable=False, default=list)
    extracted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="decisions")


class TimelineEvent(Base):
    """A milestone, deadline or other dated event."""

    __tablename__ = "timeline_events"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    date = Column(String(50))
    type = Column(Enum(TimelineEventType, values_callable=_enum_values), nullable=False)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="SET NULL"))
    confidence_score = Column(Float, nullable=False, default=0.5)
    extracted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="timeline_events")


class Conflict(Base):
    """
    A contradiction between two or more requirements.

    resolution is populated if and only if status is resolved or accepted.
    """

    __tablename__ = "conflicts"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    conflict_id = Column(String(20), nullable=False)  # e.g. CON-001
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    severity = Column(Enum(ConflictSeverity, values_callable=_enum_values), nullable=False, index=True)
    status = Column(
        Enum(ConflictStatus, values_callable=_enum_values),
        nullable=False,
        default=ConflictStatus.DETECTED,
        index=True,
    )
    requirement_ids = Column(JSON, nullable=False, default=list)  # Requirement UUIDs as strings
    resolution = Column(Text)
    detected_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    resolved_at = Column(DateTime)

    project = relationship("Project", back_populates="conflicts")

    def __repr__(self) -> str:
        return f"<Conflict {self.conflict_id} {self.severity.value if self.severity else None}>"


class TraceabilityLink(Base):
    """Edge in the source/requirement/stakeholder/decision graph."""

    __tablename__ = "traceability_links"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    from_type = Column(String(20), nullable=False)
    from_id = Column(String(64), nullable=False, index=True)
    to_type = Column(String(20), nullable=False)
    to_id = Column(String(64), nullable=False, index=True)
    relationship_type = Column("relationship", String(50), nullable=False)  # extracted_from, proposed_by, ...
    strength = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="traceability_links")


class Document(Base):
    """A generated document version (BRD content is stored as JSON)."""

    __tablename__ = "documents"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(DocumentType, values_callable=_enum_values), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    content = Column(JSON, nullable=False, default=dict)
    status = Column(
        Enum(DocumentStatus, values_callable=_enum_values),
        nullable=False,
        default=DocumentStatus.READY,
    )
    generated_from = Column(JSON, nullable=False, default=dict)
    generated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("project_id", "type", "version", name="unique_document_version"),
    )


class ExtractionRun(Base):
    """
    One pipeline execution for a project.

    Count fields are only meaningful once status is completed. At most one
    non-terminal run per project; enforced by crud.start_run.
    """

    __tablename__ = "extraction_runs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(
        Enum(RunStatus, values_callable=_enum_values),
        nullable=False,
        default=RunStatus.QUEUED,
        index=True,
    )
    provider = Column(String(20))
    regenerate = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime)

    sources_processed = Column(Integer, nullable=False, default=0)
    requirements_found = Column(Integer, nullable=False, default=0)
    stakeholders_found = Column(Integer, nullable=False, default=0)
    decisions_found = Column(Integer, nullable=False, default=0)
    conflicts_found = Column(Integer, nullable=False, default=0)
    error = Column(Text)

    project = relationship("Project", back_populates="extraction_runs")
    logs = relationship(
        "AgentLog",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="AgentLog.sequence",
    )

    def __repr__(self) -> str:
        return f"<ExtractionRun {self.id} ({self.status.value if self.status else None})>"


class AgentLog(Base):
    """Append-only log line of a run. Ordered by sequence (insertion order)."""

    __tablename__ = "agent_logs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    extraction_run_id = Column(Uuid, ForeignKey("extraction_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    agent = Column(Enum(AgentName, values_callable=_enum_values), nullable=False)
    level = Column(Enum(LogLevel, values_callable=_enum_values), nullable=False)
    message = Column(Text, nullable=False)
    detail = Column(Text)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    run = relationship("ExtractionRun", back_populates="logs")

    __table_args__ = (
        UniqueConstraint("extraction_run_id", "sequence", name="unique_run_log_sequence"),
    )


class SharedLink(Base):
    """Token granting unauthenticated, permission-scoped access to a BRD."""

    __tablename__ = "shared_links"

    id = Column(Uuid, primary_key=True, default=uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(64), nullable=False, unique=True, index=True)
    permission = Column(
        Enum(SharePermission, values_callable=_enum_values),
        nullable=False,
        default=SharePermission.VIEW,
    )
    password = Column(String(255))
    expires_at = Column(DateTime)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    access_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime)

    project = relationship("Project", back_populates="shared_links")


class ApiKey(Base):
    """Stored LLM provider key. The raw key never leaves the service."""

    __tablename__ = "api_keys"

    id = Column(Uuid, primary_key=True, default=uuid4)
    provider = Column(Enum(LLMProviderName, values_callable=_enum_values), nullable=False, index=True)
    key_encoded = Column(Text, nullable=False)
    key_preview = Column(String(32), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_used = Column(DateTime)


class Integration(Base):
    """Connected third-party app feeding sources into projects."""

    __tablename__ = "integrations"

    id = Column(Uuid, primary_key=True, default=uuid4)
    app_id = Column(String(50), nullable=False, index=True)  # slack, jira, notion, ...
    label = Column(String(255))
    status = Column(
        Enum(IntegrationStatus, values_callable=_enum_values),
        nullable=False,
        default=IntegrationStatus.DISCONNECTED,
        index=True,
    )
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="SET NULL"), index=True)
    items_synced = Column(Integer, nullable=False, default=0)
    last_sync_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
