"""CRUD operations for projects, sources, pipeline runs, conflicts and sharing."""
import logging
import random
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, schemas
from .api_keys import resolve_provider_and_key
from .brd_content import normalize_brd
from .conflict_policy import sort_conflicts, validate_resolution, SETTLED_STATUSES
from .pipeline_state_machine import (
    ACTIVE_STATUSES,
    STAGE_PROGRESS,
    TERMINAL_STATUSES,
    validate_transition,
)
from .sharing import ShareLookupError, check_link, compute_expiry, generate_token

logger = logging.getLogger("tracelayer-core.crud")

PROJECT_COLORS = ["#6B7AE8", "#66BB8C", "#E8A838", "#D4738C", "#8B5CF6", "#F97316", "#06B6D4"]

# How many recent runs are inspected for an active run
ACTIVE_RUN_WINDOW = 5
RUN_HISTORY_LIMIT = 20
PROJECT_LOG_LIMIT = 200
RECENT_ACTIVITY_LIMIT = 30
ALL_RUNS_LIMIT = 10


class PipelineAlreadyRunningError(RuntimeError):
    """Raised when a run is started while another one is active."""

    def __init__(self, message: str, run: models.ExtractionRun):
        super().__init__(message)
        self.run = run


# =============================================================================
# Projects
# =============================================================================


def create_project(
    db: Session,
    name: str,
    description: str = "",
    output_format: models.OutputFormat = models.OutputFormat.BRD,
    color: Optional[str] = None,
) -> models.Project:
    """Create a new project in draft status."""
    project = models.Project(
        name=name,
        description=description,
        output_format=output_format,
        color=color or random.choice(PROJECT_COLORS),
        status=models.ProjectStatus.DRAFT,
        progress=0,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info(f"Created project '{project.name}' (ID: {project.id})")
    return project


def get_project(db: Session, project_id: UUID) -> Optional[models.Project]:
    return db.query(models.Project).filter(models.Project.id == project_id).first()


def get_projects(db: Session, skip: int = 0, limit: int = 50) -> tuple[list[models.Project], int]:
    """List projects, newest first. Returns (items, total)."""
    query = db.query(models.Project)
    total = query.count()
    items = query.order_by(models.Project.created_at.desc()).offset(skip).limit(limit).all()
    return items, total


def update_project(db: Session, project_id: UUID, **fields) -> Optional[models.Project]:
    """Update the given project fields, ignoring None values."""
    project = get_project(db, project_id)
    if not project:
        return None
    for name, value in fields.items():
        if value is not None:
            setattr(project, name, value)
    project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, project_id: UUID) -> bool:
    """Delete a project and everything extracted for it (cascading delete)."""
    project = get_project(db, project_id)
    if not project:
        return False
    db.delete(project)
    db.commit()
    logger.info(f"Deleted project {project_id}")
    return True


def refresh_counts(db: Session, project_id: UUID) -> Optional[models.Project]:
    """Recompute the denormalised counters of a project."""
    project = get_project(db, project_id)
    if not project:
        return None

    def _count(model) -> int:
        return db.query(func.count(model.id)).filter(model.project_id == project_id).scalar() or 0

    project.source_count = _count(models.Source)
    project.requirement_count = _count(models.Requirement)
    project.stakeholder_count = _count(models.Stakeholder)
    project.decision_count = _count(models.Decision)
    project.conflict_count = _count(models.Conflict)
    project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(project)
    return project


def clear_extraction_data(db: Session, project_id: UUID) -> dict[str, int]:
    """
    Delete everything the pipeline extracted for a project.

    Sources, runs and logs are kept. Returns per-entity deletion counts.
    """
    deleted: dict[str, int] = {}
    for key, model in [
        ("requirements", models.Requirement),
        ("stakeholders", models.Stakeholder),
        ("decisions", models.Decision),
        ("timeline_events", models.TimelineEvent),
        ("conflicts", models.Conflict),
        ("traceability_links", models.TraceabilityLink),
        ("documents", models.Document),
    ]:
        deleted[key] = (
            db.query(model)
            .filter(model.project_id == project_id)
            .delete(synchronize_session=False)
        )

    db.query(models.Source).filter(models.Source.project_id == project_id).update(
        {models.Source.status: models.SourceStatus.UPLOADED, models.Source.relevance_score: None},
        synchronize_session=False,
    )
    db.commit()
    refresh_counts(db, project_id)
    logger.info(f"Cleared extraction data for project {project_id}: {deleted}")
    return deleted


# =============================================================================
# Sources
# =============================================================================


def count_words(text: str) -> int:
    return len(text.split())


def add_source(db: Session, project_id: UUID, data: schemas.SourceCreate) -> models.Source:
    """Store a source; word count is computed when not supplied."""
    metadata = data.metadata.model_dump(exclude_none=True)
    if metadata.get("word_count") is None:
        metadata["word_count"] = count_words(data.content)

    source = models.Source(
        project_id=project_id,
        name=data.name,
        type=data.type,
        content=data.content,
        source_metadata=metadata,
        status=models.SourceStatus.UPLOADED,
    )
    db.add(source)
    project = get_project(db, project_id)
    if project:
        project.source_count = (project.source_count or 0) + 1
        project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(source)
    logger.info(f"Added source '{source.name}' ({source.type.value}, {metadata['word_count']} words) to project {project_id}")
    return source


def get_source(db: Session, source_id: UUID) -> Optional[models.Source]:
    return db.query(models.Source).filter(models.Source.id == source_id).first()


def list_sources(db: Session, project_id: UUID) -> list[models.Source]:
    return (
        db.query(models.Source)
        .filter(models.Source.project_id == project_id)
        .order_by(models.Source.created_at)
        .all()
    )


def delete_source(db: Session, source_id: UUID) -> bool:
    source = get_source(db, source_id)
    if not source:
        return False
    project = get_project(db, source.project_id)
    db.delete(source)
    if project:
        project.source_count = max(0, (project.source_count or 0) - 1)
        project.updated_at = datetime.utcnow()
    db.commit()
    return True


def update_source_status(
    db: Session,
    source: models.Source,
    status: models.SourceStatus,
    relevance_score: Optional[float] = None,
) -> models.Source:
    source.status = status
    if relevance_score is not None:
        source.relevance_score = relevance_score
    db.commit()
    return source


# =============================================================================
# Extracted intelligence
# =============================================================================


def list_requirements(db: Session, project_id: UUID) -> list[models.Requirement]:
    return (
        db.query(models.Requirement)
        .filter(models.Requirement.project_id == project_id)
        .order_by(models.Requirement.requirement_id)
        .all()
    )


def list_stakeholders(db: Session, project_id: UUID) -> list[models.Stakeholder]:
    return (
        db.query(models.Stakeholder)
        .filter(models.Stakeholder.project_id == project_id)
        .order_by(models.Stakeholder.mention_count.desc(), models.Stakeholder.name)
        .all()
    )


def list_decisions(db: Session, project_id: UUID) -> list[models.Decision]:
    return (
        db.query(models.Decision)
        .filter(models.Decision.project_id == project_id)
        .order_by(models.Decision.decision_id)
        .all()
    )


def list_timeline_events(db: Session, project_id: UUID) -> list[models.TimelineEvent]:
    return (
        db.query(models.TimelineEvent)
        .filter(models.TimelineEvent.project_id == project_id)
        .order_by(models.TimelineEvent.extracted_at)
        .all()
    )


def list_traceability_links(db: Session, project_id: UUID) -> list[models.TraceabilityLink]:
    return (
        db.query(models.TraceabilityLink)
        .filter(models.TraceabilityLink.project_id == project_id)
        .all()
    )


def list_documents(db: Session, project_id: UUID) -> list[models.Document]:
    return (
        db.query(models.Document)
        .filter(models.Document.project_id == project_id)
        .order_by(models.Document.type, models.Document.version.desc())
        .all()
    )


def get_latest_document(
    db: Session,
    project_id: UUID,
    doc_type: models.DocumentType = models.DocumentType.BRD,
) -> Optional[models.Document]:
    return (
        db.query(models.Document)
        .filter(models.Document.project_id == project_id, models.Document.type == doc_type)
        .order_by(models.Document.version.desc())
        .first()
    )


def store_document(
    db: Session,
    project_id: UUID,
    doc_type: models.DocumentType,
    content: dict,
    generated_from: dict[str, int],
) -> models.Document:
    """Store a new document version; the previous version becomes outdated."""
    previous = get_latest_document(db, project_id, doc_type)
    if previous:
        previous.status = models.DocumentStatus.OUTDATED
    document = models.Document(
        project_id=project_id,
        type=doc_type,
        version=(previous.version + 1) if previous else 1,
        content=content,
        generated_from=generated_from,
        status=models.DocumentStatus.READY,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


def document_to_response(document: models.Document) -> schemas.DocumentResponse:
    """Convert a Document to its response, normalising stored BRD content."""
    return schemas.DocumentResponse(
        id=document.id,
        project_id=document.project_id,
        type=document.type,
        version=document.version,
        status=document.status,
        content=normalize_brd(document.content),
        generated_from=document.generated_from or {},
        generated_at=document.generated_at,
    )


# =============================================================================
# Extraction runs & logs
# =============================================================================


def get_run(db: Session, run_id: UUID) -> Optional[models.ExtractionRun]:
    return db.query(models.ExtractionRun).filter(models.ExtractionRun.id == run_id).first()


def _runs_query(db: Session, project_id: UUID):
    return (
        db.query(models.ExtractionRun)
        .filter(models.ExtractionRun.project_id == project_id)
        .order_by(models.ExtractionRun.started_at.desc())
    )


def get_latest_run(db: Session, project_id: UUID) -> Optional[models.ExtractionRun]:
    return _runs_query(db, project_id).first()


def list_runs_for_project(db: Session, project_id: UUID, limit: int = RUN_HISTORY_LIMIT) -> list[models.ExtractionRun]:
    """Run history, newest first."""
    return _runs_query(db, project_id).limit(limit).all()


def list_all_runs(db: Session, limit: int = ALL_RUNS_LIMIT) -> list[models.ExtractionRun]:
    return (
        db.query(models.ExtractionRun)
        .order_by(models.ExtractionRun.started_at.desc())
        .limit(limit)
        .all()
    )


def get_active_run(db: Session, project_id: UUID) -> Optional[models.ExtractionRun]:
    """The non-terminal run among the most recent runs, if any."""
    for run in _runs_query(db, project_id).limit(ACTIVE_RUN_WINDOW).all():
        if run.status in ACTIVE_STATUSES:
            return run
    return None


def is_pipeline_running(db: Session, project_id: UUID) -> schemas.PipelineRunningResponse:
    run = get_active_run(db, project_id)
    if run is None:
        return schemas.PipelineRunningResponse(is_running=False)
    return schemas.PipelineRunningResponse(is_running=True, run_id=run.id, status=run.status)


def create_run(
    db: Session,
    project_id: UUID,
    provider: Optional[str] = None,
    regenerate: bool = False,
    started_at: Optional[datetime] = None,
) -> models.ExtractionRun:
    """Insert a queued run with zeroed counters."""
    run = models.ExtractionRun(
        project_id=project_id,
        status=models.RunStatus.QUEUED,
        provider=provider,
        regenerate=regenerate,
        started_at=started_at or datetime.utcnow(),
    )
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def start_run(
    db: Session,
    project_id: UUID,
    provider: Optional[models.LLMProviderName] = None,
    api_key: Optional[str] = None,
    regenerate: bool = False,
) -> tuple[models.ExtractionRun, models.LLMProviderName, str]:
    """
    Validate preconditions and create a queued run.

    Args:
        db: Database session
        project_id: Project to extract
        provider: Preferred LLM provider
        api_key: Key supplied with the request (falls back to stored keys)
        regenerate: Clear previously extracted data first

    Returns:
        Tuple of (run, resolved provider, resolved key)

    Raises:
        MissingApiKeyError: If no key can be resolved
        PipelineAlreadyRunningError: If the project has an active run
    """
    resolved_provider, resolved_key = resolve_provider_and_key(db, provider, api_key)

    active = get_active_run(db, project_id)
    if active is not None:
        raise PipelineAlreadyRunningError(
            f"Pipeline is already running (status: {active.status.value}). "
            f"Wait for it to complete or cancel it first.",
            run=active,
        )

    if regenerate:
        clear_extraction_data(db, project_id)

    run = create_run(db, project_id, provider=resolved_provider.value, regenerate=regenerate)
    logger.info(f"Queued extraction run {run.id} for project {project_id} (provider={resolved_provider.value}, regenerate={regenerate})")
    return run, resolved_provider, resolved_key


def transition_run(
    db: Session,
    run: models.ExtractionRun,
    status: models.RunStatus,
    error: Optional[str] = None,
    **counts: int,
) -> models.ExtractionRun:
    """
    Move a run to a new status, validating against the state machine.

    Terminal statuses stamp completed_at. Counter keyword arguments
    (requirements_found=..., ...) are written when given.

    Raises:
        RunTransitionError: If the transition is not allowed
    """
    db.refresh(run)
    validate_transition(run.status, status)
    run.status = status
    for name, value in counts.items():
        if value is not None:
            setattr(run, name, value)
    if error is not None:
        run.error = error
    if status in TERMINAL_STATUSES:
        run.completed_at = datetime.utcnow()
    db.commit()

    if status in STAGE_PROGRESS:
        project = get_project(db, run.project_id)
        if project:
            project.progress = STAGE_PROGRESS[status]
            project.updated_at = datetime.utcnow()
            db.commit()
    return run


def append_log(
    db: Session,
    run: models.ExtractionRun,
    agent: models.AgentName,
    level: models.LogLevel,
    message: str,
    detail: Optional[str] = None,
) -> models.AgentLog:
    """Append a log line to a run; sequence is the next insertion index."""
    current = (
        db.query(func.max(models.AgentLog.sequence))
        .filter(models.AgentLog.extraction_run_id == run.id)
        .scalar()
    )
    entry = models.AgentLog(
        project_id=run.project_id,
        extraction_run_id=run.id,
        sequence=(current or 0) + 1,
        agent=agent,
        level=level,
        message=message,
        detail=detail,
    )
    db.add(entry)
    db.commit()
    return entry


def get_logs_for_run(db: Session, run_id: UUID) -> list[models.AgentLog]:
    """Run logs in insertion order."""
    return (
        db.query(models.AgentLog)
        .filter(models.AgentLog.extraction_run_id == run_id)
        .order_by(models.AgentLog.sequence)
        .all()
    )


def get_logs_for_project(db: Session, project_id: UUID, limit: int = PROJECT_LOG_LIMIT) -> list[models.AgentLog]:
    """Most recent project logs, newest first."""
    return (
        db.query(models.AgentLog)
        .filter(models.AgentLog.project_id == project_id)
        .order_by(models.AgentLog.timestamp.desc(), models.AgentLog.sequence.desc())
        .limit(limit)
        .all()
    )


def get_recent_activity(db: Session, limit: int = RECENT_ACTIVITY_LIMIT) -> list[models.AgentLog]:
    return (
        db.query(models.AgentLog)
        .order_by(models.AgentLog.timestamp.desc(), models.AgentLog.sequence.desc())
        .limit(limit)
        .all()
    )


def cancel_pipeline(db: Session, project_id: UUID) -> int:
    """
    Cancel every active run among the project's most recent runs.

    Cancellation is cooperative: the runner notices the terminal status before
    its next stage. Already-stored stage outputs are kept. The project resets
    to draft.

    Returns:
        Number of runs cancelled
    """
    cancelled = 0
    for run in _runs_query(db, project_id).limit(ACTIVE_RUN_WINDOW).all():
        if run.status in ACTIVE_STATUSES:
            run.status = models.RunStatus.CANCELLED
            run.completed_at = datetime.utcnow()
            cancelled += 1

    project = get_project(db, project_id)
    if project:
        project.status = models.ProjectStatus.DRAFT
        project.progress = 0
        project.updated_at = datetime.utcnow()
    db.commit()
    logger.info(f"Cancelled {cancelled} run(s) for project {project_id}")
    return cancelled


def clear_run_history(db: Session, project_id: UUID, keep_latest: int = 1) -> int:
    """Delete all but the newest keep_latest runs (and their logs).

    Queued and in-progress runs are never deleted.
    """
    runs = _runs_query(db, project_id).all()
    deleted = 0
    for run in runs[keep_latest:]:
        if run.status in ACTIVE_STATUSES:
            continue
        db.query(models.AgentLog).filter(models.AgentLog.extraction_run_id == run.id).delete(
            synchronize_session=False
        )
        db.delete(run)
        deleted += 1
    db.commit()
    logger.info(f"Cleared {deleted} run(s) from history of project {project_id} (kept {keep_latest})")
    return deleted


# =============================================================================
# Conflicts
# =============================================================================


def store_conflict(
    db: Session,
    project_id: UUID,
    conflict_id: str,
    title: str,
    description: str,
    severity: models.ConflictSeverity,
    requirement_ids: list[str],
) -> models.Conflict:
    """Store a newly detected conflict and bump the project counter."""
    conflict = models.Conflict(
        project_id=project_id,
        conflict_id=conflict_id,
        title=title,
        description=description,
        severity=severity,
        status=models.ConflictStatus.DETECTED,
        requirement_ids=[str(r) for r in requirement_ids],
    )
    db.add(conflict)
    project = get_project(db, project_id)
    if project:
        project.conflict_count = (project.conflict_count or 0) + 1
        project.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(conflict)
    return conflict


def get_conflict(db: Session, conflict_id: UUID) -> Optional[models.Conflict]:
    return db.query(models.Conflict).filter(models.Conflict.id == conflict_id).first()


def list_conflicts(db: Session, project_id: UUID) -> list[models.Conflict]:
    """Conflicts ordered unresolved-first, then by severity."""
    conflicts = (
        db.query(models.Conflict)
        .filter(models.Conflict.project_id == project_id)
        .order_by(models.Conflict.detected_at)
        .all()
    )
    return sort_conflicts(conflicts)


def settle_conflict(
    db: Session,
    conflict_id: UUID,
    resolution: str,
    status: models.ConflictStatus = models.ConflictStatus.RESOLVED,
) -> Optional[models.Conflict]:
    """
    Settle a conflict as resolved (default) or accepted with a rationale.

    Raises:
        EmptyResolutionError: If the resolution text is blank
        ValueError: If status is not a settled status
    """
    if status not in SETTLED_STATUSES:
        raise ValueError(f"Cannot settle a conflict as '{status.value}'")
    text = validate_resolution(resolution)

    conflict = get_conflict(db, conflict_id)
    if not conflict:
        return None
    conflict.status = status
    conflict.resolution = text
    conflict.resolved_at = datetime.utcnow()
    db.commit()
    db.refresh(conflict)
    logger.info(f"Conflict {conflict.conflict_id} marked {status.value}")
    return conflict


def mark_conflict_reviewing(db: Session, conflict_id: UUID) -> Optional[models.Conflict]:
    """
    Move a detected conflict to reviewing.

    Raises:
        ValueError: If the conflict is already resolved or accepted
    """
    conflict = get_conflict(db, conflict_id)
    if not conflict:
        return None
    if conflict.status in SETTLED_STATUSES:
        raise ValueError(f"Conflict {conflict.conflict_id} is already {conflict.status.value}")
    conflict.status = models.ConflictStatus.REVIEWING
    db.commit()
    db.refresh(conflict)
    return conflict


# =============================================================================
# Sharing
# =============================================================================


def create_shared_link(
    db: Session,
    project_id: UUID,
    permission: models.SharePermission = models.SharePermission.VIEW,
    password: Optional[str] = None,
    expires_in_days: Optional[float] = None,
    token_length: int = 12,
) -> models.SharedLink:
    token = generate_token(token_length)
    while db.query(models.SharedLink.id).filter(models.SharedLink.token == token).first():
        token = generate_token(token_length)

    link = models.SharedLink(
        project_id=project_id,
        token=token,
        permission=permission,
        password=password or None,
        expires_at=compute_expiry(expires_in_days),
        is_active=True,
        access_count=0,
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    logger.info(f"Created {permission.value} share link for project {project_id}")
    return link


def get_shared_link(db: Session, link_id: UUID) -> Optional[models.SharedLink]:
    return db.query(models.SharedLink).filter(models.SharedLink.id == link_id).first()


def get_shared_link_by_token(db: Session, token: str) -> Optional[models.SharedLink]:
    return db.query(models.SharedLink).filter(models.SharedLink.token == token).first()


def list_shared_links(db: Session, project_id: UUID) -> list[models.SharedLink]:
    return (
        db.query(models.SharedLink)
        .filter(models.SharedLink.project_id == project_id)
        .order_by(models.SharedLink.created_at.desc())
        .all()
    )


def revoke_shared_link(db: Session, link_id: UUID) -> Optional[models.SharedLink]:
    link = get_shared_link(db, link_id)
    if not link:
        return None
    link.is_active = False
    db.commit()
    db.refresh(link)
    return link


def delete_shared_link(db: Session, link_id: UUID) -> bool:
    link = get_shared_link(db, link_id)
    if not link:
        return False
    db.delete(link)
    db.commit()
    return True


def update_shared_link_permission(
    db: Session,
    link_id: UUID,
    permission: models.SharePermission,
) -> Optional[models.SharedLink]:
    link = get_shared_link(db, link_id)
    if not link:
        return None
    link.permission = permission
    db.commit()
    db.refresh(link)
    return link


def shared_link_to_response(link: models.SharedLink) -> schemas.SharedLinkResponse:
    return schemas.SharedLinkResponse(
        id=link.id,
        project_id=link.project_id,
        token=link.token,
        permission=link.permission,
        has_password=bool(link.password),
        expires_at=link.expires_at,
        is_active=link.is_active,
        created_at=link.created_at,
        access_count=link.access_count,
        last_accessed_at=link.last_accessed_at,
    )


def get_shared_snapshot(db: Session, token: str) -> schemas.SharedSnapshotResponse:
    """Resolve a token into a read-only BRD snapshot or an error code."""
    link = get_shared_link_by_token(db, token)
    error = check_link(link)
    if error is not None:
        return schemas.SharedSnapshotResponse(error=error.value)

    project = get_project(db, link.project_id)
    if not project:
        return schemas.SharedSnapshotResponse(error=ShareLookupError.NOT_FOUND.value)

    document = get_latest_document(db, project.id)
    sources = list_sources(db, project.id)

    return schemas.SharedSnapshotResponse(
        permission=link.permission,
        has_password=bool(link.password),
        project=schemas.SharedProjectSummary(name=project.name, description=project.description),
        brd_content=normalize_brd(document.content) if document else None,
        version=document.version if document else 1,
        requirements=[schemas.RequirementResponse.model_validate(r) for r in list_requirements(db, project.id)],
        stakeholders=[schemas.StakeholderResponse.model_validate(s) for s in list_stakeholders(db, project.id)],
        conflicts=[schemas.ConflictResponse.model_validate(c) for c in list_conflicts(db, project.id)],
        sources=[
            schemas.SharedSourceMeta(
                id=s.id,
                name=s.name,
                type=s.type,
                relevance_score=s.relevance_score,
                metadata=s.source_metadata or {},
            )
            for s in sources
        ],
    )


def record_access(db: Session, token: str) -> bool:
    """Bump the view counter of a link. Unknown tokens are ignored."""
    link = get_shared_link_by_token(db, token)
    if not link:
        return False
    link.access_count = (link.access_count or 0) + 1
    link.last_accessed_at = datetime.utcnow()
    db.commit()
    return True


# =============================================================================
# Integrations
# =============================================================================


def create_integration(db: Session, data: schemas.IntegrationCreate) -> models.Integration:
    integration = models.Integration(
        app_id=data.app_id,
        label=data.label,
        project_id=data.project_id,
        status=data.status,
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)
    return integration


def get_integration(db: Session, integration_id: UUID) -> Optional[models.Integration]:
    return db.query(models.Integration).filter(models.Integration.id == integration_id).first()


def list_integrations(db: Session, connected_only: bool = False) -> list[models.Integration]:
    query = db.query(models.Integration)
    if connected_only:
        query = query.filter(models.Integration.status == models.IntegrationStatus.CONNECTED)
    return query.order_by(models.Integration.created_at).all()


def update_integration_status(
    db: Session,
    integration_id: UUID,
    status: models.IntegrationStatus,
) -> Optional[models.Integration]:
    integration = get_integration(db, integration_id)
    if not integration:
        return None
    integration.status = status
    integration.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(integration)
    return integration


def count_connected_integrations(db: Session) -> int:
    return (
        db.query(func.count(models.Integration.id))
        .filter(models.Integration.status == models.IntegrationStatus.CONNECTED)
        .scalar()
        or 0
    )
