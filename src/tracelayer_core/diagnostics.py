"""Derived pipeline diagnostics and preflight checks.

Nothing in here is persisted: every figure is recomputed from the stored
sources, extracted entities, runs and logs on each request.
"""
import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from . import crud, models, schemas
from .api_keys import get_active_keys
from .pipeline_state_machine import ACTIVE_STATUSES

logger = logging.getLogger("tracelayer-core.diagnostics")

HIGH_CONFIDENCE = 0.8
LOW_CONFIDENCE = 0.5
RECENT_ERROR_SAMPLES = 5
HISTOGRAM_BUCKETS = 5


def confidence_histogram(scores: list[float], buckets: int = HISTOGRAM_BUCKETS) -> list[int]:
    """
    Count confidence scores in equal-width buckets over [0, 1].

    A score of exactly 1.0 lands in the last bucket.
    """
    counts = [0] * buckets
    for score in scores:
        index = min(int(score * buckets), buckets - 1)
        counts[max(index, 0)] += 1
    return counts


def success_rate(completed: int, total: int) -> int:
    """Completed runs as an integer percentage of all runs (0 when none)."""
    if total == 0:
        return 0
    return int(completed * 100 / total + 0.5)


def _duration_seconds(run: models.ExtractionRun) -> Optional[float]:
    if run.completed_at is None or run.started_at is None:
        return None
    return (run.completed_at - run.started_at).total_seconds()


def get_diagnostics(db: Session, project_id: UUID) -> Optional[dict[str, Any]]:
    """
    Build the diagnostics snapshot of a project.

    Args:
        db: Database session
        project_id: Project UUID

    Returns:
        Snapshot dict, or None if the project does not exist
    """
    project = crud.get_project(db, project_id)
    if not project:
        return None

    sources = crud.list_sources(db, project_id)
    requirements = crud.list_requirements(db, project_id)
    stakeholders = crud.list_stakeholders(db, project_id)
    decisions = crud.list_decisions(db, project_id)
    timeline = crud.list_timeline_events(db, project_id)
    conflicts = crud.list_conflicts(db, project_id)
    documents = crud.list_documents(db, project_id)
    runs = crud.list_runs_for_project(db, project_id)

    scores = [r.confidence_score for r in requirements]
    avg_confidence = round(sum(scores) / len(scores), 2) if scores else 0

    completed_runs = [r for r in runs if r.status == models.RunStatus.COMPLETED]
    durations = [d for d in (_duration_seconds(r) for r in completed_runs) if d is not None]
    latest_run = runs[0] if runs else None

    errors: list[models.AgentLog] = []
    warning_count = 0
    if latest_run is not None:
        for entry in crud.get_logs_for_run(db, latest_run.id):
            if entry.level == models.LogLevel.ERROR:
                errors.append(entry)
            elif entry.level == models.LogLevel.WARNING:
                warning_count += 1
    error_count = len(errors)
    # Newest first
    recent_errors: list[dict[str, Any]] = [
        {
            "agent": entry.agent.value,
            "message": entry.message,
            "detail": entry.detail,
            "timestamp": entry.timestamp,
        }
        for entry in reversed(errors[-RECENT_ERROR_SAMPLES:])
    ]

    return {
        "project": {
            "name": project.name,
            "status": project.status.value,
            "progress": project.progress,
        },
        "sources": {
            "total": len(sources),
            "uploaded": sum(1 for s in sources if s.status == models.SourceStatus.UPLOADED),
            "extracted": sum(1 for s in sources if s.status == models.SourceStatus.EXTRACTED),
            "failed": sum(1 for s in sources if s.status == models.SourceStatus.FAILED),
            "total_words": sum(int((s.source_metadata or {}).get("word_count") or 0) for s in sources),
        },
        "extraction": {
            "requirements": len(requirements),
            "stakeholders": len(stakeholders),
            "decisions": len(decisions),
            "timeline_events": len(timeline),
            "conflicts": len(conflicts),
            "documents": len(documents),
        },
        "quality": {
            "avg_confidence": avg_confidence,
            "high_confidence": sum(1 for s in scores if s >= HIGH_CONFIDENCE),
            "low_confidence": sum(1 for s in scores if s < LOW_CONFIDENCE),
            "total_requirements": len(scores),
            "histogram": confidence_histogram(scores),
        },
        "runs": {
            "total": len(runs),
            "completed": len(completed_runs),
            "failed": sum(1 for r in runs if r.status == models.RunStatus.FAILED),
            "cancelled": sum(1 for r in runs if r.status == models.RunStatus.CANCELLED),
            "success_rate": success_rate(len(completed_runs), len(runs)),
            "avg_duration_sec": round(sum(durations) / len(durations)) if durations else 0,
            "latest_run": schemas.ExtractionRunResponse.model_validate(latest_run).model_dump(mode="json")
            if latest_run else None,
        },
        "errors": {
            "count": error_count,
            "warnings": warning_count,
            "recent_errors": recent_errors,
        },
    }


def _check(key: str, label: str, passed: bool, ok: str, failed: str) -> schemas.PreflightCheck:
    return schemas.PreflightCheck(
        key=key,
        label=label,
        status="pass" if passed else "fail",
        message=ok if passed else failed,
    )


def run_preflight(db: Session, project_id: UUID) -> Optional[schemas.PreflightResponse]:
    """
    Run the ordered readiness checks shown before starting a pipeline.

    Returns:
        PreflightResponse, or None if the project does not exist
    """
    project = crud.get_project(db, project_id)
    if not project:
        return None

    keys = [k for k in get_active_keys(db) if k.provider != models.LLMProviderName.CUSTOM]
    sources = crud.list_sources(db, project_id)
    connected = crud.count_connected_integrations(db)
    requirements = crud.list_requirements(db, project_id)
    runs = crud.list_runs_for_project(db, project_id)
    latest_run = runs[0] if runs else None
    latest_document = crud.get_latest_document(db, project_id)

    low_confidence = sum(1 for r in requirements if r.confidence_score < LOW_CONFIDENCE)
    recent_failures = sum(1 for r in runs[:3] if r.status == models.RunStatus.FAILED)
    latest_errors = 0
    if latest_run is not None:
        latest_errors = sum(
            1 for entry in crud.get_logs_for_run(db, latest_run.id)
            if entry.level == models.LogLevel.ERROR
        )

    providers = ", ".join(sorted({k.provider.value for k in keys}))
    checks = [
        _check(
            "api_key", "AI provider key", bool(keys),
            f"Active key configured ({providers})",
            "No API key configured",
        ),
        _check(
            "sources", "Sources", bool(sources) or connected > 0,
            f"{len(sources)} source(s) uploaded",
            "No sources uploaded and no integrations connected",
        ),
        _check(
            "integrations", "Integrations", connected > 0,
            f"{connected} integration(s) connected",
            "No integrations connected",
        ),
        _check(
            "project_state", "Project state",
            latest_run is None or latest_run.status not in ACTIVE_STATUSES,
            f"Project is {project.status.value}",
            "A pipeline run is already in progress",
        ),
        _check(
            "data_quality", "Data quality",
            not requirements or low_confidence * 2 <= len(requirements),
            f"{len(requirements) - low_confidence} of {len(requirements)} requirement(s) above {LOW_CONFIDENCE} confidence",
            f"{low_confidence} of {len(requirements)} requirement(s) below {LOW_CONFIDENCE} confidence",
        ),
        _check(
            "pipeline_health", "Pipeline health", recent_failures == 0,
            "No failures in recent runs",
            f"{recent_failures} of the last {min(len(runs), 3)} run(s) failed",
        ),
        _check(
            "documents", "Documents", latest_document is not None,
            f"BRD v{latest_document.version} available" if latest_document else "",
            "No BRD generated yet",
        ),
        _check(
            "error_check", "Latest run errors", latest_errors == 0,
            "Latest run logged no errors",
            f"Latest run logged {latest_errors} error(s)",
        ),
    ]

    passed = sum(1 for c in checks if c.status == "pass")
    logger.info(f"Preflight for project {project_id}: {passed}/{len(checks)} checks passed")
    return schemas.PreflightResponse(checks=checks, passed=passed, failed=len(checks) - passed)
