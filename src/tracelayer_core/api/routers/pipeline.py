"""Pipeline run tracker API endpoints.

Starting a run validates preconditions synchronously (API key, single active
run) and hands execution to a background task. Everything else here reads or
maintains run state.
"""
import logging
from typing import Callable, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from tracelayer_core import crud, diagnostics, schemas, models
from tracelayer_core.api_keys import MissingApiKeyError
from tracelayer_core.database import get_db, get_session_factory
from tracelayer_core.extraction.runner import get_run_executor

logger = logging.getLogger("tracelayer-core.pipeline")

router = APIRouter(tags=["pipeline"])


def _require_project(db: Session, project_id: UUID) -> models.Project:
    project = crud.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post("/projects/{project_id}/start", response_model=schemas.RunHandle, status_code=202)
def start_pipeline(
    project_id: UUID,
    request: schemas.PipelineStartRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    run_executor: Callable = Depends(get_run_executor),
):
    """
    Start an extraction run.

    - **provider**: openai, anthropic or gemini (optional; stored keys decide when omitted)
    - **api_key**: Key for this run only (optional; falls back to stored keys)
    - **regenerate**: Clear previously extracted data before running

    Returns 400 when no API key is available and 409 when a run is already active.
    """
    _require_project(db, project_id)

    try:
        run, provider, api_key = crud.start_run(
            db,
            project_id,
            provider=request.provider,
            api_key=request.api_key,
            regenerate=request.regenerate,
        )
    except MissingApiKeyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except crud.PipelineAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Error starting pipeline for project {project_id}: {e}", exc_info=True)
        raise

    background_tasks.add_task(run_executor, session_factory, run.id, provider, api_key)
    return schemas.RunHandle(run_id=run.id, project_id=project_id, status=run.status, provider=run.provider)


@router.post("/projects/{project_id}/cancel", response_model=schemas.CancelResponse)
def cancel_pipeline(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Cancel every active run of the project. Already-extracted data is kept."""
    _require_project(db, project_id)
    cancelled = crud.cancel_pipeline(db, project_id)
    return schemas.CancelResponse(success=True, cancelled_count=cancelled)


@router.get("/projects/{project_id}/latest-run", response_model=Optional[schemas.ExtractionRunResponse])
def get_latest_run(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Most recent run of the project, or null when it never ran."""
    _require_project(db, project_id)
    return crud.get_latest_run(db, project_id)


@router.get("/projects/{project_id}/running", response_model=schemas.PipelineRunningResponse)
def is_pipeline_running(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    _require_project(db, project_id)
    return crud.is_pipeline_running(db, project_id)


@router.get("/projects/{project_id}/runs", response_model=list[schemas.ExtractionRunResponse])
def list_runs(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Run history, newest first (latest 20)."""
    _require_project(db, project_id)
    return crud.list_runs_for_project(db, project_id)


@router.post("/projects/{project_id}/clear-history", response_model=schemas.ClearHistoryResponse)
def clear_run_history(
    project_id: UUID,
    request: schemas.ClearHistoryRequest,
    db: Session = Depends(get_db),
):
    """Delete all but the newest keep_latest runs together with their logs."""
    _require_project(db, project_id)
    deleted = crud.clear_run_history(db, project_id, keep_latest=request.keep_latest)
    return schemas.ClearHistoryResponse(deleted=deleted)


@router.get("/projects/{project_id}/logs", response_model=list[schemas.AgentLogResponse])
def get_logs_for_project(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Latest 200 log entries of the project, newest first."""
    _require_project(db, project_id)
    return crud.get_logs_for_project(db, project_id)


@router.get("/projects/{project_id}/diagnostics")
def get_diagnostics(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Derived health snapshot: sources, extraction counts, quality, runs and errors."""
    snapshot = diagnostics.get_diagnostics(db, project_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return snapshot


@router.get("/projects/{project_id}/preflight", response_model=schemas.PreflightResponse)
def preflight(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Readiness checks to review before starting a run."""
    result = diagnostics.run_preflight(db, project_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return result


@router.get("/runs", response_model=list[schemas.ExtractionRunResponse])
def list_all_runs(db: Session = Depends(get_db)):
    """Latest 10 runs across all projects."""
    return crud.list_all_runs(db)


@router.get("/runs/{run_id}", response_model=schemas.ExtractionRunResponse)
def get_run(run_id: UUID, db: Session = Depends(get_db)):
    run = crud.get_run(db, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.get("/runs/{run_id}/logs", response_model=list[schemas.AgentLogResponse])
def get_logs_for_run(run_id: UUID, db: Session = Depends(get_db)):
    """Log entries of a run in insertion order."""
    if not crud.get_run(db, run_id):
        raise HTTPException(status_code=404, detail="Run not found")
    return crud.get_logs_for_run(db, run_id)


@router.get("/activity", response_model=list[schemas.AgentLogResponse])
def list_recent_activity(db: Session = Depends(get_db)):
    """Latest 30 log entries across all projects."""
    return crud.get_recent_activity(db)
