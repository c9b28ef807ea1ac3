"""Conflict review API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracelayer_core import crud, schemas, models
from tracelayer_core.conflict_policy import EmptyResolutionError, conflict_stats
from tracelayer_core.database import get_db

logger = logging.getLogger("tracelayer-core.conflicts")

router = APIRouter(tags=["conflicts"])


@router.get("/projects/{project_id}", response_model=schemas.ConflictListResponse)
def list_conflicts(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """
    List a project's conflicts, unresolved first, then by severity.

    The stats block carries total, settled (resolved or accepted), open
    critical conflicts and the BRD accuracy percentage.
    """
    if not crud.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    conflicts = crud.list_conflicts(db, project_id)
    return schemas.ConflictListResponse(
        items=conflicts,
        stats=schemas.ConflictStats(**conflict_stats(conflicts)),
    )


@router.get("/{conflict_id}", response_model=schemas.ConflictResponse)
def get_conflict(
    conflict_id: UUID,
    db: Session = Depends(get_db),
):
    conflict = crud.get_conflict(db, conflict_id)
    if not conflict:
        raise HTTPException(status_code=404, detail="Conflict not found")
    return conflict


def _settle(db: Session, conflict_id: UUID, resolution: str, status: models.ConflictStatus):
    try:
        conflict = crud.settle_conflict(db, conflict_id, resolution, status)
    except EmptyResolutionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except Exception as e:
        logger.error(f"Error settling conflict {conflict_id}: {e}", exc_info=True)
        raise
    if not conflict:
        raise HTTPException(status_code=404, detail="Conflict not found")
    return conflict


@router.post("/{conflict_id}/resolve", response_model=schemas.ConflictResponse)
def resolve_conflict(
    conflict_id: UUID,
    body: schemas.ConflictResolve,
    db: Session = Depends(get_db),
):
    """
    Resolve a conflict.

    - **resolution**: How the conflict was resolved (required, not blank)
    """
    return _settle(db, conflict_id, body.resolution, models.ConflictStatus.RESOLVED)


@router.post("/{conflict_id}/accept", response_model=schemas.ConflictResponse)
def accept_conflict(
    conflict_id: UUID,
    body: schemas.ConflictResolve,
    db: Session = Depends(get_db),
):
    """
    Accept a conflict as a known trade-off.

    - **resolution**: Rationale for accepting it (required, not blank)
    """
    return _settle(db, conflict_id, body.resolution, models.ConflictStatus.ACCEPTED)


@router.put("/{conflict_id}/status", response_model=schemas.ConflictResponse)
def update_conflict_status(
    conflict_id: UUID,
    body: schemas.ConflictStatusUpdate,
    db: Session = Depends(get_db),
):
    """
    Mark a conflict as under review.

    Only `reviewing` is accepted here; resolving or accepting requires a
    resolution text and goes through the dedicated endpoints.
    """
    if body.status != models.ConflictStatus.REVIEWING:
        raise HTTPException(
            status_code=400,
            detail=f"Use /resolve or /accept to mark a conflict {body.status.value}",
        )
    try:
        conflict = crud.mark_conflict_reviewing(db, conflict_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not conflict:
        raise HTTPException(status_code=404, detail="Conflict not found")
    return conflict
