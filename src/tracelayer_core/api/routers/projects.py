"""Projects, sources and extracted data API endpoints (solo mode - no authentication)."""
import logging
from math import ceil
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tracelayer_core import crud, schemas, models
from tracelayer_core.brd_content import BRDContentError
from tracelayer_core.database import get_db

logger = logging.getLogger("tracelayer-core.projects")

router = APIRouter(tags=["projects"])


def _require_project(db: Session, project_id: UUID) -> models.Project:
    project = crud.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    db: Session = Depends(get_db),
):
    """
    Create a new project.

    - **name**: Project name
    - **description**: Optional description
    - **output_format**: brd, prd or both (default: brd)
    - **color**: Optional display color (random palette color when omitted)
    """
    try:
        return crud.create_project(
            db=db,
            name=project.name,
            description=project.description,
            output_format=project.output_format,
            color=project.color,
        )
    except Exception as e:
        logger.error(f"Error creating project: {e}", exc_info=True)
        raise


@router.get("/", response_model=schemas.ProjectListResponse)
def list_projects(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    db: Session = Depends(get_db),
):
    """List projects, newest first."""
    projects, total = crud.get_projects(db, skip=(page - 1) * page_size, limit=page_size)
    return schemas.ProjectListResponse(
        items=projects,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Get a specific project by ID."""
    return _require_project(db, project_id)


@router.put("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    project_update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
):
    """Update a project. Omitted fields are left unchanged."""
    _require_project(db, project_id)
    try:
        updated = crud.update_project(db, project_id, **project_update.model_dump(exclude_unset=True))
        logger.info(f"Updated project {project_id}")
        return updated
    except Exception as e:
        logger.error(f"Error updating project {project_id}: {e}", exc_info=True)
        raise


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Delete a project with its sources, extracted data, runs and share links."""
    if not crud.delete_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return None


@router.post("/{project_id}/refresh-counts", response_model=schemas.ProjectResponse)
def refresh_counts(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Recompute the denormalised counters of a project."""
    _require_project(db, project_id)
    return crud.refresh_counts(db, project_id)


@router.post("/{project_id}/clear-extraction")
def clear_extraction_data(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    """Delete all extracted data (sources, runs and logs are kept)."""
    _require_project(db, project_id)
    return {"deleted": crud.clear_extraction_data(db, project_id)}


# =============================================================================
# Sources
# =============================================================================


@router.post("/{project_id}/sources", response_model=schemas.SourceResponse, status_code=201)
def add_source(
    project_id: UUID,
    source: schemas.SourceCreate,
    db: Session = Depends(get_db),
):
    """
    Upload a communication source.

    - **name**: Display name (e.g. file name or email subject)
    - **type**: email, meeting_transcript, chat_log, document or uploaded_file
    - **content**: Raw text content
    - **metadata**: Optional author/date/channel/participants; word_count is computed when omitted
    """
    _require_project(db, project_id)
    return crud.add_source(db, project_id, source)


@router.get("/{project_id}/sources", response_model=list[schemas.SourceResponse])
def list_sources(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    _require_project(db, project_id)
    return crud.list_sources(db, project_id)


@router.delete("/{project_id}/sources/{source_id}", status_code=204)
def delete_source(
    project_id: UUID,
    source_id: UUID,
    db: Session = Depends(get_db),
):
    source = crud.get_source(db, source_id)
    if not source or source.project_id != project_id:
        raise HTTPException(status_code=404, detail="Source not found")
    crud.delete_source(db, source_id)
    return None


# =============================================================================
# Extracted intelligence
# =============================================================================


@router.get("/{project_id}/requirements", response_model=list[schemas.RequirementResponse])
def list_requirements(project_id: UUID, db: Session = Depends(get_db)):
    _require_project(db, project_id)
    return crud.list_requirements(db, project_id)


@router.get("/{project_id}/stakeholders", response_model=list[schemas.StakeholderResponse])
def list_stakeholders(project_id: UUID, db: Session = Depends(get_db)):
    _require_project(db, project_id)
    return crud.list_stakeholders(db, project_id)


@router.get("/{project_id}/decisions", response_model=list[schemas.DecisionResponse])
def list_decisions(project_id: UUID, db: Session = Depends(get_db)):
    _require_project(db, project_id)
    return crud.list_decisions(db, project_id)


@router.get("/{project_id}/timeline", response_model=list[schemas.TimelineEventResponse])
def list_timeline(project_id: UUID, db: Session = Depends(get_db)):
    _require_project(db, project_id)
    return crud.list_timeline_events(db, project_id)


@router.get("/{project_id}/traceability", response_model=list[schemas.TraceabilityLinkResponse])
def list_traceability(project_id: UUID, db: Session = Depends(get_db)):
    _require_project(db, project_id)
    return crud.list_traceability_links(db, project_id)


@router.get("/{project_id}/documents/latest", response_model=schemas.DocumentResponse)
def get_latest_document(
    project_id: UUID,
    type: models.DocumentType = Query(models.DocumentType.BRD, description="Document type"),
    db: Session = Depends(get_db),
):
    """Latest generated document of the given type, with normalised sections."""
    _require_project(db, project_id)
    document = crud.get_latest_document(db, project_id, type)
    if not document:
        raise HTTPException(status_code=404, detail=f"No {type.value} generated yet")
    try:
        return crud.document_to_response(document)
    except BRDContentError as e:
        logger.error(f"Stored document {document.id} is malformed: {e}")
        raise HTTPException(status_code=422, detail=str(e))
