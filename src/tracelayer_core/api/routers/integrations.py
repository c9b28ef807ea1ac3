"""Integration registry endpoints.

Only connection status is tracked; the connected count feeds the pipeline
start warning and the preflight checks.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tracelayer_core import crud, schemas
from tracelayer_core.database import get_db

logger = logging.getLogger("tracelayer-core.integrations")

router = APIRouter(tags=["integrations"])


@router.post("/", response_model=schemas.IntegrationResponse, status_code=201)
def create_integration(
    body: schemas.IntegrationCreate,
    db: Session = Depends(get_db),
):
    integration = crud.create_integration(db, body)
    logger.info(f"Registered integration {integration.app_id} ({integration.status.value})")
    return integration


@router.get("/", response_model=list[schemas.IntegrationResponse])
def list_integrations(
    connected_only: bool = Query(False, description="Only connected integrations"),
    db: Session = Depends(get_db),
):
    return crud.list_integrations(db, connected_only=connected_only)


@router.put("/{integration_id}/status", response_model=schemas.IntegrationResponse)
def update_integration_status(
    integration_id: UUID,
    body: schemas.IntegrationStatusUpdate,
    db: Session = Depends(get_db),
):
    integration = crud.update_integration_status(db, integration_id, body.status)
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    return integration
