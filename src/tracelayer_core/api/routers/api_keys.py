"""LLM provider key management endpoints. Raw keys are never returned."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracelayer_core import api_keys, schemas
from tracelayer_core.database import get_db

logger = logging.getLogger("tracelayer-core.api_keys")

router = APIRouter(tags=["api-keys"])


@router.post("/", response_model=schemas.ApiKeyResponse, status_code=201)
def store_key(
    body: schemas.ApiKeyCreate,
    db: Session = Depends(get_db),
):
    """
    Store a provider key. The provider's previously active key is deactivated.

    - **provider**: openai, anthropic, gemini or custom
    - **key**: The raw API key
    """
    try:
        return api_keys.store_key(db, body.provider, body.key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=list[schemas.ApiKeyResponse])
def list_keys(db: Session = Depends(get_db)):
    """Active keys, newest first, as masked previews."""
    return api_keys.get_active_keys(db)


@router.delete("/{key_id}", status_code=204)
def delete_key(
    key_id: UUID,
    db: Session = Depends(get_db),
):
    if not api_keys.delete_key(db, key_id):
        raise HTTPException(status_code=404, detail="API key not found")
    return None
