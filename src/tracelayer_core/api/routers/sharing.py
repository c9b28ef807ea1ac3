"""Share-link management and public BRD snapshot endpoints.

The /shared/{token} endpoints are unauthenticated: the token alone grants
read access, scoped by the link's permission.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracelayer_core import crud, schemas
from tracelayer_core.config import get_settings
from tracelayer_core.database import get_db

logger = logging.getLogger("tracelayer-core.sharing")

router = APIRouter(tags=["sharing"])


@router.post("/projects/{project_id}/links", response_model=schemas.SharedLinkCreateResponse, status_code=201)
def create_link(
    project_id: UUID,
    body: schemas.SharedLinkCreate,
    db: Session = Depends(get_db),
):
    """
    Create a share link for a project's BRD.

    - **permission**: view, comment or edit (default: view)
    - **password**: Optional password shown to the viewer as a gate
    - **expires_in_days**: Optional lifetime; links never expire when omitted
    """
    if not crud.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    link = crud.create_shared_link(
        db,
        project_id,
        permission=body.permission,
        password=body.password,
        expires_in_days=body.expires_in_days,
        token_length=get_settings().share_token_length,
    )
    return schemas.SharedLinkCreateResponse(id=link.id, token=link.token)


@router.get("/projects/{project_id}/links", response_model=list[schemas.SharedLinkResponse])
def list_links(
    project_id: UUID,
    db: Session = Depends(get_db),
):
    if not crud.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    return [crud.shared_link_to_response(link) for link in crud.list_shared_links(db, project_id)]


@router.post("/links/{link_id}/revoke", response_model=schemas.SharedLinkResponse)
def revoke_link(
    link_id: UUID,
    db: Session = Depends(get_db),
):
    """Deactivate a link. Lookups of its token return not_found afterwards."""
    link = crud.revoke_shared_link(db, link_id)
    if not link:
        raise HTTPException(status_code=404, detail="Share link not found")
    logger.info(f"Revoked share link {link_id}")
    return crud.shared_link_to_response(link)


@router.put("/links/{link_id}/permission", response_model=schemas.SharedLinkResponse)
def update_link_permission(
    link_id: UUID,
    body: schemas.SharedLinkPermissionUpdate,
    db: Session = Depends(get_db),
):
    link = crud.update_shared_link_permission(db, link_id, body.permission)
    if not link:
        raise HTTPException(status_code=404, detail="Share link not found")
    return crud.shared_link_to_response(link)


@router.delete("/links/{link_id}", status_code=204)
def delete_link(
    link_id: UUID,
    db: Session = Depends(get_db),
):
    if not crud.delete_shared_link(db, link_id):
        raise HTTPException(status_code=404, detail="Share link not found")
    return None


@router.get("/shared/{token}", response_model=schemas.SharedSnapshotResponse)
def get_by_token(
    token: str,
    db: Session = Depends(get_db),
):
    """
    Resolve a share token into a read-only BRD snapshot.

    Lookup failures are part of the payload, not HTTP errors: the response
    carries only `error` = not_found (unknown, revoked, or project deleted)
    or expired.
    """
    snapshot = crud.get_shared_snapshot(db, token)
    if snapshot.error:
        logger.info(f"Share token lookup failed: {snapshot.error}")
    return snapshot


@router.post("/shared/{token}/access")
def record_access(
    token: str,
    db: Session = Depends(get_db),
):
    """Record one view of a shared BRD. Unknown tokens are ignored."""
    return {"recorded": crud.record_access(db, token)}
