"""Passthrough listings of the current document's elements and parts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from gltf_viewer.api.dependencies import (
    AuthenticatedUser,
    get_authenticated_user,
    get_onshape_client,
)
from gltf_viewer.core.onshape import OnshapeClient

router = APIRouter()


@router.get("/elements")
async def list_elements(
    document_id: str = Query(..., alias="documentId"),
    workspace_id: str = Query(..., alias="workspaceId"),
    user: AuthenticatedUser = Depends(get_authenticated_user),
    client: OnshapeClient = Depends(get_onshape_client),
) -> Response:
    resp = await client.forward(
        user.access_token, f"/documents/d/{document_id}/w/{workspace_id}/elements"
    )
    return Response(content=resp.content, status_code=resp.status_code, media_type=resp.content_type)


@router.get("/parts")
async def list_parts(
    document_id: str = Query(..., alias="documentId"),
    workspace_id: str = Query(..., alias="workspaceId"),
    user: AuthenticatedUser = Depends(get_authenticated_user),
    client: OnshapeClient = Depends(get_onshape_client),
) -> Response:
    resp = await client.forward(user.access_token, f"/parts/d/{document_id}/w/{workspace_id}")
    return Response(content=resp.content, status_code=resp.status_code, media_type=resp.content_type)
