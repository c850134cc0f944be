"""OAuth sign-in against Onshape.

The signed session cookie carries the access token and Onshape user id that
the API routes rely on, plus the document the viewer was opened from.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from gltf_viewer.api.dependencies import (
    SESSION_ACCESS_TOKEN,
    SESSION_DOCUMENT,
    SESSION_OAUTH_STATE,
    SESSION_REFRESH_TOKEN,
    SESSION_USER_ID,
    get_oauth,
    get_onshape_client,
)
from gltf_viewer.core.errors import OnshapeRequestError
from gltf_viewer.core.oauth import OnshapeOAuth
from gltf_viewer.core.onshape import OnshapeClient

logger = logging.getLogger(__name__)

router = APIRouter()

_GRANT_DENIED_HTML = """<!DOCTYPE html>
<html>
  <head><title>Access denied</title></head>
  <body>
    <h1>Access denied</h1>
    <p>This application needs access to your Onshape documents to display them.
    Reopen the viewer from your document to try again.</p>
  </body>
</html>
"""


@router.get("/oauthSignin")
async def oauth_signin(
    request: Request,
    document_id: Optional[str] = Query(default=None, alias="documentId"),
    workspace_id: Optional[str] = Query(default=None, alias="workspaceId"),
    element_id: Optional[str] = Query(default=None, alias="elementId"),
    oauth: OnshapeOAuth = Depends(get_oauth),
) -> RedirectResponse:
    state = oauth.new_state()
    request.session[SESSION_OAUTH_STATE] = state
    request.session[SESSION_DOCUMENT] = {
        "documentId": document_id,
        "workspaceId": workspace_id,
        "elementId": element_id,
    }
    return RedirectResponse(oauth.authorization_url(state))


@router.get("/oauthRedirect")
async def oauth_redirect(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    oauth: OnshapeOAuth = Depends(get_oauth),
    client: OnshapeClient = Depends(get_onshape_client),
):
    expected_state = request.session.pop(SESSION_OAUTH_STATE, None)
    if error or not code or not state or state != expected_state:
        logger.warning("oauth_grant_denied", extra={"error": error or "state_mismatch"})
        return RedirectResponse("/grantDenied")

    try:
        tokens = await oauth.exchange_code(code)
    except OnshapeRequestError as e:
        logger.warning(
            "oauth_token_exchange_failed",
            extra={"status_code": e.status_code, "error": str(e.body)},
        )
        return RedirectResponse("/grantDenied")

    document = request.session.get(SESSION_DOCUMENT)
    if document is None:
        return JSONResponse({"error": "No session found."}, status_code=500)

    request.session[SESSION_ACCESS_TOKEN] = tokens.access_token
    if tokens.refresh_token:
        request.session[SESSION_REFRESH_TOKEN] = tokens.refresh_token
    try:
        info = await client.get_session_info(tokens.access_token)
        if isinstance(info, dict) and info.get("id"):
            request.session[SESSION_USER_ID] = str(info["id"])
    except OnshapeRequestError as e:
        # Without a user id webhooks cannot be scoped; translations still start.
        logger.warning("oauth_sessioninfo_failed", extra={"error": str(e.body)})

    query = urlencode(
        {
            "documentId": document.get("documentId") or "",
            "workspaceId": document.get("workspaceId") or "",
            "elementId": document.get("elementId") or "",
        }
    )
    return RedirectResponse(f"/?{query}")


@router.get("/grantDenied", response_class=HTMLResponse)
async def grant_denied() -> HTMLResponse:
    return HTMLResponse(_GRANT_DENIED_HTML, status_code=403)
