"""
Notekeeper Backend - Session Routes
====================================

What:  Landing redirect, sign-in page and sign-out.
How:   The OAuth exchange itself belongs to the external identity component,
       which writes the profile into the signed session. These routes only
       render the entry point and clear the session again.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from notekeeper.dependencies import templates
from notekeeper.services.identity import CurrentUser, get_current_user, sign_out

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Session"], include_in_schema=False)


@router.get("/")
async def index() -> RedirectResponse:
    return RedirectResponse(url="/notes", status_code=302)


@router.get("/signin", response_class=HTMLResponse)
async def signin(
    request: Request,
    user: Optional[CurrentUser] = Depends(get_current_user),
):
    if user is not None:
        return RedirectResponse(url="/notes", status_code=302)
    return templates.TemplateResponse(request, "signin.html", {"user": None})


@router.get("/logout")
async def logout(request: Request) -> RedirectResponse:
    sign_out(request)
    logger.info("Session cleared")
    return RedirectResponse(url="/", status_code=302)
