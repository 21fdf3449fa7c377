"""
Dashboard Router
Serves the polling page that displays the latest recognition
"""
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

import config

router = APIRouter()
templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))

POLL_INTERVAL_MS = 3000


@router.get("/", response_class=HTMLResponse)
async def dashboard(request: Request):
    """Main dashboard page"""
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {"latest_url": "/api/face-recognition/latest", "poll_interval_ms": POLL_INTERVAL_MS},
    )
