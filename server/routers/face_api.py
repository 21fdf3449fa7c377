"""
Face Recognition API Router
Device webhook ingest and latest-record query
"""
import traceback

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import config
from errors import WebhookError

router = APIRouter()


def public_base_url(request: Request) -> str:
    """Prefix for /uploads links in records"""
    return config.PUBLIC_BASE_URL or str(request.base_url)


@router.post("/face-recognition")
async def receive_detection(request: Request):
    """Webhook called by the camera for every detection event"""
    ingest_service = request.app.state.ingest_service
    try:
        record = await ingest_service.ingest(request, public_base_url(request))
    except WebhookError as e:
        print(f"[Ingest] ERROR ({e.status_code}): {e.message}")
        if e.status_code >= 500:
            traceback.print_exc()
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})
    except Exception as e:
        print(f"[Ingest] ERROR: Unexpected failure: {e}")
        traceback.print_exc()
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    response = {"success": True, "recognized": record.recognized}
    if record.recognized:
        response["name"] = record.name
    return response


@router.get("/face-recognition/latest")
async def get_latest(request: Request):
    """Current latest record (waiting sentinel before the first event)"""
    record = request.app.state.latest_store.get()
    return record.model_dump(by_alias=True, mode="json")
