#=======================================================================================
# catalog_sync/routes.py
# FastAPI routes for the Akeneo → commercetools sync.
#
# POST /api/sync/manager   admin actions (save / start / stop / get), HTTP Basic
# POST /api/jobs/{kind}    job triggers (cron): run one full or delta job now
#
# The SyncService lives on app.state (built in main_app's lifespan).
#=======================================================================================
import logging
import secrets
from typing import Any, Dict, Literal, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from catalog_sync.config import settings
from catalog_sync.errors import ConcurrentUpdateError, ConfigurationError
from catalog_sync.service import SyncService

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api", tags=["Sync API"])

# ---------------------------
# HTTP Basic for admin actions
# ---------------------------
security = HTTPBasic()


def verify_admin(credentials: HTTPBasicCredentials = Depends(security)):
    ok_user = secrets.compare_digest(credentials.username or "", settings.ADMIN_USER or "")
    ok_pass = secrets.compare_digest(credentials.password or "", settings.ADMIN_PASS or "")
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Basic"},
        )


def get_service(request: Request) -> SyncService:
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Sync service not ready")
    return service


class ManagerRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["save", "start", "stop", "get"]
    sync_type: Literal["full", "delta", "all"] = Field(alias="syncType")
    # the admin UI posts the config as a JSON string
    config: Optional[Union[str, Dict[str, Any]]] = None
    forward_url: Optional[str] = Field(None, alias="forwardUrl")


@router.post("/sync/manager", dependencies=[Depends(verify_admin)])
async def sync_manager(body: ManagerRequest, service: SyncService = Depends(get_service)):
    logger.info("[API] sync manager: action=%s syncType=%s", body.action, body.sync_type)
    try:
        if body.action == "save":
            if body.config is None:
                raise HTTPException(status_code=400, detail="config is required for save")
            result = await service.save_config(body.config, body.forward_url)
        elif body.action == "start":
            result = await service.launch_if_ready(body.sync_type)
        elif body.action == "stop":
            result = await service.request_stop(body.sync_type)
        else:
            result = await service.check_status(body.sync_type)
    except (ValueError, ValidationError, ConfigurationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConcurrentUpdateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JSONResponse(content=result)


@router.post("/jobs/{kind}")
async def run_job(kind: Literal["full", "delta"], service: SyncService = Depends(get_service)):
    progress = await service.run_job(kind)
    record = await service.check_status(kind)
    if progress is None:
        return JSONResponse(content={"ran": False, "status": record.get("status")})
    return JSONResponse(content={
        "ran": True,
        "status": record.get("status"),
        "pages": progress.pages,
        "processed": progress.processed,
        "failed": len(progress.failed_syncs),
    })
