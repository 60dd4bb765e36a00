import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from stagingpro.api.deps import get_current_user, get_data
from stagingpro.services.identity import User
from stagingpro.services.repository import StudioData
from stagingpro.services.storage import UploadError

logger = logging.getLogger(__name__)

router = APIRouter()


class UploadBody(BaseModel):
    path: str = ""
    file: str = ""


@router.post("/upload")
def upload(body: UploadBody, user: User = Depends(get_current_user), data: StudioData = Depends(get_data)):
    """Store a data-URL blob under `path` and return its public URL."""
    if not body.path or not body.file:
        return JSONResponse(status_code=400, content={"message": "Path and File are required."})
    try:
        url = data.storage.upload(body.path, body.file)
    except UploadError as e:
        logger.error("Upload by user=%s to %s failed: %s", user.id, body.path, e)
        return JSONResponse(status_code=502, content={"message": str(e)})
    return {"url": url}


@router.get("/media")
def media(path: str = Query(...), data: StudioData = Depends(get_data)):
    try:
        content, content_type = data.storage.open(path)
    except (FileNotFoundError, UploadError):
        raise HTTPException(status_code=404, detail="not found")
    return Response(content=content, media_type=content_type)
