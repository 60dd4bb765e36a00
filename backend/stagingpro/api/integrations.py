"""Thin passthroughs to the payment and vision providers.

Both answer `{message}` JSON on failure so the client can show it as is.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from stagingpro.api.deps import get_analyzer, get_checkout, get_current_user
from stagingpro.services.identity import User
from stagingpro.services.payments import CheckoutClient, CheckoutError
from stagingpro.services.vision import RoomAnalyzer, VisionUnavailable
from stagingpro.utils.images import InvalidImageData

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plan_title: Optional[str] = None
    amount: Optional[int] = None
    order_id: Optional[str] = None
    user_email: Optional[str] = None


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_base64: str = ""


@router.post("/create-checkout-session")
def create_checkout_session(body: CheckoutRequest, user: User = Depends(get_current_user), checkout: CheckoutClient = Depends(get_checkout)):
    try:
        url = checkout.create_session(body.plan_title or "", body.amount, body.order_id or "", body.user_email or user.email)
    except CheckoutError as e:
        return JSONResponse(status_code=500, content={"message": str(e)})
    return {"url": url}


@router.post("/analyze-room")
def analyze_room(body: AnalyzeRequest, user: User = Depends(get_current_user), analyzer: RoomAnalyzer = Depends(get_analyzer)):
    if not body.image_base64:
        return JSONResponse(status_code=400, content={"message": "imageBase64 is required"})
    try:
        analysis = analyzer.analyze(body.image_base64)
    except (VisionUnavailable, InvalidImageData) as e:
        logger.warning("Room analysis for user=%s failed: %s", user.id, e)
        return JSONResponse(status_code=500, content={"message": str(e)})
    return {"analysis": analysis}
