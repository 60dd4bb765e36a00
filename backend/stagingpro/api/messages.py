import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from stagingpro.api.deps import get_current_user, get_data, service_errors
from stagingpro.models.message import Message, MessageCreate
from stagingpro.models.submission import Submission, submission_to_public
from stagingpro.services.identity import User, in_scope
from stagingpro.services.repository import StudioData, WriteError
from stagingpro.utils.clock import now_ms

logger = logging.getLogger(__name__)

router = APIRouter()


class ReadMark(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    last_read: Optional[int] = None


def _conversation(data: StudioData, user: User, submission_id: str) -> Submission:
    """The submission a chat belongs to, if the caller may take part in it."""
    sub = data.submissions.get(submission_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="submission not found")
    if not in_scope(user)(submission_to_public(sub)):
        raise HTTPException(status_code=403, detail="not a participant in this conversation")
    return sub


def _mark_read(data: StudioData, user: User, submission_id: str, last_read: int) -> Optional[int]:
    # a missing receipts table must not break reading the conversation
    try:
        return data.receipts.mark_read(user.id, submission_id, last_read)
    except WriteError as e:
        logger.warning("Could not record read receipt for %s/%s: %s", user.id, submission_id, e)
        return None


@router.get("/{submission_id}/messages")
def list_messages(submission_id: str, user: User = Depends(get_current_user), data: StudioData = Depends(get_data)):
    """Conversation in chronological order. Opening it marks it read for the caller."""
    _conversation(data, user, submission_id)
    messages = data.messages.fetch_by_submission(submission_id)
    if messages:
        _mark_read(data, user, submission_id, max(m.timestamp for m in messages))
    return [m.model_dump() for m in messages]


@router.post("/{submission_id}/messages", status_code=201)
def post_message(submission_id: str, body: MessageCreate, user: User = Depends(get_current_user), data: StudioData = Depends(get_data)):
    _conversation(data, user, submission_id)
    content = (body.content or "").strip()
    if not content:
        raise HTTPException(status_code=400, detail="message is empty")
    msg = Message(
        submission_id=submission_id,
        sender_id=user.id,
        sender_name=user.display_name,
        sender_role=user.role.value,
        content=content,
        timestamp=now_ms(),
    )
    with service_errors():
        msg = data.messages.insert(msg)
    _mark_read(data, user, submission_id, msg.timestamp)
    return msg.model_dump()


@router.post("/{submission_id}/messages/read")
def mark_conversation_read(submission_id: str, body: ReadMark, user: User = Depends(get_current_user), data: StudioData = Depends(get_data)):
    _conversation(data, user, submission_id)
    with service_errors():
        last_read = data.receipts.mark_read(user.id, submission_id, body.last_read or now_ms())
    return {"lastRead": last_read}
