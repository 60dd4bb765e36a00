"""WebSocket endpoints over the change feed.

`/ws/submissions` speaks a small JSON protocol. The client sends
`{"type": "auth", "token": "<jwt or null>"}` whenever its session changes
(sign-in, token refresh, sign-out). Each auth frame re-runs identity
resolution; once the newest one settles the server sends

    {"type": "snapshot", "user": {...} | null, "submissions": [...]}

and from then on

    {"type": "change", "table": ..., "eventType": ..., "record": {...}}

for every change that alters the caller's scoped list.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from stagingpro.api.deps import get_app_settings, get_data
from stagingpro.config import Settings
from stagingpro.models.submission import submission_to_public
from stagingpro.services.identity import AuthError, AuthSession, IdentityResolver, User, decode_auth_token, in_scope
from stagingpro.services.realtime import MESSAGES, SUBMISSIONS, SubmissionCache, change_feed
from stagingpro.services.repository import StudioData

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_json(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "role": user.role.value, "editorRecordId": user.editor_record_id}


class SubmissionSession:
    """State of one `/ws/submissions` connection."""

    def __init__(self, websocket: WebSocket, data: StudioData, settings: Settings):
        self.websocket = websocket
        self.settings = settings
        self.resolver = IdentityResolver(data, settings)
        self.cache: Optional[SubmissionCache] = None
        self.tasks = set()

    def _auth_session(self, token: Optional[str]) -> Optional[AuthSession]:
        if not token:
            return None
        try:
            return decode_auth_token(token, self.settings)
        except AuthError as e:
            logger.info("Rejected websocket token: %s", e)
            return None

    async def handle_auth(self, token: Optional[str]) -> None:
        if not await self.resolver.identify(self._auth_session(token)):
            return
        state = self.resolver.state
        cache = SubmissionCache(in_scope(state.user))
        cache.reset(submission_to_public(s) for s in state.submissions)
        self.cache = cache
        await self.websocket.send_json({"type": "snapshot", "user": _user_json(state.user), "submissions": cache.rows})

    async def read_frames(self) -> None:
        while True:
            frame = await self.websocket.receive_json()
            if not isinstance(frame, dict) or frame.get("type") != "auth":
                continue
            # overlapping auth frames resolve concurrently; the resolver keeps the newest
            task = asyncio.create_task(self.handle_auth(frame.get("token")))
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)

    async def forward_changes(self) -> None:
        subscription = change_feed.subscribe(SUBMISSIONS)
        try:
            while True:
                change = await subscription.get()
                if self.cache is None or self.resolver.state.initializing:
                    continue
                if self.cache.apply(change):
                    await self.websocket.send_json({"type": "change", **change.to_json()})
        finally:
            subscription.close()


@router.websocket("/ws/submissions")
async def submissions_socket(websocket: WebSocket, data: StudioData = Depends(get_data), settings: Settings = Depends(get_app_settings)):
    await websocket.accept()
    session = SubmissionSession(websocket, data, settings)
    reader = asyncio.create_task(session.read_frames())
    forwarder = asyncio.create_task(session.forward_changes())
    try:
        done, _ = await asyncio.wait({reader, forwarder}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                logger.error("Submission socket closed with error: %s", exc)
    finally:
        for task in (reader, forwarder, *session.tasks):
            task.cancel()


@router.websocket("/ws/messages/{submission_id}")
async def messages_socket(websocket: WebSocket, submission_id: str, data: StudioData = Depends(get_data), settings: Settings = Depends(get_app_settings)):
    """Message inserts for one conversation. The first frame must authenticate."""
    await websocket.accept()
    try:
        frame = await websocket.receive_json()
    except WebSocketDisconnect:
        return
    try:
        token = frame.get("token") if isinstance(frame, dict) else None
        auth_session = decode_auth_token(token or "", settings)
    except AuthError as e:
        logger.info("Message socket for %s refused: %s", submission_id, e)
        await websocket.close(code=4401)
        return

    resolver = IdentityResolver(data, settings)
    await resolver.identify(auth_session)
    sub = data.submissions.get(submission_id)
    if resolver.state.user is None or sub is None or not in_scope(resolver.state.user)(submission_to_public(sub)):
        await websocket.close(code=4403)
        return

    subscription = change_feed.subscribe(MESSAGES, submission_id)
    await websocket.send_json({"type": "ready", "submissionId": submission_id})

    async def push():
        while True:
            change = await subscription.get()
            await websocket.send_json({"type": "change", **change.to_json()})

    async def drain():
        # inbound frames are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    tasks = {asyncio.create_task(push()), asyncio.create_task(drain())}
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        logger.debug("Message socket for %s closed", submission_id)
    finally:
        for task in tasks:
            task.cancel()
        subscription.close()
