import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .config import settings
from .database import get_db_session
from .messaging import (
    get_conversation,
    hub,
    list_contacts,
    list_inbox,
    mark_read,
    message_out,
    resolve_user_info,
    search_users,
    send_message,
)
from .middleware import CallerContext, context_from_token, get_caller_context
from .schemas import MessageCreate


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])


@router.post("/api/messages")
async def post_message(
    payload: MessageCreate,
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    # The session work runs on the threadpool; only the push stays on the loop.
    message = await run_in_threadpool(
        send_message, db, context, payload.sender_id, payload.receiver_id, payload.content
    )
    data = message_out(message)
    await hub.publish(data)
    return {"success": True, "message": data}


@router.get("/api/messages")
def inbox(
    user_id: str | None = Query(default=None, alias="userId"),
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    return {"messages": [message_out(m) for m in list_inbox(db, context, user_id)]}


@router.get("/api/messages/conversation")
def conversation(
    user1: str | None = None,
    user2: str | None = None,
    after_id: int | None = Query(default=None, alias="afterId"),
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    return {"messages": [message_out(m) for m in get_conversation(db, context, user1, user2, after_id)]}


@router.patch("/api/messages/{message_id}/read")
def read_message(
    message_id: int,
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    if not mark_read(db, context, message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return {"success": True}


@router.get("/api/messages/search-users")
def search_message_users(
    q: str | None = None,
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    return {"users": search_users(db, context, q)}


@router.get("/api/messages/contacts")
def contacts(
    db: Session = Depends(get_db_session),
    context: CallerContext = Depends(get_caller_context),
):
    return {"contacts": list_contacts(db, context)}


@router.get("/api/messages/config")
def messaging_config(_: CallerContext = Depends(get_caller_context)):
    return {
        "pollIntervalSeconds": settings.poll_interval_seconds,
        "maxLength": settings.message_max_length,
        "websocket": "/ws/messages",
    }


@router.get("/api/user-info")
def user_info(
    user_id: str | None = Query(default=None, alias="userId"),
    db: Session = Depends(get_db_session),
    _: CallerContext = Depends(get_caller_context),
):
    return resolve_user_info(db, user_id)


def _authenticate(db: Session, token: str) -> CallerContext:
    try:
        return context_from_token(db, token)
    finally:
        db.close()


@router.websocket("/ws/messages")
async def messages_socket(websocket: WebSocket, token: str | None = None, db: Session = Depends(get_db_session)):
    try:
        context = await run_in_threadpool(_authenticate, db, token or "")
    except HTTPException as exc:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
        return

    await hub.connect(context.user_id, websocket)
    try:
        while True:
            # Clients only listen; anything they send keeps the socket alive.
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(context.user_id, websocket)
    except Exception as e:
        logger.error(f"WebSocket Error: {e}")
        await hub.disconnect(context.user_id, websocket)
