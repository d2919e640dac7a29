"""Admin/creator direct messages with live delivery over websockets."""
import asyncio
import json
import logging
from contextlib import suppress
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from kenflash.clock import SystemClock, get_clock
from kenflash.database import get_db
from kenflash.models.message import ChatMessage
from kenflash.realtime import (
    ChannelHub,
    ChannelSubscription,
    conversation_channel,
    conversation_key,
    get_hub,
)
from kenflash.schemas.chat import MessageCreate, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def store_message(
    db: Session, sender_id: str, receiver_id: str, text: str, clock: SystemClock
) -> ChatMessage:
    message = ChatMessage(
        sender_id=sender_id,
        receiver_id=receiver_id,
        message_text=text,
        sent_at=clock.now(),
        is_read=False,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def publish_message(hub: ChannelHub, message: ChatMessage) -> None:
    payload = MessageResponse.model_validate(message).model_dump(mode="json")
    hub.publish(conversation_key(message.sender_id, message.receiver_id), payload)


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: MessageCreate,
    db: Session = Depends(get_db),
    hub: ChannelHub = Depends(get_hub),
    clock: SystemClock = Depends(get_clock),
) -> MessageResponse:
    """Store a message and push it to anyone viewing the conversation."""
    text = request.message_text.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="message_text is required")
    message = store_message(db, request.sender_id, request.receiver_id, text, clock)
    publish_message(hub, message)
    return MessageResponse.model_validate(message)


@router.get("/messages", response_model=list[MessageResponse])
def list_conversation(
    viewer_id: Annotated[str, Query(min_length=1)],
    peer_id: Annotated[str, Query(min_length=1)],
    db: Session = Depends(get_db),
) -> list[MessageResponse]:
    """Return a conversation in send order, marking the viewer's unread messages read."""
    messages = db.query(ChatMessage).filter(
        or_(
            and_(ChatMessage.sender_id == viewer_id, ChatMessage.receiver_id == peer_id),
            and_(ChatMessage.sender_id == peer_id, ChatMessage.receiver_id == viewer_id),
        )
    ).order_by(ChatMessage.sent_at.asc(), ChatMessage.id.asc()).all()

    response = [MessageResponse.model_validate(m) for m in messages]

    unread = [m for m in messages if m.receiver_id == viewer_id and not m.is_read]
    if unread:
        for message in unread:
            message.is_read = True
        db.commit()
    return response


async def _forward(websocket: WebSocket, subscription: ChannelSubscription) -> None:
    while True:
        payload = await subscription.get()
        await websocket.send_json(payload)


@router.websocket("/ws/conversations/{viewer_id}/{peer_id}")
async def conversation_socket(
    websocket: WebSocket,
    viewer_id: str,
    peer_id: str,
    db: Session = Depends(get_db),
    hub: ChannelHub = Depends(get_hub),
    clock: SystemClock = Depends(get_clock),
):
    """Live view of one conversation.

    The channel subscription lives exactly as long as the socket.
    """
    async with conversation_channel(hub, viewer_id, peer_id) as subscription:
        await websocket.accept()
        forwarder = asyncio.create_task(_forward(websocket, subscription))
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    data = json.loads(raw)
                except ValueError:
                    data = None
                text = str(data.get("message_text") or "").strip() if isinstance(data, dict) else ""
                if not text:
                    await websocket.send_json({"error": "message_text is required"})
                    continue
                message = store_message(db, viewer_id, peer_id, text, clock)
                publish_message(hub, message)
        except WebSocketDisconnect:
            logger.debug("Chat socket %s -> %s closed", viewer_id, peer_id)
        finally:
            forwarder.cancel()
            with suppress(asyncio.CancelledError, WebSocketDisconnect):
                await forwarder
