"""Direct messaging routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..runtime import get_viewer_session, service_errors
from ..schemas import ConversationOpenResponse, ConversationRow, MessageReactionRequest, MessageSendRequest, MessageView
from ..services import (
    delete_message,
    get_or_create_conversation,
    load_message,
    send_message,
    toggle_message_reaction,
)
from ..services.sync_client import ViewerSession

router = APIRouter(prefix="/conversations", tags=["messages"])


def _friend_for(session: ViewerSession, conversation_id: str) -> str:
    for row in session.conversations:
        if row.conversation_id == conversation_id:
            return row.friend_id
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")


@router.get("", response_model=list[ConversationRow])
async def list_conversations(session: ViewerSession = Depends(get_viewer_session)) -> list[ConversationRow]:
    return session.conversations


@router.post("/{friend_id}", response_model=ConversationOpenResponse)
async def open_conversation(friend_id: str, session: ViewerSession = Depends(get_viewer_session)) -> ConversationOpenResponse:
    if friend_id not in session.viewer.friends:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only message friends")
    with service_errors():
        conversation_id = await get_or_create_conversation(session.store, session.viewer.id, friend_id)
    return ConversationOpenResponse(conversation_id=conversation_id)


@router.get("/{conversation_id}/messages", response_model=list[MessageView])
async def read_messages(conversation_id: str, session: ViewerSession = Depends(get_viewer_session)) -> list[MessageView]:
    _friend_for(session, conversation_id)
    return session.message_thread(conversation_id).messages


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def post_message(
    conversation_id: str,
    payload: MessageSendRequest,
    session: ViewerSession = Depends(get_viewer_session),
) -> dict[str, str]:
    friend_id = _friend_for(session, conversation_id)
    with service_errors():
        reply_to = None
        if payload.reply_to_message_id:
            reply_to = await load_message(session.store, conversation_id, payload.reply_to_message_id)
        message_id = await send_message(
            session.store,
            session.token,
            conversation_id,
            session.viewer.id,
            friend_id,
            payload.text,
            media_url=payload.media_url,
            media_type=payload.media_type,
            reply_to=reply_to,
        )
    return {"id": message_id}


@router.delete("/{conversation_id}/messages/view", status_code=status.HTTP_204_NO_CONTENT)
async def close_messages(conversation_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    session.close_message_thread(conversation_id)


@router.delete("/{conversation_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_message(conversation_id: str, message_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    _friend_for(session, conversation_id)
    with service_errors():
        await delete_message(session.store, session.viewer.id, conversation_id, message_id)


@router.post("/{conversation_id}/messages/{message_id}/reactions")
async def react_to_message(
    conversation_id: str,
    message_id: str,
    payload: MessageReactionRequest,
    session: ViewerSession = Depends(get_viewer_session),
) -> dict[str, str | None]:
    _friend_for(session, conversation_id)
    with service_errors():
        reaction = await toggle_message_reaction(
            session.store, session.viewer.id, conversation_id, message_id, payload.reaction
        )
    return {"reaction": reaction}
