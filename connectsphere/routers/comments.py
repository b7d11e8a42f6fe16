"""Comment tree routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..runtime import get_viewer_session, service_errors
from ..schemas import Comment, CommentCreate, CommentTree
from ..services.sync_client import ViewerSession

router = APIRouter(tags=["comments"])


@router.get("/posts/{post_id}/comments", response_model=CommentTree)
async def read_comments(
    post_id: str,
    more: bool = False,
    session: ViewerSession = Depends(get_viewer_session),
) -> CommentTree:
    builder = session.comment_tree(post_id)
    with service_errors():
        if more and builder.loaded:
            return await builder.load_more()
        return await builder.load()


@router.post("/posts/{post_id}/comments", response_model=CommentTree, status_code=status.HTTP_201_CREATED)
async def add_comment(
    post_id: str,
    payload: CommentCreate,
    session: ViewerSession = Depends(get_viewer_session),
) -> CommentTree:
    builder = session.comment_tree(post_id)
    with service_errors():
        if not builder.loaded:
            await builder.load()
        await builder.add_comment(session.viewer, payload.content)
    return builder.tree


@router.delete("/posts/{post_id}/comments/view", status_code=status.HTTP_204_NO_CONTENT)
async def close_comments(post_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    session.close_comment_tree(post_id)


@router.get("/comments/{post_id}/{comment_id}/replies", response_model=list[Comment])
async def read_replies(
    post_id: str,
    comment_id: str,
    session: ViewerSession = Depends(get_viewer_session),
) -> list[Comment]:
    builder = session.comment_tree(post_id)
    with service_errors():
        return await builder.expand_replies(comment_id)


@router.post("/comments/{post_id}/{comment_id}/replies", response_model=CommentTree, status_code=status.HTTP_201_CREATED)
async def add_reply(
    post_id: str,
    comment_id: str,
    payload: CommentCreate,
    session: ViewerSession = Depends(get_viewer_session),
) -> CommentTree:
    builder = session.comment_tree(post_id)
    with service_errors():
        if not builder.loaded:
            await builder.load()
        await builder.add_reply(session.viewer, comment_id, payload.content)
    return builder.tree
