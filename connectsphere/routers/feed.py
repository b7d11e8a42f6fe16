"""Feed, story and post routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..runtime import get_viewer_session, service_errors
from ..schemas import (
    CommentSettings,
    FeedPage,
    Post,
    PostCreate,
    PostEdit,
    PostShareRequest,
    ReactionRequest,
    Story,
    StoryGroup,
)
from ..services import (
    PostNotFoundError,
    create_post,
    delete_post,
    edit_post,
    is_post_visible,
    load_post,
    mark_story_viewed,
    set_comments_disabled,
    share_post,
    toggle_bookmark,
    toggle_reaction,
    toggle_story_like,
)
from ..services.sync_client import ViewerSession

router = APIRouter(tags=["feed"])


@router.get("/feed", response_model=FeedPage)
async def read_feed(session: ViewerSession = Depends(get_viewer_session)) -> FeedPage:
    return session.feed


@router.post("/feed/more", response_model=FeedPage)
async def load_more_feed(session: ViewerSession = Depends(get_viewer_session)) -> FeedPage:
    with service_errors():
        return await session.load_more_feed()


@router.get("/feed/bookmarks", response_model=list[Post])
async def read_bookmarks(session: ViewerSession = Depends(get_viewer_session)) -> list[Post]:
    return session.bookmarks


@router.get("/profiles/{user_id}/posts", response_model=list[Post])
async def read_profile_posts(user_id: str, session: ViewerSession = Depends(get_viewer_session)) -> list[Post]:
    return session.profile_posts(user_id)


@router.get("/stories", response_model=list[StoryGroup])
async def read_stories(session: ViewerSession = Depends(get_viewer_session)) -> list[StoryGroup]:
    return session.stories


@router.post("/posts", status_code=status.HTTP_201_CREATED)
async def publish_post(payload: PostCreate, session: ViewerSession = Depends(get_viewer_session)) -> dict[str, str]:
    with service_errors():
        post_id = await create_post(session.store, session.token, session.viewer, payload)
    return {"id": post_id}


@router.post("/posts/{post_id}/reactions")
async def react_to_post(
    post_id: str,
    payload: ReactionRequest,
    session: ViewerSession = Depends(get_viewer_session),
) -> dict[str, str | None]:
    with service_errors():
        reaction = await toggle_reaction(session.store, session.viewer, post_id, payload.kind)
    return {"reaction": reaction}


@router.post("/posts/{post_id}/bookmark")
async def bookmark_post(post_id: str, session: ViewerSession = Depends(get_viewer_session)) -> dict[str, bool]:
    with service_errors():
        saved = await toggle_bookmark(session.store, session.viewer, post_id)
    return {"saved": saved}


@router.patch("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_post(post_id: str, payload: PostEdit, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await edit_post(session.store, session.viewer, post_id, payload.content)


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_post(post_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    with service_errors():
        await delete_post(session.store, session.viewer, post_id)


@router.put("/posts/{post_id}/comment-settings", status_code=status.HTTP_204_NO_CONTENT)
async def update_comment_settings(
    post_id: str,
    payload: CommentSettings,
    session: ViewerSession = Depends(get_viewer_session),
) -> None:
    with service_errors():
        await set_comments_disabled(session.store, session.viewer, post_id, payload.disabled)


def _story_or_404(session: ViewerSession, story_id: str) -> Story:
    story = session.story(story_id)
    if story is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Story not found")
    return story


@router.post("/stories/{story_id}/view", status_code=status.HTTP_204_NO_CONTENT)
async def view_story(story_id: str, session: ViewerSession = Depends(get_viewer_session)) -> None:
    story = _story_or_404(session, story_id)
    with service_errors():
        await mark_story_viewed(session.store, session.viewer, story)


@router.post("/stories/{story_id}/like")
async def like_story(story_id: str, session: ViewerSession = Depends(get_viewer_session)) -> dict[str, bool]:
    story = _story_or_404(session, story_id)
    with service_errors():
        liked = await toggle_story_like(session.store, session.viewer, story)
    return {"liked": liked}


@router.post("/posts/{post_id}/share", status_code=status.HTTP_201_CREATED)
async def share_with_friend(
    post_id: str,
    payload: PostShareRequest,
    session: ViewerSession = Depends(get_viewer_session),
) -> dict[str, str]:
    with service_errors():
        post = await load_post(session.store, post_id)
        if not is_post_visible(session.viewer, post):
            raise PostNotFoundError(f"Post {post_id} not found")
        conversation_id, message_id = await share_post(
            session.store,
            session.token,
            session.viewer,
            payload.friend_id,
            post,
            session.users.get(post.user_id),
        )
    return {"conversationId": conversation_id, "id": message_id}
