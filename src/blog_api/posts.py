"""HTTP handlers for the ``/posts`` resource."""

import structlog
from fastapi import APIRouter, Depends, Request, Response

from blog_api.errors import NotFoundError, ValidationError
from blog_api.metrics import posts_created_total, posts_deleted_total, posts_updated_total
from blog_api.models import PostCreate, PostOut, PostUpdate
from blog_api.store import PostStore

log = structlog.get_logger()

router = APIRouter(prefix="/posts", tags=["posts"])


def get_store(request: Request) -> PostStore:
    """Dependency: the store opened by the app lifespan (or injected by tests)."""
    store: PostStore = request.app.state.store
    return store


@router.get("", response_model=list[PostOut])
async def list_posts(store: PostStore = Depends(get_store)) -> list[PostOut]:
    return [PostOut.from_post(p) for p in await store.find_all()]


@router.get("/{post_id}", response_model=PostOut)
async def read_post(post_id: str, store: PostStore = Depends(get_store)) -> PostOut:
    post = await store.find_by_id(post_id)
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return PostOut.from_post(post)


@router.post("", status_code=201, response_model=PostOut)
async def create_post(body: PostCreate, store: PostStore = Depends(get_store)) -> PostOut:
    post = await store.insert_one(body)
    posts_created_total.add(1)
    await log.ainfo("post_created", post_id=post.id)
    return PostOut.from_post(post)


@router.put("/{post_id}", status_code=204, response_class=Response)
async def update_post(
    post_id: str, body: PostUpdate, store: PostStore = Depends(get_store)
) -> Response:
    """Partial update: fields omitted from the body are left untouched."""
    if body.id is not None and body.id != post_id:
        raise ValidationError(f"Request path id ({post_id}) and body id ({body.id}) must match")
    changes = body.changes()
    if not changes:
        raise ValidationError("Request body must contain at least one of: title, content, author")

    updated = await store.update_by_id(post_id, changes)
    if updated is None:
        raise NotFoundError(f"Post {post_id} not found")

    posts_updated_total.add(1)
    await log.ainfo("post_updated", post_id=post_id, fields=sorted(changes))
    return Response(status_code=204)


@router.delete("/{post_id}", status_code=204, response_class=Response)
async def delete_post(post_id: str, store: PostStore = Depends(get_store)) -> Response:
    """Idempotent: an unknown id is already in the desired state."""
    if await store.delete_by_id(post_id):
        posts_deleted_total.add(1)
        await log.ainfo("post_deleted", post_id=post_id)
    else:
        await log.adebug("post_delete_noop", post_id=post_id)
    return Response(status_code=204)
