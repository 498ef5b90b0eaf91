"""Blog post repository: Protocol + Memory + Redis implementations."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import uuid4

import structlog
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from blog_api.errors import StoreError, ValidationError
from blog_api.models import BlogPost, PostCreate, PostUpdate
from blog_api.telemetry import get_tracer

if TYPE_CHECKING:
    from redis.asyncio import Redis

log = structlog.get_logger()
_tracer = get_tracer(__name__)

_POST_PREFIX = "post:"
_INDEX_SUFFIX = "posts"

# Hash field names for the flattened author sub-document
_FIRST_NAME_FIELD = "author.firstName"
_LAST_NAME_FIELD = "author.lastName"


@runtime_checkable
class PostStore(Protocol):
    """Protocol for blog post document stores."""

    async def insert_many(self, records: Iterable[PostCreate]) -> list[BlogPost]: ...

    async def insert_one(self, record: PostCreate) -> BlogPost: ...

    async def find_one(self) -> BlogPost | None: ...

    async def find_by_id(self, post_id: str) -> BlogPost | None: ...

    async def find_all(self) -> list[BlogPost]: ...

    async def count(self) -> int: ...

    async def update_by_id(self, post_id: str, changes: Mapping[str, Any]) -> BlogPost | None: ...

    async def delete_by_id(self, post_id: str) -> bool: ...

    async def drop(self) -> None: ...

    async def aclose(self) -> None: ...


def _new_post(record: PostCreate) -> BlogPost:
    return BlogPost(
        id=uuid4().hex,
        title=record.title,
        content=record.content,
        author=record.author,
    )


def _validate_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce a patch mapping into typed updatable fields; unknown keys are dropped."""
    try:
        return PostUpdate.model_validate(dict(changes)).changes()
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid post update: {exc.error_count()} field error(s)") from exc


class MemoryPostStore:
    """In-memory post store for local development and testing."""

    def __init__(self) -> None:
        self._posts: dict[str, BlogPost] = {}

    async def insert_many(self, records: Iterable[PostCreate]) -> list[BlogPost]:
        posts = [_new_post(r) for r in records]
        for post in posts:
            self._posts[post.id] = post
        return posts

    async def insert_one(self, record: PostCreate) -> BlogPost:
        (post,) = await self.insert_many([record])
        return post

    async def find_one(self) -> BlogPost | None:
        return next(iter(self._posts.values()), None)

    async def find_by_id(self, post_id: str) -> BlogPost | None:
        return self._posts.get(post_id)

    async def find_all(self) -> list[BlogPost]:
        return list(self._posts.values())

    async def count(self) -> int:
        return len(self._posts)

    async def update_by_id(self, post_id: str, changes: Mapping[str, Any]) -> BlogPost | None:
        fields = _validate_changes(changes)
        post = self._posts.get(post_id)
        if post is None:
            return None
        updated = post.model_copy(update=fields)
        self._posts[post_id] = updated
        return updated

    async def delete_by_id(self, post_id: str) -> bool:
        return self._posts.pop(post_id, None) is not None

    async def drop(self) -> None:
        self._posts.clear()

    async def aclose(self) -> None:
        self._posts.clear()


def _encode(changes: Mapping[str, Any]) -> dict[str, str]:
    """Flatten post fields into Redis hash fields."""
    fields: dict[str, str] = {}
    for name, value in changes.items():
        if name == "author":
            fields[_FIRST_NAME_FIELD] = value.first_name
            fields[_LAST_NAME_FIELD] = value.last_name
        elif name in ("title", "content"):
            fields[name] = str(value)
    return fields


def _as_str(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def _decode(post_id: str, raw: Mapping[Any, Any]) -> BlogPost | None:
    """Rebuild a BlogPost from a Redis hash; ``None`` for a missing hash."""
    if not raw:
        return None
    data = {_as_str(k): _as_str(v) for k, v in raw.items()}
    return BlogPost.model_validate(
        {
            "id": post_id,
            "title": data.get("title", ""),
            "content": data.get("content", ""),
            "author": {
                "firstName": data.get(_FIRST_NAME_FIELD, ""),
                "lastName": data.get(_LAST_NAME_FIELD, ""),
            },
        }
    )


@contextmanager
def _store_op(op: str) -> Iterator[None]:
    """Trace one store operation and surface Redis failures as StoreError."""
    with _tracer.start_as_current_span(f"store.{op}"):
        try:
            yield
        except (RedisError, OSError) as exc:
            log.warning("redis_store_failed", op=op, error=str(exc))
            raise StoreError(f"document store failed during {op}") from exc


class RedisPostStore:
    """Redis-backed post store.

    Each post is a hash at ``<prefix>post:<id>``; live ids are tracked in the
    set ``<prefix>posts``. Writes touching both keys run in MULTI/EXEC.
    """

    def __init__(self, client: Redis, key_prefix: str = "blog:") -> None:
        self._client: Redis = client
        self._prefix = key_prefix

    def _key(self, post_id: str) -> str:
        return f"{self._prefix}{_POST_PREFIX}{post_id}"

    @property
    def _index(self) -> str:
        return f"{self._prefix}{_INDEX_SUFFIX}"

    async def insert_many(self, records: Iterable[PostCreate]) -> list[BlogPost]:
        posts = [_new_post(r) for r in records]
        if not posts:
            return []
        with _store_op("insert"):
            async with self._client.pipeline(transaction=True) as pipe:
                for post in posts:
                    pipe.hset(
                        self._key(post.id),
                        mapping=_encode(
                            {"title": post.title, "content": post.content, "author": post.author}
                        ),
                    )
                pipe.sadd(self._index, *(post.id for post in posts))
                await pipe.execute()
        return posts

    async def insert_one(self, record: PostCreate) -> BlogPost:
        (post,) = await self.insert_many([record])
        return post

    async def find_one(self) -> BlogPost | None:
        with _store_op("find_one"):
            member = await self._client.srandmember(self._index)
            if member is None:
                return None
            post_id = _as_str(member)
            raw = await self._client.hgetall(self._key(post_id))  # type: ignore[misc]
        post = _decode(post_id, raw)
        if post is not None:
            return post
        # Member was deleted between SRANDMEMBER and HGETALL
        remaining = await self.find_all()
        return remaining[0] if remaining else None

    async def find_by_id(self, post_id: str) -> BlogPost | None:
        with _store_op("find_by_id"):
            raw = await self._client.hgetall(self._key(post_id))  # type: ignore[misc]
        return _decode(post_id, raw)

    async def find_all(self) -> list[BlogPost]:
        with _store_op("find_all"):
            members = await self._client.smembers(self._index)  # type: ignore[misc]
            ids = sorted(_as_str(m) for m in members)
            async with self._client.pipeline(transaction=False) as pipe:
                for post_id in ids:
                    pipe.hgetall(self._key(post_id))
                raws = await pipe.execute()
        posts = [_decode(post_id, raw) for post_id, raw in zip(ids, raws, strict=True)]
        return [p for p in posts if p is not None]

    async def count(self) -> int:
        with _store_op("count"):
            result: int = await self._client.scard(self._index)  # type: ignore[misc]
        return result

    async def update_by_id(self, post_id: str, changes: Mapping[str, Any]) -> BlogPost | None:
        fields = _encode(_validate_changes(changes))
        if not fields:
            return await self.find_by_id(post_id)
        key = self._key(post_id)
        # WATCH so a concurrent delete is never resurrected as a partial hash
        with _store_op("update_by_id"):
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                if not await pipe.exists(key):
                    return None
                pipe.multi()
                pipe.hset(key, mapping=fields)
                pipe.hgetall(key)
                _, raw = await pipe.execute()
        return _decode(post_id, raw)

    async def delete_by_id(self, post_id: str) -> bool:
        with _store_op("delete_by_id"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(self._key(post_id))
                pipe.srem(self._index, post_id)
                deleted, _ = await pipe.execute()
        return bool(deleted)

    async def drop(self) -> None:
        """Delete every indexed post and the index itself."""
        with _store_op("drop"):
            members = await self._client.smembers(self._index)  # type: ignore[misc]
            keys = [self._key(_as_str(m)) for m in members]
            await self._client.delete(self._index, *keys)
        log.warning("redis_store_dropped", prefix=self._prefix, posts=len(keys))

    async def aclose(self) -> None:
        """Close the underlying Redis connection."""
        await self._client.aclose()


def create_post_store(
    backend: str, redis_url: str | None = None, key_prefix: str = "blog:"
) -> PostStore:
    """Factory: create a PostStore for the given backend."""
    if backend == "redis":
        import redis.asyncio as aioredis

        if not redis_url:
            msg = "redis_url is required when backend='redis'"
            raise ValueError(msg)
        return RedisPostStore(aioredis.from_url(redis_url), key_prefix=key_prefix)
    return MemoryPostStore()
