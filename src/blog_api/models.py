"""Pydantic models for blog post documents and their wire shapes."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Author(BaseModel):
    """Author sub-document as persisted: ``{firstName, lastName}``."""

    model_config = ConfigDict(strict=True, populate_by_name=True)

    first_name: str = Field(alias="firstName", min_length=1)
    last_name: str = Field(alias="lastName")

    @property
    def display_name(self) -> str:
        """Flattened wire rendering, e.g. ``"Ada Lovelace"``."""
        return f"{self.first_name} {self.last_name}".strip()


class BlogPost(BaseModel):
    """A stored blog post document."""

    model_config = ConfigDict(strict=True)

    id: str = Field(description="Store-assigned identifier, immutable")
    title: str
    content: str
    author: Author


class PostCreate(BaseModel):
    """Body of ``POST /posts``; also the record shape accepted by ``insert_many``."""

    model_config = ConfigDict(strict=True)

    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    author: Author


UPDATABLE_FIELDS = ("title", "content", "author")


class PostUpdate(BaseModel):
    """Body of ``PUT /posts/{id}``: any subset of the updatable fields."""

    model_config = ConfigDict(strict=True)

    id: str | None = Field(default=None, description="Optional; must match the path id")
    title: str | None = Field(default=None, min_length=1)
    content: str | None = Field(default=None, min_length=1)
    author: Author | None = None

    def changes(self) -> dict[str, Any]:
        """Updatable fields the caller actually supplied (explicit nulls are skipped)."""
        return {
            name: getattr(self, name)
            for name in UPDATABLE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is not None
        }


class PostOut(BaseModel):
    """Wire shape of a post: author flattened to a display string."""

    id: str
    title: str
    content: str
    author: str

    @classmethod
    def from_post(cls, post: BlogPost) -> "PostOut":
        return cls(
            id=post.id,
            title=post.title,
            content=post.content,
            author=post.author.display_name,
        )
