# ============================
# 📁 app/schemas.py
# (Datenformen aller Entitäten; auf dem Draht camelCase, in Python snake_case)

from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from app.core.workflow import ArticleState, WorkflowAction

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
# Zeichensatz von slugify(): Buchstaben, Ziffern, _ und -
SLUG_PATTERN = r"^[\w-]+$"


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True  # SQLAlchemy -> Pydantic


class PatchModel(CamelModel):
    """Basis für Teil-Updates: nur gesetzte Felder, null nur wo erlaubt."""

    nullable_fields: ClassVar[frozenset] = frozenset()

    def to_patch(self) -> dict:
        return {
            k: v for k, v in self.model_dump(exclude_unset=True).items()
            if v is not None or k in self.nullable_fields
        }


class UserRole(str, Enum):
    AUTHOR = "author"
    EDITOR = "editor"
    PUBLISHER = "publisher"
    ADMIN = "admin"


# --- Users ---

class UserBase(CamelModel):
    username: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    display_name: str | None = None
    avatar: str | None = None
    role: UserRole = UserRole.AUTHOR
    bio: str | None = None
    firebase_id: str | None = None


class UserCreate(UserBase):
    password: str = Field(min_length=1)


class UserUpdate(PatchModel):
    nullable_fields: ClassVar[frozenset] = frozenset({"display_name", "avatar", "bio", "firebase_id"})

    username: str | None = Field(default=None, min_length=1)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    password: str | None = Field(default=None, min_length=1)
    display_name: str | None = None
    avatar: str | None = None
    role: UserRole | None = None
    bio: str | None = None
    firebase_id: str | None = None


class User(UserCreate):
    id: int
    created_at: datetime
    updated_at: datetime


class UserPublic(UserBase):
    """Ausgabe-Projektion ohne Passwort."""
    id: int
    created_at: datetime
    updated_at: datetime


# --- Categories ---

class CategoryCreate(CamelModel):
    name: str = Field(min_length=1)
    slug: str | None = Field(default=None, pattern=SLUG_PATTERN)  # fehlt -> aus name abgeleitet
    description: str | None = None
    parent_id: int | None = None


class CategoryUpdate(PatchModel):
    nullable_fields: ClassVar[frozenset] = frozenset({"description", "parent_id"})

    name: str | None = Field(default=None, min_length=1)
    slug: str | None = Field(default=None, pattern=SLUG_PATTERN)
    description: str | None = None
    parent_id: int | None = None


class Category(CamelModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    parent_id: int | None = None
    created_at: datetime
    updated_at: datetime


# --- Articles ---

class ArticleCreate(CamelModel):
    title: str = Field(min_length=1)
    slug: str | None = Field(default=None, pattern=SLUG_PATTERN)  # fehlt -> slugify(title)
    excerpt: str | None = None   # fehlt -> aus content
    content: str = ""
    author_id: int | None = None
    featured_image: str | None = None
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    featured: bool = False
    meta_description: str | None = None
    firebase_id: str | None = None


class ArticleUpdate(PatchModel):
    """
    Teil-Update. `state` wird nicht direkt übernommen, sondern über den
    Workflow geführt (siehe services.publishing).
    """
    nullable_fields: ClassVar[frozenset] = frozenset({
        "excerpt", "author_id", "featured_image", "meta_description",
        "scheduled_publish", "firebase_id",
    })

    title: str | None = Field(default=None, min_length=1)
    slug: str | None = Field(default=None, pattern=SLUG_PATTERN)
    excerpt: str | None = None
    content: str | None = None
    author_id: int | None = None
    state: ArticleState | None = None
    featured_image: str | None = None
    categories: list[str] | None = None
    tags: list[str] | None = None
    featured: bool | None = None
    meta_description: str | None = None
    scheduled_publish: datetime | None = None
    firebase_id: str | None = None


class Article(CamelModel):
    id: int
    title: str
    slug: str
    excerpt: str | None = None
    content: str = ""
    author_id: int | None = None
    state: ArticleState = ArticleState.DRAFT
    featured_image: str | None = None
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    views: int = Field(default=0, ge=0)
    featured: bool = False
    meta_description: str | None = None
    published_at: datetime | None = None
    scheduled_publish: datetime | None = None
    created_at: datetime
    updated_at: datetime
    firebase_id: str | None = None


class ArticleListResponse(CamelModel):
    articles: list[Article]
    total: int
    page: int
    total_pages: int


class TransitionRequest(CamelModel):
    action: WorkflowAction
    scheduled_publish: datetime | None = None


# --- Revisions ---

class RevisionPayload(CamelModel):
    content: str
    author_id: int | None = None
    note: str | None = None


class ArticleRevisionCreate(RevisionPayload):
    article_id: int


class ArticleRevision(ArticleRevisionCreate):
    id: int
    created_at: datetime


# --- Newsletter ---

class SubscriberCreate(CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN)
    name: str | None = None
    confirmed: bool = False


class UnsubscribeRequest(CamelModel):
    email: str = Field(pattern=EMAIL_PATTERN)


class NewsletterSubscriber(CamelModel):
    id: int
    email: str
    name: str | None = None
    subscription_date: datetime
    confirmed: bool = False
    unsubscribed: bool = False
