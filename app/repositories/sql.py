"""
SQLAlchemy-Storage: gleiche Schnittstelle wie MemStorage, Daten in einer
relationalen DB (SQLite lokal, PostgreSQL in Produktion).

Jede Operation läuft in genau einer Transaktion (sessionmaker.begin()), damit
bleiben create/update und das kaskadierende delete atomar.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from app.api.perf import paginate
from app.core.clean_utils import make_excerpt
from app.core.dates import ensure_utc, utcnow
from app.core.workflow import ArticleState
from app.database import Base, make_session_factory
from app.exceptions import DuplicateError
from app.models_sql import (
    ArticleORM,
    ArticleRevisionORM,
    CategoryORM,
    NewsletterSubscriberORM,
    UserORM,
)
from app.repositories.base import (
    DEFAULT_SEARCH_LIMIT,
    ArticleFilter,
    ArticlePage,
    Storage,
    rank_search_results,
    resolve_slug,
)
from app.schemas import (
    Article,
    ArticleCreate,
    ArticleRevision,
    ArticleRevisionCreate,
    Category,
    CategoryCreate,
    NewsletterSubscriber,
    SubscriberCreate,
    User,
    UserCreate,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_IMMUTABLE = ("id", "created_at")


def _utc_aware(dt):
    """Hilfsfunktion: SQLite liefert naive Zeitstempel zurück -> wieder UTC-aware."""
    if not isinstance(dt, datetime):
        return dt
    return ensure_utc(dt)


def _to_schema(schema: Type[M], row) -> Optional[M]:
    if row is None:
        return None
    model = schema.model_validate(row)
    fixes = {
        name: _utc_aware(getattr(model, name))
        for name in schema.model_fields
        if isinstance(getattr(model, name), datetime)
    }
    return model.model_copy(update=fixes) if fixes else model


def _plain(value):
    """Enums als Rohwert in die DB schreiben."""
    return getattr(value, "value", value)


def _apply_patch(row, patch: Dict[str, Any]) -> None:
    for key, value in patch.items():
        if key in _IMMUTABLE:
            continue
        if isinstance(value, list):
            value = list(value)  # neue Liste, damit der JSON-Typ die Änderung sieht
        setattr(row, key, _plain(value))


class SqlStorage(Storage):

    def __init__(self, engine: Engine):
        self._engine = engine
        self._sessions = make_session_factory(engine)

    def init(self) -> None:
        # Tabellen anlegen (falls keine Migrationen verwendet werden), dann Seed
        Base.metadata.create_all(bind=self._engine)
        super().init()

    # --- Hilfen ---

    @staticmethod
    def _ensure_unique(db: Session, orm, entity_name: str, field: str, value, own_id=None):
        stmt = select(orm.id).where(getattr(orm, field) == value)
        other = db.execute(stmt).scalars().first()
        if other is not None and other != own_id:
            raise DuplicateError(entity_name, field, value)

    def _get_by(self, orm, schema, field: str, value):
        with self._sessions() as db:
            row = db.execute(select(orm).where(getattr(orm, field) == value)).scalars().first()
            return _to_schema(schema, row)

    # --- Users ---

    def get_user(self, user_id: int) -> Optional[User]:
        with self._sessions() as db:
            return _to_schema(User, db.get(UserORM, user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._get_by(UserORM, User, "username", username)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._get_by(UserORM, User, "email", email)

    def create_user(self, data: UserCreate) -> User:
        with self._sessions.begin() as db:
            self._ensure_unique(db, UserORM, "User", "username", data.username)
            self._ensure_unique(db, UserORM, "User", "email", data.email)
            now = utcnow()
            values = {k: _plain(v) for k, v in data.model_dump().items()}
            row = UserORM(**values, created_at=now, updated_at=now)
            db.add(row)
            db.flush()
            logger.info("User %s angelegt (%s)", row.id, row.username)
            return _to_schema(User, row)

    def update_user(self, user_id: int, patch: Dict[str, Any]) -> Optional[User]:
        with self._sessions.begin() as db:
            row = db.get(UserORM, user_id)
            if row is None:
                return None
            if "username" in patch:
                self._ensure_unique(db, UserORM, "User", "username", patch["username"], user_id)
            if "email" in patch:
                self._ensure_unique(db, UserORM, "User", "email", patch["email"], user_id)
            _apply_patch(row, patch)
            row.updated_at = utcnow()
            db.flush()
            return _to_schema(User, row)

    # --- Articles ---

    def get_article(self, article_id: int) -> Optional[Article]:
        with self._sessions() as db:
            return _to_schema(Article, db.get(ArticleORM, article_id))

    def get_article_by_slug(self, slug: str) -> Optional[Article]:
        return self._get_by(ArticleORM, Article, "slug", slug)

    def list_articles(self, filter: Optional[ArticleFilter] = None) -> ArticlePage:
        filter = filter or ArticleFilter()
        # Zustand/featured direkt in SQL, Array-Mitgliedschaft (JSON) in Python
        stmt = select(ArticleORM).order_by(
            func.coalesce(ArticleORM.published_at, ArticleORM.created_at).desc(),
            ArticleORM.id.asc(),
        )
        if filter.state is not None:
            stmt = stmt.where(ArticleORM.state == filter.state.value)
        if filter.featured:
            stmt = stmt.where(ArticleORM.featured.is_(True))

        with self._sessions() as db:
            articles = [_to_schema(Article, row) for row in db.execute(stmt).scalars()]

        articles = [a for a in articles if filter.matches(a)]
        page_items, total, pages = paginate(articles, filter.page, filter.limit)
        return ArticlePage(articles=page_items, total=total, page=filter.page, total_pages=pages)

    def create_article(self, data: ArticleCreate) -> Article:
        values = data.model_dump()
        values["slug"] = resolve_slug(values.get("slug"), data.title)
        if values.get("excerpt") is None and data.content:
            values["excerpt"] = make_excerpt(data.content)

        with self._sessions.begin() as db:
            self._ensure_unique(db, ArticleORM, "Article", "slug", values["slug"])
            now = utcnow()
            row = ArticleORM(
                **values,
                state=ArticleState.DRAFT.value,
                views=0,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.flush()
            logger.info("Artikel %s angelegt (slug=%s)", row.id, row.slug)
            return _to_schema(Article, row)

    def update_article(self, article_id: int, patch: Dict[str, Any]) -> Optional[Article]:
        with self._sessions.begin() as db:
            row = db.get(ArticleORM, article_id)
            if row is None:
                return None
            if "slug" in patch:
                self._ensure_unique(db, ArticleORM, "Article", "slug", patch["slug"], article_id)
            _apply_patch(row, patch)
            row.updated_at = utcnow()
            db.flush()
            return _to_schema(Article, row)

    def delete_article(self, article_id: int) -> bool:
        with self._sessions.begin() as db:
            row = db.get(ArticleORM, article_id)
            if row is None:
                return False
            res = db.execute(
                delete(ArticleRevisionORM).where(ArticleRevisionORM.article_id == article_id)
            )
            db.delete(row)
            logger.info("Artikel %s gelöscht (%d Revisionen)", article_id, res.rowcount or 0)
            return True

    def increment_views(self, article_id: int) -> Optional[Article]:
        with self._sessions.begin() as db:
            row = db.get(ArticleORM, article_id)
            if row is None:
                return None
            row.views = (row.views or 0) + 1
            db.flush()
            return _to_schema(Article, row)

    def search_articles(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Article]:
        stmt = (
            select(ArticleORM)
            .where(ArticleORM.state == ArticleState.PUBLISHED.value)
            .order_by(ArticleORM.id.asc())
        )
        with self._sessions() as db:
            candidates = [_to_schema(Article, row) for row in db.execute(stmt).scalars()]
        return rank_search_results(candidates, query, limit)

    # --- Categories ---

    def get_category(self, category_id: int) -> Optional[Category]:
        with self._sessions() as db:
            return _to_schema(Category, db.get(CategoryORM, category_id))

    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        return self._get_by(CategoryORM, Category, "slug", slug)

    def list_categories(self) -> List[Category]:
        with self._sessions() as db:
            rows = db.execute(select(CategoryORM).order_by(CategoryORM.id)).scalars()
            return [_to_schema(Category, row) for row in rows]

    def create_category(self, data: CategoryCreate) -> Category:
        values = data.model_dump()
        values["slug"] = resolve_slug(values.get("slug"), data.name)
        with self._sessions.begin() as db:
            self._ensure_unique(db, CategoryORM, "Category", "name", values["name"])
            self._ensure_unique(db, CategoryORM, "Category", "slug", values["slug"])
            now = utcnow()
            row = CategoryORM(**values, created_at=now, updated_at=now)
            db.add(row)
            db.flush()
            return _to_schema(Category, row)

    def update_category(self, category_id: int, patch: Dict[str, Any]) -> Optional[Category]:
        with self._sessions.begin() as db:
            row = db.get(CategoryORM, category_id)
            if row is None:
                return None
            for field in ("name", "slug"):
                if field in patch:
                    self._ensure_unique(db, CategoryORM, "Category", field, patch[field], category_id)
            _apply_patch(row, patch)
            row.updated_at = utcnow()
            db.flush()
            return _to_schema(Category, row)

    def delete_category(self, category_id: int) -> bool:
        with self._sessions.begin() as db:
            row = db.get(CategoryORM, category_id)
            if row is None:
                return False
            db.delete(row)
            return True

    # --- Revisions ---

    def get_article_revisions(self, article_id: int) -> List[ArticleRevision]:
        stmt = (
            select(ArticleRevisionORM)
            .where(ArticleRevisionORM.article_id == article_id)
            .order_by(ArticleRevisionORM.created_at.desc(), ArticleRevisionORM.id.desc())
        )
        with self._sessions() as db:
            return [_to_schema(ArticleRevision, row) for row in db.execute(stmt).scalars()]

    def create_article_revision(self, data: ArticleRevisionCreate) -> ArticleRevision:
        with self._sessions.begin() as db:
            row = ArticleRevisionORM(**data.model_dump(), created_at=utcnow())
            db.add(row)
            db.flush()
            return _to_schema(ArticleRevision, row)

    # --- Newsletter ---

    def get_subscriber_by_email(self, email: str) -> Optional[NewsletterSubscriber]:
        return self._get_by(NewsletterSubscriberORM, NewsletterSubscriber, "email", email)

    def subscribe_to_newsletter(self, data: SubscriberCreate) -> NewsletterSubscriber:
        with self._sessions.begin() as db:
            row = db.execute(
                select(NewsletterSubscriberORM).where(NewsletterSubscriberORM.email == data.email)
            ).scalars().first()
            if row is not None:
                if row.unsubscribed:
                    row.unsubscribed = False
                    row.subscription_date = utcnow()
                    db.flush()
                    logger.info("Newsletter: %s erneut angemeldet", data.email)
                return _to_schema(NewsletterSubscriber, row)

            row = NewsletterSubscriberORM(
                **data.model_dump(), subscription_date=utcnow(), unsubscribed=False
            )
            db.add(row)
            db.flush()
            logger.info("Newsletter: %s angemeldet", data.email)
            return _to_schema(NewsletterSubscriber, row)

    def unsubscribe_from_newsletter(self, email: str) -> bool:
        with self._sessions.begin() as db:
            row = db.execute(
                select(NewsletterSubscriberORM).where(NewsletterSubscriberORM.email == email)
            ).scalars().first()
            if row is None:
                return False
            row.unsubscribed = True
            return True
