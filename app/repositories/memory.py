"""In-Memory-Storage (Referenz-Implementierung, ein Prozess, keine Persistenz)."""

from __future__ import annotations

import itertools
import logging
import threading
from functools import wraps
from typing import Any, Dict, List, Optional

from app.api.perf import paginate
from app.core.clean_utils import make_excerpt
from app.core.dates import effective_date, utcnow
from app.core.workflow import ArticleState
from app.exceptions import DuplicateError
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

_IMMUTABLE = ("id", "created_at")


def _locked(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def _copy(entity):
    return entity.model_copy(deep=True) if entity is not None else None


def _clean_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in patch.items() if k not in _IMMUTABLE}


class MemStorage(Storage):
    """
    Hält alle Entitäten in dicts (id -> Modell). Ids kommen aus prozessweiten
    Zählern und werden nie wiederverwendet. Jede Lese-Operation liefert eine
    Kopie, Aufrufer können den internen Zustand nicht verändern.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._articles: Dict[int, Article] = {}
        self._categories: Dict[int, Category] = {}
        self._revisions: Dict[int, ArticleRevision] = {}
        self._subscribers: Dict[int, NewsletterSubscriber] = {}

        self._user_ids = itertools.count(1)
        self._article_ids = itertools.count(1)
        self._category_ids = itertools.count(1)
        self._revision_ids = itertools.count(1)
        self._subscriber_ids = itertools.count(1)

    # --- Eindeutigkeit ---

    @staticmethod
    def _find(table: Dict[int, Any], field: str, value) -> Optional[Any]:
        return next((e for e in table.values() if getattr(e, field) == value), None)

    def _ensure_unique(self, table, entity_name, field, value, own_id=None):
        other = self._find(table, field, value)
        if other is not None and other.id != own_id:
            raise DuplicateError(entity_name, field, value)

    # --- Users ---

    @_locked
    def get_user(self, user_id: int) -> Optional[User]:
        return _copy(self._users.get(user_id))

    @_locked
    def get_user_by_username(self, username: str) -> Optional[User]:
        return _copy(self._find(self._users, "username", username))

    @_locked
    def get_user_by_email(self, email: str) -> Optional[User]:
        return _copy(self._find(self._users, "email", email))

    @_locked
    def create_user(self, data: UserCreate) -> User:
        self._ensure_unique(self._users, "User", "username", data.username)
        self._ensure_unique(self._users, "User", "email", data.email)
        now = utcnow()
        user = User(**data.model_dump(), id=next(self._user_ids), created_at=now, updated_at=now)
        self._users[user.id] = user
        logger.info("User %s angelegt (%s)", user.id, user.username)
        return _copy(user)

    @_locked
    def update_user(self, user_id: int, patch: Dict[str, Any]) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        patch = _clean_patch(patch)
        if "username" in patch:
            self._ensure_unique(self._users, "User", "username", patch["username"], user_id)
        if "email" in patch:
            self._ensure_unique(self._users, "User", "email", patch["email"], user_id)
        updated = user.model_copy(update={**patch, "updated_at": utcnow()})
        self._users[user_id] = updated
        return _copy(updated)

    # --- Articles ---

    @_locked
    def get_article(self, article_id: int) -> Optional[Article]:
        return _copy(self._articles.get(article_id))

    @_locked
    def get_article_by_slug(self, slug: str) -> Optional[Article]:
        return _copy(self._find(self._articles, "slug", slug))

    @_locked
    def list_articles(self, filter: Optional[ArticleFilter] = None) -> ArticlePage:
        filter = filter or ArticleFilter()
        articles = [a for a in self._articles.values() if filter.matches(a)]
        # neueste zuerst: publishedAt, sonst createdAt
        articles.sort(key=lambda a: effective_date(a.published_at, a.created_at), reverse=True)
        page_items, total, pages = paginate(articles, filter.page, filter.limit)
        return ArticlePage(
            articles=[_copy(a) for a in page_items],
            total=total,
            page=filter.page,
            total_pages=pages,
        )

    @_locked
    def create_article(self, data: ArticleCreate) -> Article:
        values = data.model_dump()
        values["slug"] = resolve_slug(values.get("slug"), data.title)
        if values.get("excerpt") is None and data.content:
            values["excerpt"] = make_excerpt(data.content)
        self._ensure_unique(self._articles, "Article", "slug", values["slug"])

        now = utcnow()
        article = Article(
            **values,
            id=next(self._article_ids),
            state=ArticleState.DRAFT,
            views=0,
            created_at=now,
            updated_at=now,
        )
        self._articles[article.id] = article
        logger.info("Artikel %s angelegt (slug=%s)", article.id, article.slug)
        return _copy(article)

    @_locked
    def update_article(self, article_id: int, patch: Dict[str, Any]) -> Optional[Article]:
        article = self._articles.get(article_id)
        if article is None:
            return None
        patch = _clean_patch(patch)
        if "slug" in patch:
            self._ensure_unique(self._articles, "Article", "slug", patch["slug"], article_id)
        updated = article.model_copy(update={**patch, "updated_at": utcnow()}, deep=True)
        self._articles[article_id] = updated
        return _copy(updated)

    @_locked
    def delete_article(self, article_id: int) -> bool:
        if self._articles.pop(article_id, None) is None:
            return False
        # Kaskade: alle Revisionen des Artikels
        orphans = [rid for rid, rev in self._revisions.items() if rev.article_id == article_id]
        for rid in orphans:
            del self._revisions[rid]
        logger.info("Artikel %s gelöscht (%d Revisionen)", article_id, len(orphans))
        return True

    @_locked
    def increment_views(self, article_id: int) -> Optional[Article]:
        article = self._articles.get(article_id)
        if article is None:
            return None
        # Zählen ist kein Bearbeiten: updatedAt bleibt
        updated = article.model_copy(update={"views": article.views + 1})
        self._articles[article_id] = updated
        return _copy(updated)

    @_locked
    def search_articles(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Article]:
        hits = rank_search_results(self._articles.values(), query, limit)
        return [_copy(a) for a in hits]

    # --- Categories ---

    @_locked
    def get_category(self, category_id: int) -> Optional[Category]:
        return _copy(self._categories.get(category_id))

    @_locked
    def get_category_by_slug(self, slug: str) -> Optional[Category]:
        return _copy(self._find(self._categories, "slug", slug))

    @_locked
    def list_categories(self) -> List[Category]:
        return [_copy(c) for c in self._categories.values()]

    @_locked
    def create_category(self, data: CategoryCreate) -> Category:
        values = data.model_dump()
        values["slug"] = resolve_slug(values.get("slug"), data.name)
        self._ensure_unique(self._categories, "Category", "name", values["name"])
        self._ensure_unique(self._categories, "Category", "slug", values["slug"])
        now = utcnow()
        category = Category(**values, id=next(self._category_ids), created_at=now, updated_at=now)
        self._categories[category.id] = category
        return _copy(category)

    @_locked
    def update_category(self, category_id: int, patch: Dict[str, Any]) -> Optional[Category]:
        category = self._categories.get(category_id)
        if category is None:
            return None
        patch = _clean_patch(patch)
        for field in ("name", "slug"):
            if field in patch:
                self._ensure_unique(self._categories, "Category", field, patch[field], category_id)
        updated = category.model_copy(update={**patch, "updated_at": utcnow()})
        self._categories[category_id] = updated
        return _copy(updated)

    @_locked
    def delete_category(self, category_id: int) -> bool:
        return self._categories.pop(category_id, None) is not None

    # --- Revisions ---

    @_locked
    def get_article_revisions(self, article_id: int) -> List[ArticleRevision]:
        revisions = [r for r in self._revisions.values() if r.article_id == article_id]
        # neueste zuerst; bei gleichem Zeitstempel entscheidet die id
        revisions.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return [_copy(r) for r in revisions]

    @_locked
    def create_article_revision(self, data: ArticleRevisionCreate) -> ArticleRevision:
        revision = ArticleRevision(
            **data.model_dump(), id=next(self._revision_ids), created_at=utcnow()
        )
        self._revisions[revision.id] = revision
        return _copy(revision)

    # --- Newsletter ---

    @_locked
    def get_subscriber_by_email(self, email: str) -> Optional[NewsletterSubscriber]:
        return _copy(self._find(self._subscribers, "email", email))

    @_locked
    def subscribe_to_newsletter(self, data: SubscriberCreate) -> NewsletterSubscriber:
        existing = self._find(self._subscribers, "email", data.email)
        if existing is not None:
            if not existing.unsubscribed:
                return _copy(existing)
            resubscribed = existing.model_copy(
                update={"unsubscribed": False, "subscription_date": utcnow()}
            )
            self._subscribers[existing.id] = resubscribed
            logger.info("Newsletter: %s erneut angemeldet", data.email)
            return _copy(resubscribed)

        subscriber = NewsletterSubscriber(
            **data.model_dump(),
            id=next(self._subscriber_ids),
            subscription_date=utcnow(),
            unsubscribed=False,
        )
        self._subscribers[subscriber.id] = subscriber
        logger.info("Newsletter: %s angemeldet", data.email)
        return _copy(subscriber)

    @_locked
    def unsubscribe_from_newsletter(self, email: str) -> bool:
        existing = self._find(self._subscribers, "email", email)
        if existing is None:
            return False
        self._subscribers[existing.id] = existing.model_copy(update={"unsubscribed": True})
        return True
