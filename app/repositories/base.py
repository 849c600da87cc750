"""
Storage-Schnittstelle für den CMS-Kern.

Jede Implementierung (In-Memory, SQLAlchemy, ...) bietet dieselben
Fähigkeiten pro Entität: get / list / create / update / delete. "Nicht
gefunden" wird immer über None bzw. False signalisiert, nie über eine
Exception. Eindeutigkeits-Verletzungen (Slug, Username, E-Mail) werfen
DuplicateError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from app.api.perf import DEFAULT_PAGE_SIZE
from app.core.clean_utils import slugify
from app.core.workflow import ArticleState
from app.exceptions import ValidationError
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

DEFAULT_CATEGORIES = (
    ("Programming", "programming", "Programming articles and tutorials"),
    ("AI", "ai", "Artificial Intelligence news and insights"),
    ("Mobile", "mobile", "Mobile technology and app development"),
    ("Hardware", "hardware", "Hardware reviews and tech gadgets"),
    ("Startups", "startups", "Startup news and funding updates"),
    ("Education", "education", "Tech education and learning resources"),
)

TITLE_MATCH_SCORE = 10
DEFAULT_SEARCH_LIMIT = 10


def resolve_slug(slug: Optional[str], source: str) -> str:
    """Übergebener Slug oder slugify(source); ein leeres Ergebnis ist ein Eingabefehler."""
    slug = slug or slugify(source)
    if not slug:
        raise ValidationError(
            "Cannot derive a slug, please provide one", payload={"field": "slug"}
        )
    return slug


@dataclass
class ArticleFilter:
    """Filter für list_articles(); alle gesetzten Kriterien werden UND-verknüpft."""
    category: Optional[str] = None
    tag: Optional[str] = None
    featured: Optional[bool] = None   # filtert nur bei True
    state: Optional[ArticleState] = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    def __post_init__(self):
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.state is not None:
            self.state = ArticleState(self.state)

    def matches(self, article: Article) -> bool:
        if self.category and self.category not in (article.categories or []):
            return False
        if self.tag and self.tag not in (article.tags or []):
            return False
        if self.featured and not article.featured:
            return False
        if self.state is not None and article.state != self.state:
            return False
        return True


@dataclass
class ArticlePage:
    articles: List[Article] = field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 0


# --- Suche (gemeinsam für alle Implementierungen) ---

def matches_query(article: Article, query: str) -> bool:
    """`query` muss bereits klein geschrieben sein."""
    if query in (article.title or "").lower():
        return True
    if query in (article.content or "").lower():
        return True
    if query in (article.excerpt or "").lower():
        return True
    if any(query in t.lower() for t in article.tags or []):
        return True
    return any(query in c.lower() for c in article.categories or [])


def title_score(article: Article, query: str) -> int:
    return TITLE_MATCH_SCORE if query in (article.title or "").lower() else 0


def rank_search_results(candidates: Iterable[Article], query: str, limit: int) -> List[Article]:
    """
    Nur veröffentlichte Treffer; Titel-Treffer zuerst. sorted() ist stabil,
    innerhalb gleicher Punktzahl bleibt die Ausgangsreihenfolge erhalten.
    """
    query = query.lower()
    hits = [
        a for a in candidates
        if a.state == ArticleState.PUBLISHED and matches_query(a, query)
    ]
    hits = sorted(hits, key=lambda a: title_score(a, query), reverse=True)
    return hits[:limit]


class Storage(ABC):
    """Fähigkeiten-Set des Storage. Implementierungen sind austauschbar."""

    def init(self) -> None:
        """Legt die Standard-Kategorien an (idempotent)."""
        for name, slug, description in DEFAULT_CATEGORIES:
            if self.get_category_by_slug(slug) is None:
                self.create_category(
                    CategoryCreate(name=name, slug=slug, description=description)
                )

    # --- Users ---
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, data: UserCreate) -> User: ...

    @abstractmethod
    def update_user(self, user_id: int, patch: Dict[str, Any]) -> Optional[User]: ...

    # --- Articles ---
    @abstractmethod
    def get_article(self, article_id: int) -> Optional[Article]: ...

    @abstractmethod
    def get_article_by_slug(self, slug: str) -> Optional[Article]: ...

    @abstractmethod
    def list_articles(self, filter: Optional[ArticleFilter] = None) -> ArticlePage: ...

    @abstractmethod
    def create_article(self, data: ArticleCreate) -> Article: ...

    @abstractmethod
    def update_article(self, article_id: int, patch: Dict[str, Any]) -> Optional[Article]: ...

    @abstractmethod
    def delete_article(self, article_id: int) -> bool: ...

    @abstractmethod
    def increment_views(self, article_id: int) -> Optional[Article]: ...

    @abstractmethod
    def search_articles(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> List[Article]: ...

    # --- Categories ---
    @abstractmethod
    def get_category(self, category_id: int) -> Optional[Category]: ...

    @abstractmethod
    def get_category_by_slug(self, slug: str) -> Optional[Category]: ...

    @abstractmethod
    def list_categories(self) -> List[Category]: ...

    @abstractmethod
    def create_category(self, data: CategoryCreate) -> Category: ...

    @abstractmethod
    def update_category(self, category_id: int, patch: Dict[str, Any]) -> Optional[Category]: ...

    @abstractmethod
    def delete_category(self, category_id: int) -> bool: ...

    def check_category_acyclic(self, category_id: int, parent_id: Optional[int]) -> bool:
        """
        True, wenn `parent_id` als Elternteil von `category_id` keinen Zyklus
        erzeugt. Läuft die Elternkette von parent_id nach oben.
        """
        seen = set()
        current = parent_id
        while current is not None:
            if current == category_id or current in seen:
                return False
            seen.add(current)
            parent = self.get_category(current)
            if parent is None:
                return True
            current = parent.parent_id
        return True

    # --- Revisions ---
    @abstractmethod
    def get_article_revisions(self, article_id: int) -> List[ArticleRevision]: ...

    @abstractmethod
    def create_article_revision(self, data: ArticleRevisionCreate) -> ArticleRevision: ...

    # --- Newsletter ---
    @abstractmethod
    def get_subscriber_by_email(self, email: str) -> Optional[NewsletterSubscriber]: ...

    @abstractmethod
    def subscribe_to_newsletter(self, data: SubscriberCreate) -> NewsletterSubscriber: ...

    @abstractmethod
    def unsubscribe_from_newsletter(self, email: str) -> bool: ...
