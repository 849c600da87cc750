# ============================
# 📁 app/api/routes.py
# (hier sammelst du alle Endpunkte)

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from app.api.perf import pagination_params
from app.config import Settings
from app.core.workflow import ArticleState
from app.exceptions import NotFoundError, ValidationError
from app.repositories.base import ArticleFilter, Storage
from app.schemas import (
    Article,
    ArticleCreate,
    ArticleListResponse,
    ArticleRevision,
    ArticleRevisionCreate,
    ArticleUpdate,
    Category,
    CategoryCreate,
    CategoryUpdate,
    NewsletterSubscriber,
    RevisionPayload,
    SubscriberCreate,
    TransitionRequest,
    UnsubscribeRequest,
    UserCreate,
    UserPublic,
    UserUpdate,
)
from app.services.publishing import save_article_changes, transition_article

router = APIRouter(prefix="/api")


# --- Abhängigkeiten (Storage-Handle hängt an app.state, siehe create_app) ---

def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _article_or_404(storage: Storage, article_id: int) -> Article:
    article = storage.get_article(article_id)
    if article is None:
        raise NotFoundError("Article not found")
    return article


def _public(user) -> UserPublic:
    # Passwort nie ausliefern
    return UserPublic.model_validate(user.model_dump(exclude={"password"}))


# -----------------------------
# Artikel
# -----------------------------
@router.get("/articles", response_model=ArticleListResponse)
def list_articles(
    category: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    featured: Optional[bool] = Query(None),
    state: Optional[ArticleState] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    # zu große Seiten ablehnen statt still zu kürzen (totalPages bezieht sich auf limit)
    if limit is not None and limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(
            f"limit must not exceed {settings.MAX_PAGE_SIZE}", payload={"field": "limit"}
        )
    page, limit = pagination_params(
        page, limit,
        default_limit=settings.DEFAULT_PAGE_SIZE,
        max_limit=settings.MAX_PAGE_SIZE,
    )
    result = storage.list_articles(
        ArticleFilter(category=category, tag=tag, featured=featured, state=state,
                      page=page, limit=limit)
    )
    return ArticleListResponse(
        articles=result.articles,
        total=result.total,
        page=result.page,
        total_pages=result.total_pages,
    )


@router.get("/articles/slug/{slug}", response_model=Article)
def get_article_by_slug(slug: str, storage: Storage = Depends(get_storage)):
    article = storage.get_article_by_slug(slug)
    if article is None:
        raise NotFoundError("Article not found")
    return article


@router.get("/articles/{article_id}", response_model=Article)
def get_article(article_id: int, storage: Storage = Depends(get_storage)):
    return _article_or_404(storage, article_id)


@router.post("/articles", response_model=Article, status_code=201)
def create_article(payload: ArticleCreate, storage: Storage = Depends(get_storage)):
    return storage.create_article(payload)


@router.put("/articles/{article_id}", response_model=Article)
def update_article(article_id: int, payload: ArticleUpdate, storage: Storage = Depends(get_storage)):
    patch = payload.to_patch()
    updated = save_article_changes(storage, article_id, patch)
    if updated is None:
        raise NotFoundError("Article not found")
    return updated


@router.delete("/articles/{article_id}", status_code=204)
def delete_article(article_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_article(article_id):
        raise NotFoundError("Article not found")
    return Response(status_code=204)


@router.post("/articles/{article_id}/transition", response_model=Article)
def transition(article_id: int, payload: TransitionRequest, storage: Storage = Depends(get_storage)):
    updated = transition_article(
        storage, article_id, payload.action, scheduled_publish=payload.scheduled_publish
    )
    if updated is None:
        raise NotFoundError("Article not found")
    return updated


@router.post("/articles/{article_id}/views", response_model=Article)
def record_view(article_id: int, storage: Storage = Depends(get_storage)):
    updated = storage.increment_views(article_id)
    if updated is None:
        raise NotFoundError("Article not found")
    return updated


# -----------------------------
# Revisionen
# -----------------------------
@router.get("/articles/{article_id}/revisions", response_model=list[ArticleRevision])
def list_revisions(article_id: int, storage: Storage = Depends(get_storage)):
    _article_or_404(storage, article_id)
    return storage.get_article_revisions(article_id)


@router.post("/articles/{article_id}/revisions", response_model=ArticleRevision, status_code=201)
def create_revision(article_id: int, payload: RevisionPayload, storage: Storage = Depends(get_storage)):
    _article_or_404(storage, article_id)
    return storage.create_article_revision(
        ArticleRevisionCreate(article_id=article_id, **payload.model_dump())
    )


# -----------------------------
# Kategorien
# -----------------------------
@router.get("/categories", response_model=list[Category])
def list_categories(storage: Storage = Depends(get_storage)):
    return storage.list_categories()


@router.get("/categories/{slug}", response_model=Category)
def get_category(slug: str, storage: Storage = Depends(get_storage)):
    category = storage.get_category_by_slug(slug)
    if category is None:
        raise NotFoundError("Category not found")
    return category


@router.post("/categories", response_model=Category, status_code=201)
def create_category(payload: CategoryCreate, storage: Storage = Depends(get_storage)):
    if payload.parent_id is not None and storage.get_category(payload.parent_id) is None:
        raise ValidationError("Parent category not found", payload={"field": "parentId"})
    return storage.create_category(payload)


@router.put("/categories/{category_id}", response_model=Category)
def update_category(category_id: int, payload: CategoryUpdate, storage: Storage = Depends(get_storage)):
    if storage.get_category(category_id) is None:
        raise NotFoundError("Category not found")

    patch = payload.to_patch()
    parent_id = patch.get("parent_id")
    if parent_id is not None:
        if storage.get_category(parent_id) is None:
            raise ValidationError("Parent category not found", payload={"field": "parentId"})
        if not storage.check_category_acyclic(category_id, parent_id):
            raise ValidationError("Category hierarchy must not contain cycles",
                                  payload={"field": "parentId"})

    updated = storage.update_category(category_id, patch)
    if updated is None:
        raise NotFoundError("Category not found")
    return updated


@router.delete("/categories/{category_id}", status_code=204)
def delete_category(category_id: int, storage: Storage = Depends(get_storage)):
    if not storage.delete_category(category_id):
        raise NotFoundError("Category not found")
    return Response(status_code=204)


# -----------------------------
# Newsletter
# -----------------------------
@router.post("/newsletter/subscribe", response_model=NewsletterSubscriber, status_code=201)
def subscribe(payload: SubscriberCreate, storage: Storage = Depends(get_storage)):
    return storage.subscribe_to_newsletter(payload)


@router.post("/newsletter/unsubscribe", status_code=204)
def unsubscribe(payload: UnsubscribeRequest, storage: Storage = Depends(get_storage)):
    if not storage.unsubscribe_from_newsletter(payload.email):
        raise NotFoundError("Subscriber not found")
    return Response(status_code=204)


# -----------------------------
# Suche
# -----------------------------
@router.get("/search", response_model=list[Article])
def search(
    q: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    storage: Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    if not q or not q.strip():
        raise ValidationError("Search query is required", payload={"field": "q"})
    return storage.search_articles(q, limit or settings.SEARCH_DEFAULT_LIMIT)


# -----------------------------
# Users (Passwort wird nie ausgeliefert)
# -----------------------------
@router.get("/users/{user_id}", response_model=UserPublic)
def get_user(user_id: int, storage: Storage = Depends(get_storage)):
    user = storage.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return _public(user)


@router.post("/users", response_model=UserPublic, status_code=201)
def create_user(payload: UserCreate, storage: Storage = Depends(get_storage)):
    return _public(storage.create_user(payload))


@router.put("/users/{user_id}", response_model=UserPublic)
def update_user(user_id: int, payload: UserUpdate, storage: Storage = Depends(get_storage)):
    updated = storage.update_user(user_id, payload.to_patch())
    if updated is None:
        raise NotFoundError("User not found")
    return _public(updated)
