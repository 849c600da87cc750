# app/services/publishing.py

"""
Verbindet Workflow und Storage: Aktionen prüfen, Ergebnis speichern,
Revisionen anlegen und fällige geplante Artikel veröffentlichen.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.dates import ensure_utc, utcnow
from app.core.workflow import (
    ArticleState,
    WorkflowAction,
    action_for_state,
    apply_action,
    check_schedule,
    due_for_publication,
)
from app.repositories.base import ArticleFilter, Storage
from app.schemas import Article, ArticleRevisionCreate

logger = logging.getLogger(__name__)

SCAN_PAGE_SIZE = 100


def transition_article(
    storage: Storage,
    article_id: int,
    action: WorkflowAction | str,
    scheduled_publish: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Optional[Article]:
    """
    Führt eine Workflow-Aktion aus und speichert das Ergebnis.
    None, wenn der Artikel nicht existiert; WorkflowError, wenn die Aktion
    abgelehnt wird (dann bleibt der gespeicherte Artikel unverändert).
    """
    article = storage.get_article(article_id)
    if article is None:
        return None

    if scheduled_publish is not None:
        scheduled_publish = ensure_utc(scheduled_publish)
    transition = apply_action(action, article, now=now, scheduled_publish=scheduled_publish)

    updated = storage.update_article(article_id, transition.changes)
    logger.info(
        "Artikel %s: %s -> %s",
        article_id, transition.from_state.value, transition.to_state.value,
    )
    return updated


def save_article_changes(
    storage: Storage,
    article_id: int,
    patch: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Optional[Article]:
    """
    Teil-Update aus dem API. Ein geänderter `state` läuft über den Workflow
    (inkl. Pflichtfeld-Prüfung gegen den zusammengeführten Stand). Ändert sich
    der Inhalt, wird der bisherige Inhalt als Revision gesichert.
    """
    current = storage.get_article(article_id)
    if current is None:
        return None

    patch = dict(patch)
    if patch.get("scheduled_publish") is not None:
        patch["scheduled_publish"] = ensure_utc(patch["scheduled_publish"])

    target = patch.pop("state", None)
    transition = None
    if target is not None and ArticleState(target) != current.state:
        merged = {**current.model_dump(), **patch}
        transition = apply_action(
            action_for_state(target),
            merged,
            now=now,
            scheduled_publish=patch.get("scheduled_publish"),
        )
        patch.update(transition.changes)
    elif current.state == ArticleState.SCHEDULED and "scheduled_publish" in patch:
        # Termin eines bereits geplanten Artikels verschieben: gleiche Regeln wie "schedule"
        patch["scheduled_publish"] = check_schedule(patch["scheduled_publish"], now)

    updated = storage.update_article(article_id, patch)

    if "content" in patch and patch["content"] != current.content:
        storage.create_article_revision(
            ArticleRevisionCreate(
                article_id=article_id,
                content=current.content,
                author_id=patch.get("author_id", current.author_id),
                note="Before update",
            )
        )

    if transition is not None:
        logger.info(
            "Artikel %s: %s -> %s",
            article_id, transition.from_state.value, transition.to_state.value,
        )
    return updated


def iter_articles(storage: Storage, state: Optional[ArticleState] = None):
    page = 1
    while True:
        result = storage.list_articles(ArticleFilter(state=state, page=page, limit=SCAN_PAGE_SIZE))
        yield from result.articles
        if page >= result.total_pages:
            return
        page += 1


def publish_due_articles(storage: Storage, now: Optional[datetime] = None) -> List[Article]:
    """Veröffentlicht alle geplanten Artikel, deren Termin erreicht ist."""
    now = ensure_utc(now) if now else utcnow()
    # erst sammeln, dann ändern (Änderungen verschieben die Sortierung)
    due = [a for a in iter_articles(storage, ArticleState.SCHEDULED) if due_for_publication(a, now)]

    published = []
    for article in due:
        updated = storage.update_article(
            article.id,
            {
                "state": ArticleState.PUBLISHED,
                "published_at": article.scheduled_publish,
                "scheduled_publish": None,
            },
        )
        if updated is not None:
            published.append(updated)
            logger.info("Artikel %s planmäßig veröffentlicht", article.id)
    return published
