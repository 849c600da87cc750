# ============================
# 📁 app/core/workflow.py
"""
Redaktions-Workflow für Artikel.

Zustände:
    draft → pending_review → approved → published
      │            │             └────→ scheduled → (fällig) published
      └────────────┴──────────────────→ published / scheduled

"save_draft" ist aus jedem Zustand erlaubt und prüft nichts (Entwürfe dürfen
unvollständig sein). "publish" und "schedule" verlangen Titel, Inhalt, Slug
und mindestens eine Kategorie; "schedule" zusätzlich einen Zeitpunkt in der
Zukunft.

Das Modul persistiert nichts: apply_action() liefert nur den neuen Zustand
plus abgeleitete Felder, das Speichern übernimmt der Aufrufer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set

from app.core.dates import ensure_utc, utcnow


class ArticleState(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"


class WorkflowAction(str, Enum):
    SAVE_DRAFT = "save_draft"
    SUBMIT = "submit"
    APPROVE = "approve"
    PUBLISH = "publish"
    SCHEDULE = "schedule"


# Aktion -> (erlaubte Ausgangszustände, Zielzustand); None = aus jedem Zustand
_PUBLISHABLE_FROM = {ArticleState.DRAFT, ArticleState.PENDING_REVIEW, ArticleState.APPROVED}

ACTIONS: Dict[WorkflowAction, tuple[Optional[Set[ArticleState]], ArticleState]] = {
    WorkflowAction.SAVE_DRAFT: (None, ArticleState.DRAFT),
    WorkflowAction.SUBMIT: ({ArticleState.DRAFT}, ArticleState.PENDING_REVIEW),
    WorkflowAction.APPROVE: ({ArticleState.PENDING_REVIEW}, ArticleState.APPROVED),
    WorkflowAction.PUBLISH: (_PUBLISHABLE_FROM, ArticleState.PUBLISHED),
    WorkflowAction.SCHEDULE: (_PUBLISHABLE_FROM, ArticleState.SCHEDULED),
}

# Reihenfolge der Pflichtfeld-Prüfung vor publish/schedule
REQUIRED_FOR_PUBLICATION = ("title", "content", "slug", "categories")


class WorkflowError(ValueError):
    """Basis für abgelehnte Workflow-Aktionen."""


class WorkflowValidationError(WorkflowError):
    """Pflichtfeld fehlt oder ist leer; `field` nennt es (camelCase wie im API)."""

    def __init__(self, field_name: str, message: str | None = None):
        self.field = field_name
        super().__init__(message or f"Missing required field: {field_name}")


class InvalidTransitionError(WorkflowError):
    def __init__(self, action: WorkflowAction, current: ArticleState):
        self.action = action
        self.current = current
        super().__init__(f"Cannot {action.value} an article in state '{current.value}'")


@dataclass
class Transition:
    """Ergebnis einer erlaubten Aktion: neuer Zustand + zu setzende Felder."""
    from_state: ArticleState
    to_state: ArticleState
    changes: Dict[str, Any] = field(default_factory=dict)


def action_for_state(target: ArticleState | str) -> WorkflowAction:
    """Übersetzt einen gewünschten Zielzustand (z.B. aus PUT) in die passende Aktion."""
    target = ArticleState(target)
    for action, (_, to_state) in ACTIONS.items():
        if to_state == target:
            return action
    raise ValueError(f"Unknown state: {target}")


def _get(article: Any, name: str):
    if isinstance(article, dict):
        return article.get(name)
    return getattr(article, name, None)


def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


def validate_for_publication(article: Any) -> None:
    for name in REQUIRED_FOR_PUBLICATION:
        if _is_blank(_get(article, name)):
            raise WorkflowValidationError(name)


def allowed_actions(current: ArticleState | str) -> list[WorkflowAction]:
    current = ArticleState(current)
    return [
        action
        for action, (sources, _) in ACTIONS.items()
        if sources is None or current in sources
    ]


def apply_action(
    action: WorkflowAction | str,
    article: Any,
    now: Optional[datetime] = None,
    scheduled_publish: Optional[datetime] = None,
) -> Transition:
    """
    Prüft `action` gegen den aktuellen Artikel (Objekt oder dict mit snake_case-Feldern).

    Wirft InvalidTransitionError, wenn die Aktion im aktuellen Zustand nicht
    erlaubt ist, bzw. WorkflowValidationError mit dem fehlenden Feld.
    """
    action = WorkflowAction(action)
    now = ensure_utc(now) if now else utcnow()
    current = ArticleState(_get(article, "state") or ArticleState.DRAFT)

    sources, target = ACTIONS[action]
    if sources is not None and current not in sources:
        raise InvalidTransitionError(action, current)

    changes: Dict[str, Any] = {"state": target}

    if action == WorkflowAction.SAVE_DRAFT:
        changes["scheduled_publish"] = None

    elif action == WorkflowAction.PUBLISH:
        validate_for_publication(article)
        changes["published_at"] = now
        changes["scheduled_publish"] = None

    elif action == WorkflowAction.SCHEDULE:
        validate_for_publication(article)
        when = scheduled_publish or _get(article, "scheduled_publish")
        changes["scheduled_publish"] = check_schedule(when, now)

    return Transition(from_state=current, to_state=target, changes=changes)


def check_schedule(when: Optional[datetime], now: Optional[datetime] = None) -> datetime:
    """Geplanter Termin muss gesetzt sein und in der Zukunft liegen; liefert ihn in UTC."""
    if when is None:
        raise WorkflowValidationError("scheduledPublish")
    now = ensure_utc(now) if now else utcnow()
    when = ensure_utc(when)
    if when <= now:
        raise WorkflowValidationError(
            "scheduledPublish", "scheduledPublish must be in the future"
        )
    return when


def due_for_publication(article: Any, now: Optional[datetime] = None) -> bool:
    """True für geplante Artikel, deren Termin erreicht ist."""
    if ArticleState(_get(article, "state")) != ArticleState.SCHEDULED:
        return False
    when = _get(article, "scheduled_publish")
    if when is None:
        return False
    now = ensure_utc(now) if now else utcnow()
    return ensure_utc(when) <= now
