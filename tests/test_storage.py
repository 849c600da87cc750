# tests/test_storage.py
# (läuft für MemStorage und SqlStorage, siehe conftest.storage)
from datetime import datetime, timezone
from math import ceil
import pytest

from app.core.workflow import ArticleState
from app.exceptions import DuplicateError, ValidationError
from app.repositories.base import ArticleFilter, DEFAULT_CATEGORIES
from app.schemas import (
    ArticleCreate, ArticleRevisionCreate, CategoryCreate, SubscriberCreate, UserCreate,
)


def _utc(y, m, d, H=0, M=0):
    return datetime(y, m, d, H, M, tzinfo=timezone.utc)


def _create(storage, title, **kw):
    kw.setdefault("slug", title.lower().replace(" ", "-"))
    return storage.create_article(ArticleCreate(title=title, **kw))


def _publish(storage, article, when):
    return storage.update_article(article.id, {"state": ArticleState.PUBLISHED, "published_at": when})


# --- Seed ---

def test_init_seeds_default_categories(storage):
    names = [c.name for c in storage.list_categories()]
    assert names == [name for name, _, _ in DEFAULT_CATEGORIES]


def test_init_is_idempotent(storage):
    storage.init()
    assert len(storage.list_categories()) == len(DEFAULT_CATEGORIES)


# --- Articles: CRUD ---

def test_create_article_defaults(storage):
    a = _create(storage, "First", content="<p>Hello <b>world</b></p>", categories=["AI"])
    assert a.id == 1
    assert a.state == ArticleState.DRAFT
    assert a.views == 0
    assert a.created_at == a.updated_at
    assert a.published_at is None
    assert a.excerpt == "Hello world"


def test_create_article_derives_slug(storage):
    a = storage.create_article(ArticleCreate(title="Hello  World!"))
    assert a.slug == "hello-world"


def test_ids_strictly_increasing_and_never_reused(storage):
    ids = [_create(storage, f"a{i}").id for i in range(3)]
    for i in ids:
        assert storage.delete_article(i) is True
    ids += [_create(storage, f"b{i}").id for i in range(2)]
    assert ids == sorted(ids)
    assert len(set(ids)) == len(ids)
    assert ids[-1] == 5


def test_get_article_and_by_slug(storage):
    a = _create(storage, "Slugged")
    assert storage.get_article(a.id).title == "Slugged"
    assert storage.get_article_by_slug("slugged").id == a.id
    assert storage.get_article(999) is None
    assert storage.get_article_by_slug("nope") is None


def test_underivable_slug_rejected(storage):
    with pytest.raises(ValidationError) as exc:
        storage.create_article(ArticleCreate(title="!!!"))
    assert exc.value.payload == {"field": "slug"}
    with pytest.raises(ValidationError):
        storage.create_category(CategoryCreate(name="???"))
    assert storage.list_articles().total == 0
    # mit explizitem Slug geht es
    assert storage.create_article(ArticleCreate(title="!!!", slug="bang")).slug == "bang"


def test_duplicate_slug_rejected(storage):
    _create(storage, "Same", slug="same")
    with pytest.raises(DuplicateError):
        _create(storage, "Other", slug="same")


def test_update_to_taken_slug_rejected(storage):
    _create(storage, "One", slug="one")
    two = _create(storage, "Two", slug="two")
    with pytest.raises(DuplicateError):
        storage.update_article(two.id, {"slug": "one"})
    # eigener Slug ist kein Konflikt
    assert storage.update_article(two.id, {"slug": "two"}).slug == "two"


def test_partial_update_preserves_untouched_fields(storage):
    a = _create(storage, "Orig", content="body", categories=["AI"], tags=["x"])
    updated = storage.update_article(a.id, {"title": "X"})
    assert updated.title == "X"
    assert updated.content == "body"
    assert updated.categories == ["AI"]
    assert updated.tags == ["x"]
    assert updated.state == ArticleState.DRAFT
    assert updated.updated_at >= a.updated_at
    assert updated.created_at == a.created_at


def test_update_cannot_change_id(storage):
    a = _create(storage, "Keep")
    updated = storage.update_article(a.id, {"id": 42, "title": "Kept"})
    assert updated.id == a.id
    assert storage.get_article(42) is None


def test_update_missing_returns_none(storage):
    assert storage.update_article(404, {"title": "x"}) is None


def test_returned_articles_are_copies(storage):
    a = _create(storage, "Copy", categories=["AI"])
    a.categories.append("Hacked")
    a.title = "changed"
    fresh = storage.get_article(a.id)
    assert fresh.categories == ["AI"]
    assert fresh.title == "Copy"


def test_delete_cascades_revisions(storage):
    a = _create(storage, "Doomed")
    other = _create(storage, "Survivor")
    for i in range(3):
        storage.create_article_revision(ArticleRevisionCreate(article_id=a.id, content=f"v{i}"))
    storage.create_article_revision(ArticleRevisionCreate(article_id=other.id, content="keep"))

    assert storage.delete_article(a.id) is True
    assert storage.get_article(a.id) is None
    assert storage.get_article_revisions(a.id) == []
    assert len(storage.get_article_revisions(other.id)) == 1
    assert storage.delete_article(a.id) is False


def test_increment_views(storage):
    a = _create(storage, "Viewed")
    storage.increment_views(a.id)
    assert storage.increment_views(a.id).views == 2
    assert storage.increment_views(999) is None


# --- Articles: Listing ---

def test_list_sorted_by_effective_date(storage):
    old = _create(storage, "Old")
    new = _create(storage, "New")
    mid = _create(storage, "Mid")
    _publish(storage, old, _utc(2020, 1, 1))
    _publish(storage, mid, _utc(2021, 1, 1))
    # "new" ist Entwurf: createdAt (jetzt) zählt
    result = storage.list_articles()
    assert [a.id for a in result.articles] == [new.id, mid.id, old.id]


@pytest.mark.parametrize("total, limit, page", [
    (0, 10, 1), (7, 3, 1), (7, 3, 3), (7, 3, 4), (10, 5, 2), (10, 5, 9),
])
def test_pagination_math(storage, total, limit, page):
    for i in range(total):
        _create(storage, f"p{i}")
    result = storage.list_articles(ArticleFilter(page=page, limit=limit))
    expected = min(limit, max(0, total - (page - 1) * limit))
    assert len(result.articles) == expected
    assert result.total == total
    assert result.page == page
    assert result.total_pages == ceil(total / limit)


def test_pages_do_not_overlap(storage):
    for i in range(5):
        a = _create(storage, f"p{i}")
        _publish(storage, a, _utc(2024, 1, 1 + i))
    first = storage.list_articles(ArticleFilter(page=1, limit=2)).articles
    second = storage.list_articles(ArticleFilter(page=2, limit=2)).articles
    third = storage.list_articles(ArticleFilter(page=3, limit=2)).articles
    ids = [a.id for a in first + second + third]
    assert ids == [5, 4, 3, 2, 1]


def test_list_filters_are_anded(storage):
    a = _create(storage, "A", categories=["AI"], tags=["ml"], featured=True)
    _create(storage, "B", categories=["AI"], tags=["web"])
    _create(storage, "C", categories=["Mobile"], tags=["ml"], featured=True)
    _publish(storage, a, _utc(2024, 1, 1))

    assert storage.list_articles(ArticleFilter(category="AI")).total == 2
    assert storage.list_articles(ArticleFilter(tag="ml")).total == 2
    assert storage.list_articles(ArticleFilter(featured=True)).total == 2
    assert storage.list_articles(ArticleFilter(featured=False)).total == 3
    assert storage.list_articles(ArticleFilter(state="published")).total == 1

    both = storage.list_articles(ArticleFilter(category="AI", tag="ml", featured=True))
    assert [x.id for x in both.articles] == [a.id]


def test_filter_rejects_non_positive_paging():
    with pytest.raises(ValueError):
        ArticleFilter(page=0)
    with pytest.raises(ValueError):
        ArticleFilter(limit=0)


# --- Search ---

def test_search_only_published(storage):
    a = _create(storage, "Hello draft", content="hello hello hello")
    b = _create(storage, "Other", content="say hello")
    _publish(storage, b, _utc(2024, 1, 1))
    hits = storage.search_articles("hello")
    assert [h.id for h in hits] == [b.id]
    assert a.id not in [h.id for h in hits]


def test_search_fields_case_insensitive(storage):
    by_title = _create(storage, "Python Tips")
    by_excerpt = _create(storage, "E", excerpt="all about PYTHON")
    by_tag = _create(storage, "T", tags=["Python3"])
    by_category = _create(storage, "C", categories=["Python"])
    nothing = _create(storage, "N", content="rust")
    for a in (by_title, by_excerpt, by_tag, by_category, nothing):
        _publish(storage, a, _utc(2024, 1, 1))

    ids = {h.id for h in storage.search_articles("PyThOn")}
    assert ids == {by_title.id, by_excerpt.id, by_tag.id, by_category.id}


def test_search_title_matches_first_and_stable(storage):
    c1 = _create(storage, "First", content="about gadgets")
    t1 = _create(storage, "Gadgets weekly")
    c2 = _create(storage, "Second", content="more gadgets")
    t2 = _create(storage, "Best gadgets")
    for a in (c1, t1, c2, t2):
        _publish(storage, a, _utc(2024, 1, 1))

    hits = storage.search_articles("gadgets")
    assert [h.id for h in hits] == [t1.id, t2.id, c1.id, c2.id]


def test_search_limit(storage):
    for i in range(5):
        a = _create(storage, f"news {i}")
        _publish(storage, a, _utc(2024, 1, 1))
    assert len(storage.search_articles("news", limit=3)) == 3
    assert len(storage.search_articles("news")) == 5


# --- Categories ---

def test_category_crud(storage):
    c = storage.create_category(CategoryCreate(name="Science Fiction"))
    assert c.slug == "science-fiction"
    assert storage.get_category_by_slug("science-fiction").id == c.id

    updated = storage.update_category(c.id, {"description": "Futures"})
    assert updated.description == "Futures"
    assert updated.name == "Science Fiction"

    assert storage.delete_category(c.id) is True
    assert storage.get_category(c.id) is None
    assert storage.delete_category(c.id) is False
    assert storage.update_category(c.id, {"name": "x"}) is None


def test_category_name_unique(storage):
    with pytest.raises(DuplicateError):
        storage.create_category(CategoryCreate(name="AI", slug="ai-2"))


def test_category_cycle_check(storage):
    parent = storage.create_category(CategoryCreate(name="Parent"))
    child = storage.create_category(CategoryCreate(name="Child", parent_id=parent.id))
    assert storage.check_category_acyclic(child.id, parent.id)
    assert not storage.check_category_acyclic(parent.id, child.id)
    assert not storage.check_category_acyclic(parent.id, parent.id)
    assert storage.check_category_acyclic(parent.id, None)


# --- Users ---

def test_user_crud_and_uniqueness(storage):
    u = storage.create_user(UserCreate(username="ada", email="ada@example.com", password="pw"))
    assert u.role.value == "author"
    assert storage.get_user_by_username("ada").id == u.id
    assert storage.get_user_by_email("ada@example.com").id == u.id

    with pytest.raises(DuplicateError):
        storage.create_user(UserCreate(username="ada", email="other@example.com", password="pw"))
    with pytest.raises(DuplicateError):
        storage.create_user(UserCreate(username="bob", email="ada@example.com", password="pw"))

    updated = storage.update_user(u.id, {"display_name": "Ada L."})
    assert updated.display_name == "Ada L."
    assert updated.username == "ada"
    assert storage.update_user(999, {"bio": "x"}) is None


# --- Revisions ---

def test_revisions_newest_first(storage):
    a = _create(storage, "Rev")
    ids = [
        storage.create_article_revision(ArticleRevisionCreate(article_id=a.id, content=f"v{i}")).id
        for i in range(3)
    ]
    revisions = storage.get_article_revisions(a.id)
    assert [r.id for r in revisions] == list(reversed(ids))


# --- Newsletter ---

def test_subscribe_is_idempotent(storage):
    first = storage.subscribe_to_newsletter(SubscriberCreate(email="a@example.com", name="A"))
    second = storage.subscribe_to_newsletter(SubscriberCreate(email="a@example.com"))
    assert first.id == second.id
    assert second.unsubscribed is False
    assert second.subscription_date == first.subscription_date


def test_resubscribe_flips_unsubscribed(storage):
    first = storage.subscribe_to_newsletter(SubscriberCreate(email="a@example.com"))
    assert storage.unsubscribe_from_newsletter("a@example.com") is True
    assert storage.get_subscriber_by_email("a@example.com").unsubscribed is True

    again = storage.subscribe_to_newsletter(SubscriberCreate(email="a@example.com"))
    assert again.id == first.id
    assert again.unsubscribed is False
    assert again.subscription_date >= first.subscription_date


def test_unsubscribe_unknown(storage):
    assert storage.unsubscribe_from_newsletter("nobody@example.com") is False
