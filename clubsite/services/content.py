"""News articles and visitor likes."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from flask import current_app

from clubsite.errors import ConflictError, NotFoundError, ValidationError
from clubsite.models import NewsArticle, plan_limit
from clubsite.models.documents import parse_timestamp
from clubsite.services.docstore import (
    DESCENDING,
    SERVER_TIMESTAMP,
    CollectionReference,
    DocumentStore,
    get_store,
    utcnow,
)
from clubsite.services.identity import ResolvedClub, ResolveMode, require_club


def news_collection(store: DocumentStore, owner_uid: str) -> CollectionReference:
    return store.collection('clubs').document(owner_uid).collection('news')


def list_news(club: ResolvedClub, store: DocumentStore | None = None) -> list[NewsArticle]:
    store = store or get_store()
    query = news_collection(store, club.owner_uid).order_by('publishedAt', DESCENDING)
    return [NewsArticle.from_snapshot(snap) for snap in query.stream()]


def create_news(club: ResolvedClub, body: Mapping[str, Any], store: DocumentStore | None = None) -> NewsArticle:
    """
    Create a news article, enforcing the per-plan article limit.

    Raises:
        ValidationError: missing title
        ConflictError: the plan's news limit is reached
    """
    store = store or get_store()
    title = body.get('title')
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required", field='title')

    collection = news_collection(store, club.owner_uid)
    limit = plan_limit('news_per_club', club.profile.plan)
    if len(collection.get()) >= limit:
        raise ConflictError(
            f"The {club.profile.plan.value} plan allows at most {int(limit)} news articles"
        )

    published_at = parse_timestamp(body.get('publishedAt')) or utcnow()
    payload: dict[str, Any] = {
        'title': title.strip(),
        'content': body.get('content') if isinstance(body.get('content'), str) else '',
        'publishedAt': published_at,
        'featuredInHero': body.get('featuredInHero') is True,
        'likeCount': 0,
        'createdAt': SERVER_TIMESTAMP,
    }
    for key in ('imageUrl', 'category'):
        if isinstance(body.get(key), str) and body[key]:
            payload[key] = body[key]

    ref = collection.document()
    ref.create(payload)
    current_app.logger.info(f"Created news {ref.id} for club {club.owner_uid}")
    return NewsArticle.from_snapshot(ref.get())


def delete_news(club: ResolvedClub, news_id: str, store: DocumentStore | None = None) -> bool:
    """Delete an article and its likes. Returns False when it did not exist."""
    store = store or get_store()
    ref = news_collection(store, club.owner_uid).document(news_id)
    if not ref.get().exists:
        return False
    batch = store.batch()
    for like in ref.collection('likes').get():
        batch.delete(like.reference)
    batch.delete(ref)
    batch.commit()
    return True


def toggle_like(
    club_identifier: str,
    news_id: str,
    visitor_id: str,
    store: DocumentStore | None = None,
) -> tuple[bool, int]:
    """
    Flip a visitor's like on an article inside one transaction.

    Returns:
        (liked, like_count)
    """
    store = store or get_store()
    for name, value in (('clubId', club_identifier), ('newsId', news_id), ('visitorId', visitor_id)):
        if not isinstance(value, str) or not value.strip() or '/' in value:
            raise ValidationError(f"{name} is required", field=name)

    club = require_club(club_identifier, mode=ResolveMode.PUBLIC, store=store)
    news_ref = news_collection(store, club.owner_uid).document(news_id)
    like_ref = news_ref.collection('likes').document(visitor_id)

    with store.transaction() as txn:
        article = txn.get(news_ref)
        if not article.exists:
            raise NotFoundError("News article not found")
        like = txn.get(like_ref)
        count = NewsArticle.from_snapshot(article).like_count

        if like.exists:
            liked = False
            count = max(0, count - 1)
            txn.delete(like_ref)
        else:
            liked = True
            count += 1
            txn.set(like_ref, {'createdAt': SERVER_TIMESTAMP})
        txn.update(news_ref, {'likeCount': count})

    return liked, count


def format_published(value: datetime | None) -> str:
    return value.strftime('%Y.%m.%d') if value else ''


__all__ = [
    'news_collection',
    'list_news',
    'create_news',
    'delete_news',
    'toggle_like',
    'format_published',
]
