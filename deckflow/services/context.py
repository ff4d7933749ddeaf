"""
Knowledge-base retrieval and theme resolution collaborators.

Retrieval is opaque to the pipeline: anything with
`retrieve(user_id, query, k) -> str` will do. The default searches the
documents table with PostgreSQL full-text ranking, or a plain ILIKE scan
when FF_USE_FULL_TEXT_SEARCH is off (or on SQLite).
"""

import logging
from typing import Optional, Protocol

from sqlalchemy import or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import PreflightRejected
from ..core.flags import get_flags
from ..models.document import Document
from ..models.theme import Theme

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 400


class ContextRetriever(Protocol):
    async def retrieve(self, user_id: str, query: str, k: int = 5) -> str:
        ...


class NullRetriever:
    """No knowledge base: every query yields empty context."""

    async def retrieve(self, user_id: str, query: str, k: int = 5) -> str:
        return ""


def slide_query(title: str, lines: list[str], max_lines: int = 3) -> str:
    """Query for one slide: its title plus the first few non-empty lines."""
    picked = [ln.strip(" -*") for ln in lines if ln.strip()][:max_lines]
    return " ".join([title, *picked]).strip()


class DocumentRetriever:
    """Searches the user's uploaded documents."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def retrieve(self, user_id: str, query: str, k: int = 5) -> str:
        if not query.strip():
            return ""

        async with self._session_factory() as db:
            use_fts = get_flags().use_full_text_search and db.bind.dialect.name == "postgresql"
            if use_fts:
                result = await db.execute(
                    text("""
                        SELECT title,
                               ts_headline('english', full_text, plainto_tsquery('english', :query),
                                   'MaxWords=60, MinWords=20') as snippet
                        FROM documents
                        WHERE user_id = :user_id
                          AND to_tsvector('english', coalesce(title, '') || ' ' || coalesce(full_text, ''))
                              @@ plainto_tsquery('english', :query)
                        ORDER BY ts_rank(
                            to_tsvector('english', coalesce(title, '') || ' ' || coalesce(full_text, '')),
                            plainto_tsquery('english', :query)
                        ) DESC
                        LIMIT :k
                    """),
                    {"query": query, "user_id": user_id, "k": k},
                )
                rows = [(r[0], r[1]) for r in result.fetchall()]
            else:
                terms = [t for t in query.split() if len(t) > 3][:5] or [query]
                conditions = []
                for term in terms:
                    conditions.append(Document.full_text.ilike(f"%{term}%"))
                    conditions.append(Document.title.ilike(f"%{term}%"))
                result = await db.execute(
                    select(Document.title, Document.full_text)
                    .where(Document.user_id == user_id, or_(*conditions))
                    .limit(k)
                )
                rows = [(r[0], (r[1] or "")[:SNIPPET_CHARS]) for r in result.all()]

        parts = []
        for title, snippet in rows:
            snippet = snippet or ""
            if len(snippet) > SNIPPET_CHARS:
                snippet = snippet[:SNIPPET_CHARS - 3] + "..."
            parts.append(f"[{title or 'Untitled'}]\n{snippet}")

        logger.debug("Retrieved %d snippet(s) for %r", len(parts), query[:60])
        return "\n\n---\n\n".join(parts)


class ThemeResolver:
    """
    Resolve a theme id: the requested one if it exists, else the
    configured default by name, else any built-in, else any theme.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default_name: str):
        self._session_factory = session_factory
        self.default_name = default_name

    async def resolve(self, theme_id: Optional[str] = None) -> str:
        async with self._session_factory() as db:
            if theme_id:
                found = await db.scalar(select(Theme.id).where(Theme.id == theme_id))
                if found:
                    return found
                logger.warning("Theme %s not found, falling back to default", theme_id)

            for query in (
                select(Theme.id).where(Theme.name == self.default_name),
                select(Theme.id).where(Theme.is_builtin.is_(True)).order_by(Theme.name),
                select(Theme.id).order_by(Theme.name),
            ):
                found = await db.scalar(query.limit(1))
                if found:
                    return found

        raise PreflightRejected("No themes are available. Seed at least one theme first.")
