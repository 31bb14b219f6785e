"""Citation aggregation for a conversation.

Citations are unique per session by ``(subject, received_on)``. A newly
seen citation is persisted to the session metadata in the background and
opens the citations panel; a mail citation with a subject also triggers
the external mail search.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from campus_assistant.engine.scheduler import BackgroundTasks
from campus_assistant.models.citations import Citation, MailSearchQuery
from campus_assistant.models.events import Answer

logger = logging.getLogger(__name__)

PersistCitation = Callable[[Citation, Optional[str]], Awaitable[Any]]
MailSearch = Callable[[MailSearchQuery], Any]
CitationListener = Callable[[list[Citation]], None]


class CitationAggregator:
    """Deduplicated, ordered set of citations for the active session."""

    def __init__(
        self,
        tasks: BackgroundTasks,
        *,
        persist: Optional[PersistCitation] = None,
        mail_search: Optional[MailSearch] = None,
        on_change: Optional[CitationListener] = None,
    ) -> None:
        self._tasks = tasks
        self._persist = persist
        self._mail_search = mail_search
        self._on_change = on_change
        self._citations: list[Citation] = []
        self._keys: set[tuple[Optional[str], Optional[str]]] = set()
        self.panel_open = False

    def __len__(self) -> int:
        return len(self._citations)

    def __contains__(self, citation: Citation) -> bool:
        return citation.key in self._keys

    @property
    def citations(self) -> list[Citation]:
        return list(self._citations)

    def handle_done(
        self, answer: Answer, session_id: Optional[str] = None
    ) -> Optional[Citation]:
        """Record the citation carried by a final answer, if it is new.

        A new citation is persisted to ``session_id``, the session that was
        active when the answer arrived.
        """
        citation = Citation.from_answer(answer)
        if citation is None:
            return None
        if not self._add(citation):
            logger.debug("Duplicate citation %r ignored", citation.key)
            return None

        if self._persist is not None:
            self._tasks.spawn(
                self._persist(citation, session_id), name="persist-citation"
            )

        self.panel_open = True
        if self._on_change is not None:
            self._on_change(self.citations)

        query = MailSearchQuery.from_citation(citation)
        if query is not None and self._mail_search is not None:
            self._tasks.spawn(self._search_mail(query), name="mail-search")
        return citation

    def replay(self, citations: Iterable[Citation]) -> None:
        """Load persisted citations without re-persisting them."""
        added = sum(1 for citation in citations if self._add(citation))
        if added and self._on_change is not None:
            self._on_change(self.citations)

    def reset(self) -> None:
        self._citations = []
        self._keys = set()
        self.panel_open = False

    def _add(self, citation: Citation) -> bool:
        if citation.key in self._keys:
            return False
        self._keys.add(citation.key)
        self._citations.append(citation)
        return True

    async def _search_mail(self, query: MailSearchQuery) -> None:
        try:
            result = self._mail_search(query)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Mail search failed for subject %r", query.subject)
