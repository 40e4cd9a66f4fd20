"""Confirmation tickets for risky actions (approval workflow).

Implements:
- Ticket creation with random id and TTL (default 3600s)
- Lazy expiry: every create/get/list first purges ALL expired tickets
- A ticket is visible iff now < expires_at; reads never delete it

There is no background sweeper. A ticket nobody looks at stays in memory
until the next registry call.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from typing import Any, Callable, Dict, List, Optional

from cryptodesk.constants import CONFIRMATION_ID_LENGTH, CONFIRMATION_TTL_DEFAULT_SEC
from cryptodesk.utils import to_iso

logger = logging.getLogger(__name__)

ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_id(length: int) -> str:
    """Random lowercase alphanumeric identifier."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


class ConfirmationTicket:
    """A pending approval for a drafted action."""

    def __init__(
        self,
        ticket_id: str,
        draft: Dict[str, Any],
        reason: Optional[str],
        created_at: float,
        expires_at: float,
    ) -> None:
        self.id = ticket_id
        self.draft = draft
        self.reason = reason
        self.created_at = created_at
        self.expires_at = expires_at

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "createdAt": to_iso(self.created_at * 1000),
            "expiresAt": to_iso(self.expires_at * 1000),
            "reason": self.reason,
            "draft": self.draft,
        }


class ConfirmationRegistry:
    """In-memory ticket store with lazy expiry."""

    def __init__(
        self,
        default_ttl_sec: float = CONFIRMATION_TTL_DEFAULT_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.default_ttl_sec = default_ttl_sec
        self._clock = clock
        self._tickets = {}  # type: Dict[str, ConfirmationTicket]

    def _purge_expired(self) -> int:
        now = self._clock()
        expired = [tid for tid, t in self._tickets.items() if t.is_expired(now)]
        for tid in expired:
            del self._tickets[tid]
        if expired:
            logger.debug("Purged %d expired confirmation(s)", len(expired))
        return len(expired)

    def create(
        self,
        draft: Dict[str, Any],
        reason: Optional[str] = None,
        ttl_seconds: Optional[float] = None,
    ) -> ConfirmationTicket:
        self._purge_expired()
        ttl = self.default_ttl_sec if ttl_seconds is None else ttl_seconds

        ticket_id = generate_id(CONFIRMATION_ID_LENGTH)
        while ticket_id in self._tickets:
            ticket_id = generate_id(CONFIRMATION_ID_LENGTH)

        created_at = self._clock()
        ticket = ConfirmationTicket(
            ticket_id=ticket_id,
            draft=draft,
            reason=reason,
            created_at=created_at,
            expires_at=created_at + ttl,
        )
        self._tickets[ticket_id] = ticket
        logger.info("Confirmation created: id=%s ttl=%ss", ticket_id, ttl)
        return ticket

    def get(self, ticket_id: str) -> Optional[ConfirmationTicket]:
        """Return the ticket, or None if unknown or expired."""
        self._purge_expired()
        return self._tickets.get(ticket_id)

    def list(self) -> List[ConfirmationTicket]:
        self._purge_expired()
        return list(self._tickets.values())

    def __len__(self) -> int:
        """Resident tickets, including expired ones not yet purged."""
        return len(self._tickets)
