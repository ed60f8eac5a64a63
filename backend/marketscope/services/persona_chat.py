"""Persona chat — simulated conversations with a generated persona.

Each user message is stored, then the persona replies from its system prompt
and the last ``CHAT_HISTORY_LIMIT`` messages of the conversation.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..constants import CHAT_HISTORY_LIMIT
from ..models import Persona, PersonaChatMessage
from .openai_client import chat_reply

logger = logging.getLogger(__name__)


def list_messages(db: Session, persona: Persona) -> List[PersonaChatMessage]:
    return (
        db.query(PersonaChatMessage)
        .filter(PersonaChatMessage.persona_id == persona.id)
        .order_by(PersonaChatMessage.sequence.asc(), PersonaChatMessage.created_at.asc())
        .all()
    )


def _next_sequence(db: Session, persona: Persona) -> int:
    last = (
        db.query(func.max(PersonaChatMessage.sequence))
        .filter(PersonaChatMessage.persona_id == persona.id)
        .scalar()
    )
    return 0 if last is None else last + 1


def recent_history(db: Session, persona: Persona, limit: int = CHAT_HISTORY_LIMIT) -> List[dict]:
    """The last *limit* messages, oldest first, in chat-completion format."""
    latest = (
        db.query(PersonaChatMessage)
        .filter(PersonaChatMessage.persona_id == persona.id)
        .order_by(PersonaChatMessage.sequence.desc(), PersonaChatMessage.created_at.desc())
        .limit(limit)
        .all()
    )
    return [{"role": m.role, "content": m.message} for m in reversed(latest)]


async def send_message(
    db: Session,
    persona: Persona,
    text: str,
) -> Tuple[PersonaChatMessage, PersonaChatMessage]:
    """Store *text*, generate the persona's reply, store it. Returns both messages.

    Raises ServiceError if the reply cannot be generated; the user message
    stays stored.
    """
    user_message = PersonaChatMessage(
        persona_id=persona.id, role="user", message=text, sequence=_next_sequence(db, persona),
    )
    db.add(user_message)
    db.commit()
    db.refresh(user_message)

    reply = await chat_reply(
        system_prompt=persona.system_prompt,
        history=recent_history(db, persona),
    )
    assistant_message = PersonaChatMessage(
        persona_id=persona.id, role="assistant", message=reply, sequence=_next_sequence(db, persona),
    )
    db.add(assistant_message)
    db.commit()
    db.refresh(assistant_message)
    logger.info("[PERSONA] %s replied (%d chars)", persona.name, len(reply))
    return user_message, assistant_message
