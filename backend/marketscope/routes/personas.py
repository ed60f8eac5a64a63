"""Persona chat routes — talk to a generated persona.

Endpoints:
  GET  /analyses/{analysis_id}/personas/{persona_id}/messages — Conversation so far
  POST /analyses/{analysis_id}/personas/{persona_id}/messages — Send a message, get the reply
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import ServiceError, debug_enabled
from ..models import Analysis, Persona
from ..schemas.analysis_schema import (
    PersonaExchangeResponse,
    PersonaHistoryResponse,
    PersonaMessageCreate,
    PersonaMessageOut,
)
from ..services.persona_chat import list_messages, send_message

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/analyses/{analysis_id}/personas",
    tags=["Persona Chat"],
)


def _get_persona(db: Session, analysis_id: UUID, persona_id: UUID) -> Persona:
    if db.get(Analysis, analysis_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Analysis {analysis_id} not found",
        )
    persona = db.get(Persona, persona_id)
    if persona is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Persona not found")
    if persona.analysis_id != analysis_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid persona for this analysis",
        )
    return persona


@router.get(
    "/{persona_id}/messages",
    response_model=PersonaHistoryResponse,
    summary="Get Persona Conversation",
)
async def get_messages(
    analysis_id: UUID,
    persona_id: UUID,
    db: Session = Depends(get_db),
) -> PersonaHistoryResponse:
    persona = _get_persona(db, analysis_id, persona_id)
    return PersonaHistoryResponse(
        persona_id=persona.id,
        messages=[PersonaMessageOut.model_validate(m) for m in list_messages(db, persona)],
    )


@router.post(
    "/{persona_id}/messages",
    response_model=PersonaExchangeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Message a Persona",
    response_description="The stored user message and the persona's reply",
)
async def post_message(
    analysis_id: UUID,
    persona_id: UUID,
    body: PersonaMessageCreate,
    db: Session = Depends(get_db),
) -> PersonaExchangeResponse:
    persona = _get_persona(db, analysis_id, persona_id)
    try:
        user_message, assistant_message = await send_message(db, persona, body.message)
    except ServiceError as exc:
        logger.error("[PERSONA] Reply failed for %s: %s", persona_id, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc) if debug_enabled() else "The persona could not reply. Please try again.",
        ) from exc
    return PersonaExchangeResponse(
        user_message=PersonaMessageOut.model_validate(user_message),
        assistant_message=PersonaMessageOut.model_validate(assistant_message),
    )
