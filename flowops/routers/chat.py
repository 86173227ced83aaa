"""Chat router - customer-facing entry point into the decision pipeline."""

import asyncio

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from flowops.core.deps import get_db
from flowops.core.rate_limit import chat_limit, limiter
from flowops.schemas.chat import ChatRequestBody, ChatResponse
from flowops.services import orchestrator_service

router = APIRouter(tags=["chat"])


@router.post("/chat", response_model=ChatResponse)
@limiter.limit(chat_limit)
def chat(
    request: Request,
    body: ChatRequestBody,
    db: Session = Depends(get_db),
):
    """
    Run one message through the pipeline.

    Shadow mode previews the decision without persisting anything; live mode
    opens tickets, handoffs and follow-up emails. Business outcomes
    (including failures) come back as an escalated reply, never an error.

    The pipeline mixes blocking database calls with awaited fact lookups, so
    it runs on its own loop in the worker thread FastAPI gives sync routes.
    """
    chat_request = orchestrator_service.ChatRequest(
        customer_id=body.customer_id,
        message=body.message,
        mode=body.mode,
        request_id=body.request_id,
    )
    result = asyncio.run(orchestrator_service.run_pipeline(db, chat_request))
    return ChatResponse(
        reply=result.reply,
        mode=result.mode,
        ticket_id=result.ticket_id,
        escalated=result.escalated,
        confidence=result.confidence,
        actions=result.actions,
    )
