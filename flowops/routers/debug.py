"""Development-only endpoints for poking at policy, facts and SLA timing.

Mounted only when ENV=dev.
"""

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from flowops.core.deps import get_db
from flowops.schemas.handoff import HandoffRead
from flowops.services import handoff_service
from flowops.services.fact_tools import get_fact_source
from flowops.services.handoff_service import HandoffConflictError, HandoffNotFoundError
from flowops.services.policy_service import decide_refund, should_escalate

router = APIRouter(prefix="/debug", tags=["debug"])


@router.get("/account/{customer_id}")
async def debug_account(customer_id: str):
    """Raw fact-tool results for a customer."""
    facts = get_fact_source()
    account = await facts.get_account_status(customer_id)
    billing = await facts.get_billing_summary(customer_id)
    return {"account": asdict(account), "billing": asdict(billing)}


@router.get("/policy/refund/{plan}/{amount}")
def debug_refund(plan: str, amount: float):
    return asdict(decide_refund(plan, amount))


@router.get("/policy/escalate/{plan}/{confidence}/{verified}")
def debug_escalate(plan: str, confidence: float, verified: bool):
    return asdict(should_escalate(plan, confidence, verified))


@router.post("/handoffs/{handoff_id}/force-sla-breach", response_model=HandoffRead)
def debug_force_sla_breach(handoff_id: UUID, db: Session = Depends(get_db)):
    """Move a pending handoff's SLA deadline into the past so the next scan breaches it."""
    try:
        return handoff_service.force_sla_breach(db, handoff_id)
    except HandoffNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HandoffConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
