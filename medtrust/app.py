import logging
import os
from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from dotenv import load_dotenv

from medtrust.database import Base, engine, get_db
from medtrust.ledger_bridge import (
    EscrowLedger,
    RecordNotFound,
    TransitionDenied,
    get_reward_policy_id,
)
from medtrust.schemas import (
    CampaignActionRequest,
    CampaignCreateRequest,
    DonationCreateRequest,
    EvaluateRequest,
    GovernanceActionRequest,
    ProposalCreateRequest,
    RefundRequest,
    RewardMintRequest,
)
from medtrust.validators.dispatch import evaluate

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MedTrust Escrow")

# Create DB tables
Base.metadata.create_all(bind=engine)


def get_ledger(db: Session = Depends(get_db)) -> EscrowLedger:
    return EscrowLedger(db, reward_policy_id=get_reward_policy_id())


@app.exception_handler(TransitionDenied)
def on_denied(request, exc: TransitionDenied):
    return JSONResponse({"error": exc.reason}, status_code=409)


@app.exception_handler(RecordNotFound)
def on_not_found(request, exc: RecordNotFound):
    return JSONResponse({"error": str(exc)}, status_code=404)


@app.get("/health")
def health():
    return {"status": "healthy", "service": "medtrust"}


# === Pure guard evaluation (no persistence) ===

@app.post("/api/evaluate")
def api_evaluate(payload: EvaluateRequest):
    """
    Run the guard matching the record type against the supplied context.
    Returns: {"permitted": bool, "reason": str | null}
    """
    verdict = evaluate(payload.record, payload.action, payload.context, get_reward_policy_id())
    return verdict.model_dump()


# === Campaigns ===

@app.post("/api/campaigns", status_code=201)
def api_create_campaign(payload: CampaignCreateRequest, ledger: EscrowLedger = Depends(get_ledger)):
    campaign = ledger.create_campaign(payload.campaign, payload.action, payload.tx)
    return campaign.model_dump(mode="json")


@app.get("/api/campaigns/{campaign_id}")
def api_get_campaign(campaign_id: str, ledger: EscrowLedger = Depends(get_ledger)):
    return ledger.get_campaign(campaign_id).model_dump(mode="json")


@app.post("/api/campaigns/{campaign_id}/actions")
def api_campaign_action(
    campaign_id: str, payload: CampaignActionRequest, ledger: EscrowLedger = Depends(get_ledger)
):
    """
    Verify, cancel, complete or withdraw. A withdrawal consumes the campaign,
    so the response carries "campaign": null.
    """
    after = ledger.campaign_action(campaign_id, payload.action, payload.tx)
    return {"campaign": after.model_dump(mode="json") if after is not None else None}


# === Donations ===

@app.post("/api/donations", status_code=201)
def api_donate(payload: DonationCreateRequest, ledger: EscrowLedger = Depends(get_ledger)):
    donation_id, campaign = ledger.donate(payload.donation, payload.action, payload.tx)
    return {"donation_id": donation_id, "campaign": campaign.model_dump(mode="json")}


@app.post("/api/donations/{donation_id}/refund")
def api_refund(donation_id: int, payload: RefundRequest, ledger: EscrowLedger = Depends(get_ledger)):
    campaign = ledger.request_refund(donation_id, payload.tx)
    return {"refunded": donation_id, "campaign": campaign.model_dump(mode="json")}


# === Governance ===

@app.post("/api/proposals", status_code=201)
def api_open_proposal(payload: ProposalCreateRequest, ledger: EscrowLedger = Depends(get_ledger)):
    try:
        record = ledger.open_proposal(
            payload.id, payload.governance_action, payload.quorum, payload.eligible_voters
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return record.model_dump(mode="json")


@app.get("/api/proposals/{proposal_id}")
def api_get_proposal(proposal_id: str, ledger: EscrowLedger = Depends(get_ledger)):
    return ledger.get_proposal(proposal_id).model_dump(mode="json")


@app.post("/api/proposals/{proposal_id}/actions")
def api_governance_action(
    proposal_id: str, payload: GovernanceActionRequest, ledger: EscrowLedger = Depends(get_ledger)
):
    after = ledger.governance_action(proposal_id, payload.action, payload.tx)
    return {"proposal": after.model_dump(mode="json") if after is not None else None}


@app.get("/api/protocol")
def api_protocol(ledger: EscrowLedger = Depends(get_ledger)):
    return ledger.get_protocol_parameters().model_dump()


# === Rewards ===

@app.post("/api/rewards/mint")
def api_mint_reward(payload: RewardMintRequest, ledger: EscrowLedger = Depends(get_ledger)):
    asset_name = ledger.mint_reward(payload.redeemer, payload.tx)
    return {"asset_name": asset_name}


# === Audit ===

@app.get("/api/decisions")
def api_decisions(limit: int = Query(100, ge=1, le=1000), ledger: EscrowLedger = Depends(get_ledger)):
    return [
        {
            "id": d.id,
            "guard": d.guard,
            "action": d.action,
            "record_id": d.record_id,
            "permitted": d.permitted,
            "reason": d.reason,
            "created_at": d.created_at.isoformat() if d.created_at else None,
        }
        for d in ledger.list_decisions(limit)
    ]
