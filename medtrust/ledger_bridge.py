import logging
import math
import os
from typing import Callable, List, Optional, Tuple, TypeVar

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from medtrust.effects import (
    apply_campaign_action,
    apply_donation,
    apply_governance_action,
    apply_refund,
)
from medtrust.models import (
    CampaignRow,
    DonationRow,
    GuardDecisionRow,
    ProtocolParametersRow,
    RewardRow,
    VoteRecordRow,
)
from medtrust.schemas import (
    Campaign,
    CreateCampaign,
    Donate,
    Donation,
    ProtocolParameters,
    RequestRefund,
    TxContext,
    TxEnvelope,
    UpdateProtocol,
    Verdict,
    VoteRecord,
)
from medtrust.validators.campaign_guard import validate_campaign
from medtrust.validators.common import find_campaign
from medtrust.validators.donation_guard import validate_donation
from medtrust.validators.governance_guard import validate_governance
from medtrust.validators.reward_mint_guard import reward_asset_name, validate_reward_mint

load_dotenv()

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------
# Configuration
# ---------------------------
def get_reward_policy_id() -> Optional[str]:
    policy = os.getenv("REWARD_POLICY_ID")
    return policy.lower() if policy else None


def default_protocol_parameters() -> ProtocolParameters:
    return ProtocolParameters(
        quorum_percentage=int(os.getenv("DEFAULT_QUORUM_PERCENTAGE", "51")),
        min_vote_time=int(os.getenv("DEFAULT_MIN_VOTE_TIME", "86400000")),    # 1 day, ms
        max_vote_time=int(os.getenv("DEFAULT_MAX_VOTE_TIME", "604800000")),   # 7 days, ms
    )


# ---------------------------
# Errors
# ---------------------------
class LedgerError(Exception):
    pass


class RecordNotFound(LedgerError):
    pass


class TransitionDenied(LedgerError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# ---------------------------
# Ledger
# ---------------------------
class EscrowLedger:
    """Reference ledger: stores records and applies approved transitions.

    Each submission is evaluated by exactly one guard. On permit every effect
    of the transaction is written in a single database transaction; on deny
    nothing but the audit entry is written.
    """

    def __init__(self, db: Session, reward_policy_id: Optional[str] = None):
        self.db = db
        self.reward_policy_id = reward_policy_id

    # --- snapshots ---
    def _campaign_row(self, campaign_id: str) -> CampaignRow:
        row = self.db.get(CampaignRow, campaign_id.lower())
        if row is None or row.spent:
            raise RecordNotFound(f"Campaign {campaign_id} not found")
        return row

    def _donation_row(self, donation_id: int) -> DonationRow:
        row = self.db.get(DonationRow, donation_id)
        if row is None or row.refunded:
            raise RecordNotFound(f"Donation {donation_id} not found")
        return row

    def _proposal_row(self, proposal_id: str) -> VoteRecordRow:
        row = self.db.get(VoteRecordRow, proposal_id.lower())
        if row is None or row.executed:
            raise RecordNotFound(f"Proposal {proposal_id} not found")
        return row

    def get_campaign(self, campaign_id: str) -> Campaign:
        return self._campaign_row(campaign_id).to_schema()

    def get_proposal(self, proposal_id: str) -> VoteRecord:
        return self._proposal_row(proposal_id).to_schema()

    def get_protocol_parameters(self) -> ProtocolParameters:
        row = self.db.get(ProtocolParametersRow, 1)
        if row is None:
            return default_protocol_parameters()
        return row.to_schema()

    def list_decisions(self, limit: int = 100) -> List[GuardDecisionRow]:
        return (
            self.db.query(GuardDecisionRow)
            .order_by(GuardDecisionRow.id.desc())
            .limit(limit)
            .all()
        )

    def build_context(self, tx: TxEnvelope) -> TxContext:
        """Resolve the envelope's campaign references into consumed records.

        Unknown or spent campaigns are left out; the guard decides whether
        their absence matters.
        """
        consumed = []
        for campaign_id in tx.consume_campaigns:
            row = self.db.get(CampaignRow, campaign_id)
            if row is not None and not row.spent:
                consumed.append(row.to_schema())
        return TxContext(
            signers=tx.signers,
            validity_interval=tx.validity_interval,
            consumed_records=consumed,
            minted_assets=tx.minted_assets,
        )

    # --- commit / abort ---
    def _record(self, guard: str, action, record_id: Optional[str], verdict: Verdict) -> None:
        self.db.add(GuardDecisionRow(
            guard=guard,
            action=type(action).__name__,
            record_id=record_id,
            permitted=verdict.permitted,
            reason=verdict.reason,
        ))

    def _settle(
        self,
        guard: str,
        action,
        record_id: Optional[str],
        verdict: Verdict,
        apply: Callable[[], T],
    ) -> T:
        if not verdict:
            self._record(guard, action, record_id, verdict)
            self.db.commit()
            logger.warning(
                "%s %s on %s denied: %s", guard, type(action).__name__, record_id, verdict.reason
            )
            raise TransitionDenied(verdict.reason)
        try:
            result = apply()
            self._record(guard, action, record_id, verdict)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("%s %s on %s committed", guard, type(action).__name__, record_id)
        return result

    # --- campaigns ---
    def create_campaign(self, campaign: Campaign, action: CreateCampaign, tx: TxEnvelope) -> Campaign:
        ctx = self.build_context(tx)
        existing = self.db.get(CampaignRow, campaign.id)
        if existing is not None and find_campaign(ctx, campaign.id) is None:
            # the ledger itself refuses to overwrite an output it already holds
            ctx = ctx.model_copy(update={"consumed_records": ctx.consumed_records + [existing.to_schema()]})
        verdict = validate_campaign(campaign, action, ctx)

        def apply() -> Campaign:
            row = CampaignRow(id=campaign.id, spent=False)
            row.update_from(campaign)
            self.db.add(row)
            self.db.flush()
            return campaign

        return self._settle("campaign", action, campaign.id, verdict, apply)

    def campaign_action(self, campaign_id: str, action, tx: TxEnvelope) -> Optional[Campaign]:
        row = self._campaign_row(campaign_id)
        campaign = row.to_schema()
        ctx = self.build_context(tx)
        verdict = validate_campaign(campaign, action, ctx)

        def apply() -> Optional[Campaign]:
            after = apply_campaign_action(campaign, action, ctx)
            if after is None:
                row.spent = True
            else:
                row.update_from(after)
            return after

        return self._settle("campaign", action, campaign.id, verdict, apply)

    # --- donations ---
    def donate(self, donation: Donation, action: Donate, tx: TxEnvelope) -> Tuple[int, Campaign]:
        ctx = self.build_context(tx)
        verdict = validate_donation(donation, action, ctx)

        def apply() -> Tuple[int, Campaign]:
            campaign_row = self._campaign_row(action.campaign_id)
            after = apply_donation(campaign_row.to_schema(), donation)
            campaign_row.update_from(after)
            row = DonationRow(
                campaign_id=donation.campaign_id,
                donor=donation.donor,
                amount=donation.amount,
                refunded=False,
            )
            self.db.add(row)
            self.db.flush()
            return row.id, after

        return self._settle("donation", action, donation.campaign_id, verdict, apply)

    def get_donation(self, donation_id: int) -> Donation:
        return self._donation_row(donation_id).to_schema()

    def request_refund(self, donation_id: int, tx: TxEnvelope) -> Campaign:
        row = self._donation_row(donation_id)
        donation = row.to_schema()
        action = RequestRefund(campaign_id=donation.campaign_id)
        ctx = self.build_context(tx)
        verdict = validate_donation(donation, action, ctx)

        def apply() -> Campaign:
            campaign_row = self._campaign_row(donation.campaign_id)
            after = apply_refund(campaign_row.to_schema(), donation)
            campaign_row.update_from(after)
            row.refunded = True
            return after

        return self._settle("donation", action, str(donation_id), verdict, apply)

    # --- governance ---
    def open_proposal(
        self,
        proposal_id: str,
        governance_action: str,
        quorum: Optional[int] = None,
        eligible_voters: Optional[int] = None,
    ) -> VoteRecord:
        """Open a vote record. Opening is not a guarded transition.

        Without an explicit ``quorum`` it is derived from the current
        quorum percentage over ``eligible_voters``.
        """
        if quorum is None:
            if not eligible_voters or eligible_voters <= 0:
                raise ValueError("quorum or a positive eligible_voters is required")
            params = self.get_protocol_parameters()
            quorum = max(1, math.ceil(eligible_voters * params.quorum_percentage / 100))

        record = VoteRecord(id=proposal_id, governance_action=governance_action, quorum=quorum)
        if self.db.get(VoteRecordRow, record.id) is not None:
            raise ValueError(f"Proposal {record.id} already exists")
        self.db.add(VoteRecordRow(
            id=record.id,
            governance_action=record.governance_action,
            votes={},
            quorum=record.quorum,
            executed=False,
        ))
        self.db.commit()
        logger.info("proposal %s opened with quorum %d", record.id, record.quorum)
        return record

    def governance_action(self, proposal_id: str, action, tx: TxEnvelope) -> Optional[VoteRecord]:
        row = self._proposal_row(proposal_id)
        record = row.to_schema()
        ctx = self.build_context(tx)
        verdict = validate_governance(record, action, ctx)

        def apply() -> Optional[VoteRecord]:
            after = apply_governance_action(record, action, ctx)
            if after is None:
                row.executed = True
            else:
                row.votes = dict(after.votes)
            if isinstance(action, UpdateProtocol):
                self._replace_protocol_parameters(action.new_parameters)
            return after

        return self._settle("governance", action, record.id, verdict, apply)

    def _replace_protocol_parameters(self, params: ProtocolParameters) -> None:
        row = self.db.get(ProtocolParametersRow, 1)
        if row is None:
            row = ProtocolParametersRow(id=1)
            self.db.add(row)
        row.quorum_percentage = params.quorum_percentage
        row.min_vote_time = params.min_vote_time
        row.max_vote_time = params.max_vote_time

    # --- rewards ---
    def mint_reward(self, redeemer, tx: TxEnvelope) -> str:
        ctx = self.build_context(tx)
        verdict = validate_reward_mint(redeemer, ctx, self.reward_policy_id)
        if verdict:
            asset_name = reward_asset_name(redeemer.campaign_id, redeemer.donor, redeemer.amount)
            issued = self.db.query(RewardRow).filter(RewardRow.asset_name == asset_name).first()
            if issued is not None:
                verdict = Verdict.deny("reward already minted for this contribution")

        def apply() -> str:
            self.db.add(RewardRow(
                asset_name=asset_name,
                campaign_id=redeemer.campaign_id,
                donor=redeemer.donor,
                amount=redeemer.amount,
            ))
            self.db.flush()
            return asset_name

        return self._settle("reward_mint", redeemer, getattr(redeemer, "campaign_id", None), verdict, apply)
