"""Post-states of permitted transitions.

Guards only approve or reject; these functions describe what the ledger
writes once a transition is approved. ``None`` means the record is consumed
with no continuing output.
"""
from typing import Optional

from medtrust.schemas import (
    Campaign,
    CampaignStatus,
    CancelCampaign,
    CompleteCampaign,
    CreateCampaign,
    Donation,
    DonorEntry,
    EmergencyFundRelease,
    TxContext,
    UpdateProtocol,
    Verification,
    VerifyCampaign,
    Vote,
    VoteRecord,
    WithdrawFunds,
)
from medtrust.validators.common import current_time, declared_signer


def apply_campaign_action(campaign: Campaign, action, ctx: TxContext) -> Optional[Campaign]:
    if isinstance(action, CreateCampaign):
        return campaign
    if isinstance(action, VerifyCampaign):
        verification = Verification(
            document_hash=action.document_hash,
            verifier=declared_signer(ctx),
            timestamp=current_time(ctx.validity_interval),
        )
        return campaign.model_copy(
            update={"status": CampaignStatus.VERIFIED, "verification": verification}
        )
    if isinstance(action, CancelCampaign):
        return campaign.model_copy(update={"status": CampaignStatus.CANCELLED})
    if isinstance(action, CompleteCampaign):
        return campaign.model_copy(update={"status": CampaignStatus.COMPLETED})
    if isinstance(action, WithdrawFunds):
        return None
    raise ValueError(f"no campaign effect for {type(action).__name__}")


def apply_donation(campaign: Campaign, donation: Donation) -> Campaign:
    """Credit ``donation`` to the campaign's donor ledger."""
    donors = list(campaign.donors) + [DonorEntry(donor=donation.donor, amount=donation.amount)]
    return campaign.model_copy(
        update={"donors": donors, "raised_amount": campaign.raised_amount + donation.amount}
    )


def apply_refund(campaign: Campaign, donation: Donation) -> Campaign:
    """Remove the first donor entry matching the refunded donation."""
    donors = list(campaign.donors)
    for i, entry in enumerate(donors):
        if entry.donor == donation.donor and entry.amount == donation.amount:
            del donors[i]
            return campaign.model_copy(
                update={"donors": donors, "raised_amount": campaign.raised_amount - entry.amount}
            )
    return campaign


def apply_governance_action(record: VoteRecord, action, ctx: TxContext) -> Optional[VoteRecord]:
    if isinstance(action, Vote):
        votes = dict(record.votes)
        votes[declared_signer(ctx)] = action.approve
        return record.model_copy(update={"votes": votes})
    if isinstance(action, (EmergencyFundRelease, UpdateProtocol)):
        return None
    raise ValueError(f"no governance effect for {type(action).__name__}")
