# Select the guard matching the record being transitioned.
from typing import Optional

from medtrust.schemas import (
    BurnReward,
    Campaign,
    Donation,
    MintReward,
    TxContext,
    Verdict,
    VoteRecord,
)
from medtrust.validators.campaign_guard import validate_campaign
from medtrust.validators.donation_guard import validate_donation
from medtrust.validators.governance_guard import validate_governance
from medtrust.validators.reward_mint_guard import validate_reward_mint


def evaluate(record, action, ctx: TxContext, policy_id: Optional[str] = None) -> Verdict:
    # minting policies run without a record of their own
    if isinstance(action, (MintReward, BurnReward)):
        if record is not None:
            return Verdict.deny("reward redeemers do not transition a record")
        return validate_reward_mint(action, ctx, policy_id)
    if isinstance(record, Campaign):
        return validate_campaign(record, action, ctx)
    if isinstance(record, Donation):
        return validate_donation(record, action, ctx)
    if isinstance(record, VoteRecord):
        return validate_governance(record, action, ctx)
    return Verdict.deny("no guard for this record")
