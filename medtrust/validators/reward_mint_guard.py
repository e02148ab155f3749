"""Reward NFT issuance for qualifying donors.

A donor whose recorded contribution meets the bronze threshold may mint a
single reward token for it. The token's asset name is derived from the
campaign id, the tier label of the contribution and the donor key hash, so a
minting transaction cannot pick its own tier.
"""
from typing import Optional

from medtrust.schemas import BurnReward, MintReward, TxContext, Verdict
from medtrust.validators.common import find_campaign, guard, require, signed_by

# Lovelace thresholds, ascending.
BRONZE_THRESHOLD = 10_000_000
SILVER_THRESHOLD = 50_000_000
GOLD_THRESHOLD = 100_000_000
PLATINUM_THRESHOLD = 500_000_000

TIERS = [
    (PLATINUM_THRESHOLD, "Platinum"),
    (GOLD_THRESHOLD, "Gold"),
    (SILVER_THRESHOLD, "Silver"),
    (BRONZE_THRESHOLD, "Bronze"),
]

REWARD_PREFIX = b"MEDREWARD"


def reward_tier(amount: int) -> str:
    """Label of the largest threshold ``amount`` meets; Bronze otherwise."""
    for threshold, label in TIERS:
        if amount >= threshold:
            return label
    return "Bronze"


def reward_asset_name(campaign_id: str, donor: str, amount: int) -> str:
    """prefix || campaign id || tier label || donor, as hex."""
    name = (
        REWARD_PREFIX
        + bytes.fromhex(campaign_id)
        + reward_tier(amount).encode()
        + bytes.fromhex(donor)
    )
    return name.hex()


def qualifying_contribution(ctx: TxContext, campaign_id: str, donor: str) -> Optional[int]:
    campaign = find_campaign(ctx, campaign_id)
    if campaign is None:
        return None
    for entry in campaign.donors:
        if entry.donor == donor and entry.amount >= BRONZE_THRESHOLD:
            return entry.amount
    return None


@guard("MintReward")
def on_mint(redeemer: MintReward, ctx: TxContext, policy_id: Optional[str]) -> None:
    contribution = qualifying_contribution(ctx, redeemer.campaign_id, redeemer.donor)
    require(contribution is not None, "donor has no qualifying contribution")

    require(redeemer.amount == contribution, "amount differs from recorded contribution")
    require(signed_by(ctx, redeemer.donor), "missing donor signature")

    require(len(ctx.minted_assets) == 1, "exactly one asset class must be minted")
    minted = ctx.minted_assets[0]
    require(minted.quantity == 1, "reward quantity must be exactly 1")
    if policy_id is not None:
        require(minted.policy_id == policy_id, "asset minted under a foreign policy")

    expected = reward_asset_name(redeemer.campaign_id, redeemer.donor, contribution)
    require(minted.asset_name == expected, "asset name does not match contribution tier")


def validate_reward_mint(redeemer, ctx: TxContext, policy_id: Optional[str] = None) -> Verdict:
    if isinstance(redeemer, BurnReward):
        return Verdict.deny("reward tokens cannot be burned")
    if not isinstance(redeemer, MintReward):
        return Verdict.deny(f"{type(redeemer).__name__} is not a reward redeemer")
    return on_mint(redeemer, ctx, policy_id)
