from medtrust.schemas import (
    Campaign,
    CampaignStatus,
    Donate,
    Donation,
    RequestRefund,
    TxContext,
    Verdict,
)
from medtrust.validators.common import (
    deadline_reached,
    entirely_before,
    guard,
    require,
    require_campaign,
    signed_by,
)


def ensure_donor(donation: Donation, ctx: TxContext) -> None:
    require(signed_by(ctx, donation.donor), "missing donor signature")


def ensure_same_campaign(donation: Donation, action) -> None:
    require(action.campaign_id == donation.campaign_id, "donation belongs to a different campaign")


def credited(campaign: Campaign, donation: Donation) -> bool:
    """The donation is recorded against its donor in the campaign's ledger."""
    return any(
        entry.donor == donation.donor and entry.amount == donation.amount
        for entry in campaign.donors
    )


@guard("Donate")
def on_donate(donation: Donation, action: Donate, ctx: TxContext) -> None:
    ensure_same_campaign(donation, action)
    campaign = require_campaign(ctx, action.campaign_id)

    require(campaign.status == CampaignStatus.ACTIVE, "campaign is not accepting donations")
    require(
        entirely_before(ctx.validity_interval, campaign.deadline),
        "validity interval reaches the campaign deadline",
    )
    require(action.amount > 0, "donation amount must be positive")
    require(action.amount == donation.amount, "amount differs from donation record")
    ensure_donor(donation, ctx)


@guard("RequestRefund")
def on_refund(donation: Donation, action: RequestRefund, ctx: TxContext) -> None:
    ensure_same_campaign(donation, action)
    campaign = require_campaign(ctx, action.campaign_id)
    require(credited(campaign, donation), "donation not recorded in campaign donor ledger")

    cancelled = campaign.status == CampaignStatus.CANCELLED
    failed = (
        deadline_reached(ctx.validity_interval, campaign.deadline)
        and campaign.raised_amount < campaign.target_amount
    )
    require(cancelled or failed, "campaign is neither cancelled nor failed")
    ensure_donor(donation, ctx)


HANDLERS = {
    Donate: on_donate,
    RequestRefund: on_refund,
}


def validate_donation(donation: Donation, action, ctx: TxContext) -> Verdict:
    """Decide whether ``action`` may create or consume ``donation``."""
    if not isinstance(donation, Donation):
        return Verdict.deny("record is not a donation")
    handler = HANDLERS.get(type(action))
    if handler is None:
        return Verdict.deny(f"{type(action).__name__} is not a donation action")
    return handler(donation, action, ctx)
