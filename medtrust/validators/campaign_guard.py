import logging

from medtrust.schemas import (
    Campaign,
    CampaignStatus,
    CancelCampaign,
    CompleteCampaign,
    CreateCampaign,
    TxContext,
    Verdict,
    VerifyCampaign,
    WithdrawFunds,
)
from medtrust.validators.common import (
    current_time,
    find_campaign,
    guard,
    require,
    signed_by,
)

logger = logging.getLogger(__name__)

# Campaign lifecycle: Active is the only state with outgoing transitions.
#
#   Active --VerifyCampaign--> Verified
#   Active --CompleteCampaign--> Completed   (target reached)
#   Active --CancelCampaign--> Cancelled
#
# WithdrawFunds consumes a Verified campaign, or a Completed one whose
# raised amount still covers the target.


def ensure_owner(campaign: Campaign, ctx: TxContext) -> None:
    require(signed_by(ctx, campaign.owner), "missing owner signature")


def ensure_same_campaign(campaign: Campaign, campaign_id: str) -> None:
    require(campaign.id == campaign_id, "campaign id does not match record")


def ensure_active(campaign: Campaign) -> None:
    require(
        campaign.status == CampaignStatus.ACTIVE,
        f"campaign is {campaign.status.value}, expected Active",
    )


@guard("CreateCampaign")
def on_create(campaign: Campaign, action: CreateCampaign, ctx: TxContext) -> None:
    now = current_time(ctx.validity_interval)

    ensure_owner(campaign, ctx)
    require(action.target > 0, "target must be positive")
    require(action.deadline > now, "deadline must be after the validity lower bound")

    # zero state
    require(campaign.raised_amount == 0, "new campaign must have nothing raised")
    require(campaign.status == CampaignStatus.ACTIVE, "new campaign must be Active")
    require(not campaign.donors, "new campaign must have no donors")
    require(campaign.target_amount == action.target, "record target differs from action")
    require(campaign.deadline == action.deadline, "record deadline differs from action")

    require(
        find_campaign(ctx, campaign.id) is None,
        f"campaign {campaign.id} already exists",
    )


@guard("WithdrawFunds")
def on_withdraw(campaign: Campaign, action: WithdrawFunds, ctx: TxContext) -> None:
    ensure_owner(campaign, ctx)
    ensure_same_campaign(campaign, action.campaign_id)

    verified = campaign.status == CampaignStatus.VERIFIED
    completed = (
        campaign.status == CampaignStatus.COMPLETED
        and campaign.raised_amount >= campaign.target_amount
    )
    require(verified or completed, "funds are not releasable in this state")


@guard("VerifyCampaign")
def on_verify(campaign: Campaign, action: VerifyCampaign, ctx: TxContext) -> None:
    require(len(ctx.signers) > 0, "verification requires a signer")
    ensure_active(campaign)
    ensure_same_campaign(campaign, action.campaign_id)

    # The verifier's professional credential is not checked here; any signer
    # is accepted as the verifying party.
    logger.warning(
        "campaign %s verified by unaccredited signer %s (document %s)",
        campaign.id, ctx.signers[0], action.document_hash,
    )


@guard("CancelCampaign")
def on_cancel(campaign: Campaign, action: CancelCampaign, ctx: TxContext) -> None:
    ensure_owner(campaign, ctx)
    ensure_active(campaign)
    ensure_same_campaign(campaign, action.campaign_id)


@guard("CompleteCampaign")
def on_complete(campaign: Campaign, action: CompleteCampaign, ctx: TxContext) -> None:
    ensure_owner(campaign, ctx)
    ensure_active(campaign)
    ensure_same_campaign(campaign, action.campaign_id)
    require(
        campaign.raised_amount >= campaign.target_amount,
        "target amount not reached",
    )


HANDLERS = {
    CreateCampaign: on_create,
    WithdrawFunds: on_withdraw,
    VerifyCampaign: on_verify,
    CancelCampaign: on_cancel,
    CompleteCampaign: on_complete,
}


def validate_campaign(campaign: Campaign, action, ctx: TxContext) -> Verdict:
    """Decide whether ``action`` may transition ``campaign``."""
    if not isinstance(campaign, Campaign):
        return Verdict.deny("record is not a campaign")
    handler = HANDLERS.get(type(action))
    if handler is None:
        return Verdict.deny(f"{type(action).__name__} is not a campaign action")
    return handler(campaign, action, ctx)
