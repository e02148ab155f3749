from medtrust.schemas import (
    EmergencyFundRelease,
    TxContext,
    UpdateProtocol,
    Verdict,
    Vote,
    VoteRecord,
)
from medtrust.validators.common import (
    declared_signer,
    guard,
    has_majority,
    has_quorum,
    require,
    require_campaign,
)

MIN_QUORUM_PERCENTAGE = 1
MAX_QUORUM_PERCENTAGE = 100


def ensure_passed(record: VoteRecord) -> None:
    require(has_quorum(record.votes, record.quorum), "quorum not reached")
    require(has_majority(record.votes), "no approving majority")


@guard("Vote")
def on_vote(record: VoteRecord, action: Vote, ctx: TxContext) -> None:
    require_campaign(ctx, action.campaign_id)

    voter = declared_signer(ctx)
    require(voter is not None, "vote requires a signer")
    # a repeated identical vote is a no-op and is rejected
    require(record.votes.get(voter) != action.approve, "identical vote already recorded")


@guard("EmergencyFundRelease")
def on_emergency_release(record: VoteRecord, action: EmergencyFundRelease, ctx: TxContext) -> None:
    require_campaign(ctx, action.campaign_id)
    ensure_passed(record)

    signer = declared_signer(ctx)
    require(signer is not None and signer in record.votes, "signer did not take part in the vote")


@guard("UpdateProtocol")
def on_update_protocol(record: VoteRecord, action: UpdateProtocol, ctx: TxContext) -> None:
    ensure_passed(record)

    params = action.new_parameters
    require(
        MIN_QUORUM_PERCENTAGE <= params.quorum_percentage <= MAX_QUORUM_PERCENTAGE,
        "quorum percentage out of range",
    )
    require(params.min_vote_time > 0, "minimum vote time must be positive")
    require(
        params.max_vote_time > params.min_vote_time,
        "maximum vote time must exceed the minimum",
    )


HANDLERS = {
    Vote: on_vote,
    EmergencyFundRelease: on_emergency_release,
    UpdateProtocol: on_update_protocol,
}


def validate_governance(record: VoteRecord, action, ctx: TxContext) -> Verdict:
    """Decide whether ``action`` may update or consume the vote ``record``."""
    if not isinstance(record, VoteRecord):
        return Verdict.deny("record is not a vote record")
    handler = HANDLERS.get(type(action))
    if handler is None:
        return Verdict.deny(f"{type(action).__name__} is not a governance action")
    return handler(record, action, ctx)
