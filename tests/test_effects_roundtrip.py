"""
Effects of permitted transitions, and re-evaluation against post-states.

Every state-advancing action must be denied when replayed against the state
it produced (or its record must no longer exist). Donate is the exception:
it only ever appends to the donor ledger.
"""
import pytest

from medtrust.effects import (
    apply_campaign_action,
    apply_donation,
    apply_governance_action,
    apply_refund,
)
from medtrust.schemas import (
    CampaignStatus,
    CancelCampaign,
    CompleteCampaign,
    CreateCampaign,
    Donate,
    EmergencyFundRelease,
    ProtocolParameters,
    RequestRefund,
    UpdateProtocol,
    VerifyCampaign,
    Vote,
    WithdrawFunds,
)
from medtrust.validators.dispatch import evaluate

from conftest import (
    CAMPAIGN_ID,
    DEADLINE,
    DONOR,
    NOW,
    OWNER,
    STRANGER,
    TARGET,
    VERIFIER,
    funded_campaign,
    make_campaign,
    make_ctx,
    make_donation,
    make_vote_record,
    split_votes,
    voter,
)

DOC_HASH = "ab" * 32


class TestCampaignEffects:
    def test_verify_records_evidence(self):
        ctx = make_ctx([VERIFIER])
        after = apply_campaign_action(
            make_campaign(), VerifyCampaign(campaign_id=CAMPAIGN_ID, document_hash=DOC_HASH), ctx
        )
        assert after.status == CampaignStatus.VERIFIED
        assert after.verification.document_hash == DOC_HASH
        assert after.verification.verifier == VERIFIER
        assert after.verification.timestamp == NOW

    def test_withdraw_consumes_campaign(self):
        campaign = make_campaign(status=CampaignStatus.VERIFIED)
        assert apply_campaign_action(campaign, WithdrawFunds(campaign_id=CAMPAIGN_ID), make_ctx([OWNER])) is None

    def test_donation_keeps_raised_equal_to_donor_sum(self):
        after = apply_donation(make_campaign(), make_donation(30))
        after = apply_donation(after, make_donation(12))
        assert after.raised_amount == 42
        assert after.raised_amount == after.donated_total()
        assert [e.amount for e in after.donors] == [30, 12]

    def test_refund_removes_first_matching_entry(self):
        campaign = funded_campaign([(DONOR, 10), (STRANGER, 5), (DONOR, 10)])
        after = apply_refund(campaign, make_donation(10))
        assert [(e.donor, e.amount) for e in after.donors] == [(STRANGER, 5), (DONOR, 10)]
        assert after.raised_amount == after.donated_total() == 15

    def test_refund_without_entry_leaves_campaign(self):
        campaign = funded_campaign([(STRANGER, 5)])
        assert apply_refund(campaign, make_donation(10)) == campaign


class TestRoundTrip:
    @pytest.mark.parametrize(
        "before,action,signers",
        [
            (make_campaign(), VerifyCampaign(campaign_id=CAMPAIGN_ID, document_hash=DOC_HASH), [VERIFIER]),
            (make_campaign(), CancelCampaign(campaign_id=CAMPAIGN_ID), [OWNER]),
            (funded_campaign([(DONOR, TARGET)]), CompleteCampaign(campaign_id=CAMPAIGN_ID), [OWNER]),
        ],
    )
    def test_campaign_action_not_permitted_twice(self, before, action, signers):
        ctx = make_ctx(signers)
        assert evaluate(before, action, ctx)
        after = apply_campaign_action(before, action, ctx)
        assert not evaluate(after, action, ctx)

    def test_create_not_permitted_over_existing_campaign(self):
        action = CreateCampaign(target=TARGET, deadline=DEADLINE)
        campaign = make_campaign()
        assert evaluate(campaign, action, make_ctx([OWNER]))
        after = apply_campaign_action(campaign, action, make_ctx([OWNER]))
        assert not evaluate(campaign, action, make_ctx([OWNER], consumed=[after]))

    def test_withdraw_leaves_nothing_to_withdraw(self):
        campaign = make_campaign(status=CampaignStatus.VERIFIED)
        action = WithdrawFunds(campaign_id=CAMPAIGN_ID)
        ctx = make_ctx([OWNER])
        assert evaluate(campaign, action, ctx)
        after = apply_campaign_action(campaign, action, ctx)
        assert after is None
        assert not evaluate(after, action, ctx)

    def test_refund_not_permitted_twice(self):
        donation = make_donation(10)
        before = funded_campaign([(DONOR, 10)], status=CampaignStatus.CANCELLED)
        action = RequestRefund(campaign_id=CAMPAIGN_ID)
        assert evaluate(donation, action, make_ctx([DONOR], consumed=[before]))
        after = apply_refund(before, donation)
        verdict = evaluate(donation, action, make_ctx([DONOR], consumed=[after]))
        assert not verdict
        assert verdict.reason == "donation not recorded in campaign donor ledger"

    def test_repeated_donate_is_a_new_contribution(self):
        """Donations carry no identity of their own; each permitted Donate credits a fresh entry."""
        donation = make_donation(30)
        action = Donate(campaign_id=CAMPAIGN_ID, amount=30)
        before = make_campaign()
        assert evaluate(donation, action, make_ctx([DONOR], consumed=[before]))

        after = apply_donation(before, donation)
        assert evaluate(donation, action, make_ctx([DONOR], consumed=[after]))
        twice = apply_donation(after, donation)
        assert len(twice.donors) == 2
        assert twice.raised_amount == twice.donated_total() == 60

    def test_vote_not_permitted_twice(self):
        record = make_vote_record()
        action = Vote(campaign_id=CAMPAIGN_ID, approve=True)
        ctx = make_ctx([voter(3)], consumed=[make_campaign()])
        assert evaluate(record, action, ctx)
        after = apply_governance_action(record, action, ctx)
        assert after.votes == {voter(3): True}
        assert not evaluate(after, action, ctx)

    def test_executed_proposals_are_consumed(self):
        record = make_vote_record(split_votes(10, 6), quorum=6)
        ctx = make_ctx([voter(0)], consumed=[make_campaign()])
        release = EmergencyFundRelease(campaign_id=CAMPAIGN_ID)
        update = UpdateProtocol(
            new_parameters=ProtocolParameters(quorum_percentage=50, min_vote_time=1, max_vote_time=2)
        )
        assert evaluate(record, release, ctx)
        assert apply_governance_action(record, release, ctx) is None
        assert evaluate(record, update, ctx)
        assert apply_governance_action(record, update, ctx) is None

    def test_terminal_statuses_are_reached_only_from_active(self):
        """Walk every campaign action from every status; record the edges that are permitted."""
        actions = [
            VerifyCampaign(campaign_id=CAMPAIGN_ID, document_hash=DOC_HASH),
            CancelCampaign(campaign_id=CAMPAIGN_ID),
            CompleteCampaign(campaign_id=CAMPAIGN_ID),
        ]
        ctx = make_ctx([OWNER, VERIFIER])
        edges = set()
        for status in CampaignStatus:
            campaign = funded_campaign([(DONOR, TARGET)], status=status)
            for action in actions:
                if evaluate(campaign, action, ctx):
                    edges.add((status, apply_campaign_action(campaign, action, ctx).status))
        assert edges == {
            (CampaignStatus.ACTIVE, CampaignStatus.VERIFIED),
            (CampaignStatus.ACTIVE, CampaignStatus.CANCELLED),
            (CampaignStatus.ACTIVE, CampaignStatus.COMPLETED),
        }


class TestDispatch:
    def test_record_type_selects_guard(self):
        verdict = evaluate(make_donation(), CancelCampaign(campaign_id=CAMPAIGN_ID), make_ctx([OWNER]))
        assert not verdict
        assert "not a donation action" in verdict.reason

    def test_unknown_record_is_denied(self):
        verdict = evaluate(None, CancelCampaign(campaign_id=CAMPAIGN_ID), make_ctx([OWNER]))
        assert not verdict
        assert verdict.reason == "no guard for this record"
