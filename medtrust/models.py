from datetime import datetime
from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, JSON, String, Text

from .database import Base
from .schemas import Campaign, Donation, DonorEntry, ProtocolParameters, Verification, VoteRecord


class CampaignRow(Base):
    __tablename__ = "campaigns"

    id = Column(String(128), primary_key=True, index=True)
    owner = Column(String(128), nullable=False)
    target_amount = Column(BigInteger, nullable=False)
    raised_amount = Column(BigInteger, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="Active")
    deadline = Column(BigInteger, nullable=False)
    donors = Column(JSON, nullable=False, default=list)  # [[key_hash, amount], ...]
    votes = Column(JSON, nullable=False, default=dict)

    document_hash = Column(String(128), nullable=True)
    verifier = Column(String(128), nullable=True)
    verified_at = Column(BigInteger, nullable=True)

    # consumed by a withdrawal; kept for history
    spent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> Campaign:
        verification = None
        if self.document_hash is not None:
            verification = Verification(
                document_hash=self.document_hash,
                verifier=self.verifier,
                timestamp=self.verified_at,
            )
        return Campaign(
            id=self.id,
            owner=self.owner,
            target_amount=self.target_amount,
            raised_amount=self.raised_amount,
            status=self.status,
            donors=[DonorEntry(donor=d, amount=a) for d, a in (self.donors or [])],
            deadline=self.deadline,
            verification=verification,
            votes=dict(self.votes or {}),
        )

    def update_from(self, campaign: Campaign) -> None:
        self.owner = campaign.owner
        self.target_amount = campaign.target_amount
        self.raised_amount = campaign.raised_amount
        self.status = campaign.status.value
        self.deadline = campaign.deadline
        self.donors = [[e.donor, e.amount] for e in campaign.donors]
        self.votes = dict(campaign.votes)
        if campaign.verification is not None:
            self.document_hash = campaign.verification.document_hash
            self.verifier = campaign.verification.verifier
            self.verified_at = campaign.verification.timestamp


class DonationRow(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(String(128), nullable=False, index=True)
    donor = Column(String(128), nullable=False)
    amount = Column(BigInteger, nullable=False)

    refunded = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> Donation:
        return Donation(campaign_id=self.campaign_id, donor=self.donor, amount=self.amount)


class VoteRecordRow(Base):
    __tablename__ = "vote_records"

    id = Column(String(128), primary_key=True, index=True)
    governance_action = Column(Text, nullable=False)
    votes = Column(JSON, nullable=False, default=dict)
    quorum = Column(Integer, nullable=False)

    executed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> VoteRecord:
        return VoteRecord(
            id=self.id,
            governance_action=self.governance_action,
            votes=dict(self.votes or {}),
            quorum=self.quorum,
        )


class ProtocolParametersRow(Base):
    __tablename__ = "protocol_parameters"

    id = Column(Integer, primary_key=True)
    quorum_percentage = Column(Integer, nullable=False)
    min_vote_time = Column(BigInteger, nullable=False)
    max_vote_time = Column(BigInteger, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_schema(self) -> ProtocolParameters:
        return ProtocolParameters(
            quorum_percentage=self.quorum_percentage,
            min_vote_time=self.min_vote_time,
            max_vote_time=self.max_vote_time,
        )


class GuardDecisionRow(Base):
    """Append-only log of every guard verdict the ledger obtained."""

    __tablename__ = "guard_decisions"

    id = Column(Integer, primary_key=True, index=True)
    guard = Column(String(50), nullable=False)
    action = Column(String(50), nullable=False)
    record_id = Column(String(128), nullable=True)
    permitted = Column(Boolean, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class RewardRow(Base):
    """Reward tokens issued through the ledger, one per asset name."""

    __tablename__ = "rewards"

    id = Column(Integer, primary_key=True, index=True)
    asset_name = Column(String(256), nullable=False, unique=True)
    campaign_id = Column(String(128), nullable=False, index=True)
    donor = Column(String(128), nullable=False)
    amount = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
