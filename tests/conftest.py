"""
Shared fixtures: key hashes, record factories and an in-memory ledger.
"""
import os

# keep the module-level engine off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from medtrust.database import Base
from medtrust.ledger_bridge import EscrowLedger
from medtrust.schemas import (
    Campaign,
    CampaignStatus,
    Donation,
    DonorEntry,
    TxContext,
    ValidityInterval,
    VoteRecord,
)

OWNER = "aa" * 28
DONOR = "bb" * 28
VERIFIER = "cc" * 28
STRANGER = "dd" * 28
CAMPAIGN_ID = "c0ffee01"
OTHER_CAMPAIGN_ID = "c0ffee02"
PROPOSAL_ID = "0e01"

NOW = 1_700_000_000_000
DEADLINE = NOW + 30 * 24 * 3600 * 1000
TARGET = 100_000_000


def voter(i: int) -> str:
    return f"{i:02x}" * 28


def make_campaign(**overrides) -> Campaign:
    fields = dict(
        id=CAMPAIGN_ID,
        owner=OWNER,
        target_amount=TARGET,
        raised_amount=0,
        status=CampaignStatus.ACTIVE,
        donors=[],
        deadline=DEADLINE,
    )
    fields.update(overrides)
    return Campaign(**fields)


def funded_campaign(amounts, **overrides) -> Campaign:
    donors = [DonorEntry(donor=d, amount=a) for d, a in amounts]
    return make_campaign(
        donors=donors, raised_amount=sum(a for _, a in amounts), **overrides
    )


def make_donation(amount: int = 20_000_000, **overrides) -> Donation:
    fields = dict(campaign_id=CAMPAIGN_ID, donor=DONOR, amount=amount)
    fields.update(overrides)
    return Donation(**fields)


def make_vote_record(votes=None, quorum: int = 6) -> VoteRecord:
    return VoteRecord(
        id=PROPOSAL_ID,
        governance_action="release emergency funds",
        votes=votes or {},
        quorum=quorum,
    )


def split_votes(total: int, approve: int) -> dict:
    return {voter(i): i < approve for i in range(total)}


def make_ctx(signers=(), lower=NOW, upper=NOW + 3600 * 1000, consumed=(), minted=()) -> TxContext:
    return TxContext(
        signers=list(signers),
        validity_interval=ValidityInterval.between(lower, upper),
        consumed_records=list(consumed),
        minted_assets=list(minted),
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def ledger(db):
    return EscrowLedger(db)
