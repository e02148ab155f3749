from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator


def _normalize_hex(value: str) -> str:
    value = value.lower()
    if value.startswith("0x"):
        value = value[2:]
    try:
        bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"not a hex byte string: {value!r}")
    return value


# Byte sequences (ids, key hashes, asset names) travel as lowercase hex.
HexBytes = Annotated[str, AfterValidator(_normalize_hex)]


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------
# Campaign
# ---------------------------
class CampaignStatus(str, Enum):
    ACTIVE = "Active"
    VERIFIED = "Verified"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = {CampaignStatus.COMPLETED, CampaignStatus.CANCELLED}


class DonorEntry(Record):
    donor: HexBytes
    amount: int = Field(ge=0)


class Verification(Record):
    document_hash: HexBytes
    verifier: HexBytes
    timestamp: int


class Campaign(Record):
    kind: Literal["campaign"] = "campaign"
    id: HexBytes
    owner: HexBytes
    target_amount: int
    raised_amount: int = Field(default=0, ge=0)
    status: CampaignStatus = CampaignStatus.ACTIVE
    donors: List[DonorEntry] = Field(default_factory=list)
    deadline: int
    verification: Optional[Verification] = None
    votes: Dict[HexBytes, bool] = Field(default_factory=dict)

    def donated_total(self) -> int:
        return sum(entry.amount for entry in self.donors)


# ---------------------------
# Donation
# ---------------------------
class Donation(Record):
    kind: Literal["donation"] = "donation"
    campaign_id: HexBytes
    donor: HexBytes
    amount: int


# ---------------------------
# Governance
# ---------------------------
class ProtocolParameters(Record):
    quorum_percentage: int
    min_vote_time: int
    max_vote_time: int


class VoteRecord(Record):
    kind: Literal["vote_record"] = "vote_record"
    id: HexBytes
    governance_action: str
    votes: Dict[HexBytes, bool] = Field(default_factory=dict)
    quorum: int = Field(gt=0)


AnyRecord = Annotated[Union[Campaign, Donation, VoteRecord], Field(discriminator="kind")]


# ---------------------------
# Transaction context
# ---------------------------
class BoundKind(str, Enum):
    NEG_INF = "NegInf"
    FINITE = "Finite"
    POS_INF = "PosInf"


class IntervalBound(Record):
    kind: BoundKind = BoundKind.FINITE
    time: Optional[int] = None
    inclusive: bool = True

    @classmethod
    def at(cls, time: int, inclusive: bool = True) -> "IntervalBound":
        return cls(kind=BoundKind.FINITE, time=time, inclusive=inclusive)

    @classmethod
    def neg_inf(cls) -> "IntervalBound":
        return cls(kind=BoundKind.NEG_INF)

    @classmethod
    def pos_inf(cls) -> "IntervalBound":
        return cls(kind=BoundKind.POS_INF)

    @field_validator("time")
    @classmethod
    def check_time(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError("bound time must be non-negative")
        return v

    @model_validator(mode="after")
    def check_finite_time(self) -> "IntervalBound":
        if self.kind == BoundKind.FINITE and self.time is None:
            raise ValueError("a Finite bound needs a time")
        return self

    @property
    def finite(self) -> bool:
        return self.kind == BoundKind.FINITE and self.time is not None


class ValidityInterval(Record):
    lower_bound: IntervalBound = Field(default_factory=IntervalBound.neg_inf)
    upper_bound: IntervalBound = Field(default_factory=IntervalBound.pos_inf)

    @classmethod
    def between(cls, lower: int, upper: int) -> "ValidityInterval":
        return cls(lower_bound=IntervalBound.at(lower), upper_bound=IntervalBound.at(upper))


class MintedAsset(Record):
    policy_id: HexBytes = ""
    asset_name: HexBytes
    quantity: int


class TxContext(Record):
    """Read-only facts about the transaction requesting a transition."""

    signers: List[HexBytes] = Field(default_factory=list)
    validity_interval: ValidityInterval = Field(default_factory=ValidityInterval)
    consumed_records: List[AnyRecord] = Field(default_factory=list)
    minted_assets: List[MintedAsset] = Field(default_factory=list)


# ---------------------------
# Actions
# ---------------------------
class Action(Record):
    pass


class CreateCampaign(Action):
    type: Literal["CreateCampaign"] = "CreateCampaign"
    target: int
    deadline: int


class WithdrawFunds(Action):
    type: Literal["WithdrawFunds"] = "WithdrawFunds"
    campaign_id: HexBytes


class VerifyCampaign(Action):
    type: Literal["VerifyCampaign"] = "VerifyCampaign"
    campaign_id: HexBytes
    document_hash: HexBytes


class CancelCampaign(Action):
    type: Literal["CancelCampaign"] = "CancelCampaign"
    campaign_id: HexBytes


class CompleteCampaign(Action):
    type: Literal["CompleteCampaign"] = "CompleteCampaign"
    campaign_id: HexBytes


class Donate(Action):
    type: Literal["Donate"] = "Donate"
    campaign_id: HexBytes
    amount: int


class RequestRefund(Action):
    type: Literal["RequestRefund"] = "RequestRefund"
    campaign_id: HexBytes


class Vote(Action):
    type: Literal["Vote"] = "Vote"
    campaign_id: HexBytes
    approve: bool


class EmergencyFundRelease(Action):
    type: Literal["EmergencyFundRelease"] = "EmergencyFundRelease"
    campaign_id: HexBytes


class UpdateProtocol(Action):
    type: Literal["UpdateProtocol"] = "UpdateProtocol"
    new_parameters: ProtocolParameters


class MintReward(Action):
    type: Literal["MintReward"] = "MintReward"
    campaign_id: HexBytes
    donor: HexBytes
    amount: int


class BurnReward(Action):
    type: Literal["BurnReward"] = "BurnReward"
    asset_name: HexBytes


# actions on a stored campaign; creation has its own request
CampaignAction = Annotated[
    Union[WithdrawFunds, VerifyCampaign, CancelCampaign, CompleteCampaign],
    Field(discriminator="type"),
]
DonationAction = Annotated[Union[Donate, RequestRefund], Field(discriminator="type")]
GovernanceAction = Annotated[
    Union[Vote, EmergencyFundRelease, UpdateProtocol], Field(discriminator="type")
]
RewardAction = Annotated[Union[MintReward, BurnReward], Field(discriminator="type")]
AnyAction = Annotated[
    Union[
        CreateCampaign, WithdrawFunds, VerifyCampaign, CancelCampaign, CompleteCampaign,
        Donate, RequestRefund,
        Vote, EmergencyFundRelease, UpdateProtocol,
        MintReward, BurnReward,
    ],
    Field(discriminator="type"),
]


# ---------------------------
# Verdict
# ---------------------------
class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    permitted: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.permitted

    @classmethod
    def permit(cls) -> "Verdict":
        return cls(permitted=True)

    @classmethod
    def deny(cls, reason: str) -> "Verdict":
        return cls(permitted=False, reason=reason)


# ---------------------------
# API payloads
# ---------------------------
class TxEnvelope(BaseModel):
    """Transaction facts a client submits to the reference ledger.

    Campaigns named in ``consume_campaigns`` are loaded from storage and
    exposed to the guard as consumed records, in the given order.
    """

    signers: List[HexBytes] = Field(default_factory=list)
    validity_interval: ValidityInterval = Field(default_factory=ValidityInterval)
    consume_campaigns: List[HexBytes] = Field(default_factory=list)
    minted_assets: List[MintedAsset] = Field(default_factory=list)


class EvaluateRequest(BaseModel):
    record: Optional[AnyRecord] = None
    action: AnyAction
    context: TxContext = Field(default_factory=TxContext)


class CampaignCreateRequest(BaseModel):
    campaign: Campaign
    action: CreateCampaign
    tx: TxEnvelope


class CampaignActionRequest(BaseModel):
    action: CampaignAction
    tx: TxEnvelope


class DonationCreateRequest(BaseModel):
    donation: Donation
    action: Donate
    tx: TxEnvelope


class RefundRequest(BaseModel):
    tx: TxEnvelope


class ProposalCreateRequest(BaseModel):
    id: HexBytes
    governance_action: str
    quorum: Optional[int] = Field(default=None, gt=0)
    eligible_voters: Optional[int] = Field(default=None, gt=0)


class GovernanceActionRequest(BaseModel):
    action: GovernanceAction
    tx: TxEnvelope


class RewardMintRequest(BaseModel):
    redeemer: RewardAction
    tx: TxEnvelope
