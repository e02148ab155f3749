import logging
from functools import wraps
from typing import Callable, Dict, Optional, Tuple

from medtrust.schemas import BoundKind, Campaign, TxContext, ValidityInterval, Verdict

logger = logging.getLogger(__name__)


class GuardRejected(Exception):
    """A guard condition failed. Never escapes a guard entry point."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def require(condition: bool, reason: str) -> None:
    if not condition:
        raise GuardRejected(reason)


def guard(name: str) -> Callable:
    """Turn a sequence of ``require`` steps into a permit/deny predicate.

    The wrapped function either returns normally (permit) or raises
    GuardRejected at the first failed step (deny with that reason).
    """

    def decorator(fn: Callable[..., None]) -> Callable[..., Verdict]:
        @wraps(fn)
        def wrapper(*args, **kwargs) -> Verdict:
            try:
                fn(*args, **kwargs)
            except GuardRejected as e:
                logger.debug("%s denied: %s", name, e.reason)
                return Verdict.deny(e.reason)
            return Verdict.permit()

        return wrapper

    return decorator


# ---------------------------
# Signers
# ---------------------------
def signed_by(ctx: TxContext, key_hash: str) -> bool:
    return key_hash in ctx.signers


def declared_signer(ctx: TxContext) -> Optional[str]:
    """The first declared signer, if the transaction carries any."""
    return ctx.signers[0] if ctx.signers else None


# ---------------------------
# Time
# ---------------------------
def current_time(interval: ValidityInterval) -> int:
    """Lower bound of the validity interval; non-finite bounds count as 0."""
    lower = interval.lower_bound
    return lower.time if lower.finite else 0


def entirely_before(interval: ValidityInterval, deadline: int) -> bool:
    """True when every instant of the interval is strictly before ``deadline``."""
    upper = interval.upper_bound
    if upper.kind == BoundKind.NEG_INF:
        return True
    if not upper.finite:
        return False
    if upper.inclusive:
        return upper.time < deadline
    return upper.time <= deadline


def deadline_reached(interval: ValidityInterval, deadline: int) -> bool:
    """The interval contains the deadline or lies after it.

    A closed upper bound sitting exactly on the deadline counts as reached.
    """
    return not entirely_before(interval, deadline)


# ---------------------------
# Consumed records
# ---------------------------
def find_campaign(ctx: TxContext, campaign_id: str) -> Optional[Campaign]:
    """First consumed campaign with a matching id; duplicates are ignored."""
    for record in ctx.consumed_records:
        if isinstance(record, Campaign) and record.id == campaign_id:
            return record
    return None


def require_campaign(ctx: TxContext, campaign_id: str) -> Campaign:
    campaign = find_campaign(ctx, campaign_id)
    require(campaign is not None, f"campaign {campaign_id} not among consumed records")
    return campaign


# ---------------------------
# Quorum
# ---------------------------
def tally(votes: Dict[str, bool]) -> Tuple[int, int]:
    """(total, approvals) over a vote mapping; iteration order is irrelevant."""
    approve = sum(1 for value in votes.values() if value)
    return len(votes), approve


def has_quorum(votes: Dict[str, bool], quorum: int) -> bool:
    total, _ = tally(votes)
    return total >= quorum


def has_majority(votes: Dict[str, bool]) -> bool:
    total, approve = tally(votes)
    return approve > total // 2
