import math
from typing import Iterable, List, Optional, Sequence, Tuple

from sharedbudget.domain.errors import ValidationError
from sharedbudget.domain.models import ShareMode, ShareSpec


def round_half_up(value: float) -> int:
    return int(math.floor(float(value) + 0.5))


def _require_members(member_ids: Sequence[int]) -> None:
    if not member_ids:
        raise ValidationError("At least one budget member is required")


def personal_shares(payer_id: int) -> List[ShareSpec]:
    return [ShareSpec(user_id=payer_id, percent=100)]


def two_party_shares(
    payer_id: int,
    member_ids: Sequence[int],
    split_percent_for_payer: Optional[float] = None,
) -> List[ShareSpec]:
    """
    Payer keeps round(split_percent_for_payer) (default 50), the first other
    member takes the rest. Without another member this is a personal purchase.
    """
    other_id = next((m for m in member_ids if m != payer_id), None)
    if other_id is None:
        return personal_shares(payer_id)
    split = 50 if split_percent_for_payer is None else split_percent_for_payer
    if split < 0 or split > 100:
        raise ValidationError("splitPercentForPayer must be between 0 and 100")
    payer_percent = round_half_up(split)
    return [
        ShareSpec(user_id=payer_id, percent=payer_percent),
        ShareSpec(user_id=other_id, percent=100 - payer_percent),
    ]


def equal_shares(member_ids: Sequence[int]) -> List[ShareSpec]:
    """
    Split 100 percent across the members in order. The first
    100 - N * floor(100 / N) members get one extra percent.
    """
    _require_members(member_ids)
    n = len(member_ids)
    base = 100 // n
    remainder = 100 - base * n
    shares = []
    for i, user_id in enumerate(member_ids):
        shares.append(ShareSpec(user_id=user_id, percent=base + (1 if i < remainder else 0)))
    return shares


def override_shares(
    entries: Iterable[Tuple[int, float]], member_ids: Sequence[int]
) -> List[ShareSpec]:
    """
    Use caller supplied (user_id, percent) pairs. Percents are rounded and any
    difference to 100 is booked on the largest entry (first one on ties).
    """
    entries = list(entries)
    if not entries:
        raise ValidationError("sharesOverride must not be empty")

    allowed = set(member_ids)
    seen = set()
    rounded: List[ShareSpec] = []
    for user_id, percent in entries:
        if user_id not in allowed:
            raise ValidationError(f"User {user_id} is not a member of this budget")
        if user_id in seen:
            raise ValidationError(f"User {user_id} appears more than once in shares")
        if percent < 0 or percent > 100:
            raise ValidationError("Share percent must be between 0 and 100")
        seen.add(user_id)
        rounded.append(ShareSpec(user_id=user_id, percent=round_half_up(percent)))

    diff = 100 - sum(s.percent for s in rounded)
    if diff:
        largest = max(rounded, key=lambda s: s.percent)  # max() keeps the first on ties
        if largest.percent + diff < 0:
            raise ValidationError("Share percentages cannot be corrected to 100")
        largest.percent += diff
    return rounded


def allocate_shares(
    mode: ShareMode,
    payer_id: int,
    member_ids: Sequence[int],
    split_percent_for_payer: Optional[float] = None,
    override: Optional[Iterable[Tuple[int, float]]] = None,
) -> List[ShareSpec]:
    _require_members(member_ids)
    if mode == ShareMode.OVERRIDE:
        return override_shares(override or [], member_ids)

    if payer_id not in member_ids:
        raise ValidationError("paidById is not a member of this budget")
    if mode == ShareMode.PERSONAL:
        return personal_shares(payer_id)
    if mode == ShareMode.TWO_PARTY:
        return two_party_shares(payer_id, member_ids, split_percent_for_payer)
    if mode == ShareMode.EQUAL:
        return equal_shares(member_ids)
    raise ValidationError(f"Unsupported share mode: {mode}")
