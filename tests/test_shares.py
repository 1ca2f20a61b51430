from collections import Counter

import pytest

from sharedbudget.domain.errors import ValidationError
from sharedbudget.domain.helpers.shares import (
    allocate_shares,
    equal_shares,
    override_shares,
    personal_shares,
    round_half_up,
    two_party_shares,
)
from sharedbudget.domain.models import ShareMode


def _percents(shares):
    return [s.percent for s in shares]


@pytest.mark.parametrize("n", range(1, 13))
def test_equal_shares_sum_to_100_with_remainder_up_front(n):
    members = list(range(1, n + 1))
    percents = _percents(equal_shares(members))
    base = 100 // n

    assert sum(percents) == 100
    assert set(percents) <= {base, base + 1}
    assert percents.count(base + 1) == 100 - n * base
    # remainder goes to the first members in roster order
    assert percents == sorted(percents, reverse=True)


def test_equal_shares_for_three_members():
    shares = equal_shares([7, 8, 9])
    assert Counter(_percents(shares)) == Counter({33: 2, 34: 1})
    assert [s.user_id for s in shares] == [7, 8, 9]


def test_equal_shares_needs_members():
    with pytest.raises(ValidationError):
        equal_shares([])


def test_personal_share_is_all_payer():
    assert _percents(personal_shares(3)) == [100]


def test_two_party_split_for_payer():
    shares = two_party_shares(1, [1, 2], 70)
    assert [(s.user_id, s.percent) for s in shares] == [(1, 70), (2, 30)]


def test_two_party_defaults_to_half():
    assert _percents(two_party_shares(2, [1, 2])) == [50, 50]


def test_two_party_rounds_half_up():
    assert _percents(two_party_shares(1, [1, 2], 50.5)) == [51, 49]
    assert round_half_up(2.5) == 3
    assert round_half_up(2.4) == 2


def test_two_party_without_other_member_is_personal():
    assert _percents(two_party_shares(1, [1])) == [100]


def test_two_party_rejects_split_out_of_range():
    with pytest.raises(ValidationError):
        two_party_shares(1, [1, 2], 120)


def test_override_remainder_goes_to_largest_entry():
    shares = override_shares([(1, 33.3), (2, 33.3), (3, 33.3)], [1, 2, 3])
    assert _percents(shares) == [34, 33, 33]


def test_override_over_100_is_taken_from_largest():
    shares = override_shares([(1, 40), (2, 70)], [1, 2])
    assert _percents(shares) == [40, 60]
    assert sum(_percents(shares)) == 100


def test_override_exact_sum_is_untouched():
    shares = override_shares([(1, 25), (2, 75)], [1, 2])
    assert _percents(shares) == [25, 75]


def test_override_rejects_non_members():
    with pytest.raises(ValidationError):
        override_shares([(1, 50), (5, 50)], [1, 2])


def test_override_rejects_duplicates():
    with pytest.raises(ValidationError):
        override_shares([(1, 50), (1, 50)], [1, 2])


def test_override_rejects_out_of_range_percent():
    with pytest.raises(ValidationError):
        override_shares([(1, -5), (2, 105)], [1, 2])


def test_override_that_cannot_be_corrected():
    with pytest.raises(ValidationError):
        override_shares([(1, 100), (2, 100), (3, 100)], [1, 2, 3])


def test_allocate_dispatches_on_mode():
    assert _percents(allocate_shares(ShareMode.PERSONAL, 1, [1, 2])) == [100]
    assert _percents(allocate_shares(ShareMode.TWO_PARTY, 1, [1, 2], 70)) == [70, 30]
    assert _percents(allocate_shares(ShareMode.EQUAL, 1, [1, 2, 3])) == [34, 33, 33]
    assert _percents(
        allocate_shares(ShareMode.OVERRIDE, 1, [1, 2], override=[(2, 100)])
    ) == [100]


def test_allocate_requires_payer_in_roster():
    with pytest.raises(ValidationError):
        allocate_shares(ShareMode.EQUAL, 9, [1, 2])


def test_allocate_with_empty_roster():
    with pytest.raises(ValidationError):
        allocate_shares(ShareMode.PERSONAL, 1, [])
