# sharedbudget/domain/models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class Role(Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class RuleKind(Enum):
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class Recurrence(Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class ShareMode(Enum):
    PERSONAL = "personal"
    TWO_PARTY = "two_party"
    OVERRIDE = "override"
    EQUAL = "equal"


class InviteStatus(Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REVOKED = "REVOKED"


class NotificationType(Enum):
    INVITE = "INVITE"


class TrendPeriod(Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass
class ShareSpec:
    user_id: int
    percent: int

    def __post_init__(self):
        if self.percent < 0:
            raise ValueError("Share percent cannot be negative.")


@dataclass
class RunDueResult:
    kind: RuleKind
    created_ids: List[int] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created_ids)
