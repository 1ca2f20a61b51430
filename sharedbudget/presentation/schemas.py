from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from sharedbudget.domain.helpers.dates import to_naive_utc
from sharedbudget.domain.models import Recurrence

# aware datetimes are converted, naive ones are taken as UTC
UtcDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRef(CamelModel):
    id: int
    name: str
    username: Optional[str] = None

    @staticmethod
    def from_domain(u) -> "UserRef":
        return UserRef(id=u.id, name=u.name, username=u.username)


class Page(CamelModel):
    total: int
    page: int
    page_size: int


class RecurringRequest(CamelModel):
    recurrence: Recurrence
    interval: Any = 1
    start_at: Optional[UtcDatetime] = None
    end_at: Optional[UtcDatetime] = None
    time_zone: str = "UTC"

    @field_validator("recurrence", mode="before")
    @classmethod
    def upper_recurrence(cls, v):
        return v.upper() if isinstance(v, str) else v

    def to_service(self) -> dict:
        return {
            "recurrence": self.recurrence,
            "interval": self.interval,
            "start_at": self.start_at,
            "end_at": self.end_at,
            "time_zone": self.time_zone,
        }
