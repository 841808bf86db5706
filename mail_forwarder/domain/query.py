"""Search predicates built from a SearchRequest.

The same inclusive date window is expressed two ways: as a KQL content query
for the compliance search, and as an OData filter for enumerating the
matching messages in the source mailbox.
"""

from datetime import date

from pydantic import BaseModel, model_validator

from mail_forwarder.utils.timestamps import day_after_start_utc, day_start_utc, format_timestamp

from .models import SearchRequest


class SearchQuery(BaseModel):
    """Inclusive ``received`` date window."""

    start: date
    end: date

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_window(self):
        if self.start > self.end:
            raise ValueError(f"Query start {self.start} is after end {self.end}")
        return self

    @classmethod
    def from_request(cls, request: SearchRequest) -> "SearchQuery":
        return cls(start=request.date_range_start, end=request.date_range_end)

    def to_kql(self) -> str:
        """KQL content query; both dates are included.

        Example:
            >>> SearchQuery(start=date(2024, 6, 1), end=date(2024, 6, 30)).to_kql()
            'received>=2024-06-01 AND received<=2024-06-30'
        """
        return f"received>={self.start.isoformat()} AND received<={self.end.isoformat()}"

    def to_odata_filter(self) -> str:
        """OData filter on receivedDateTime covering every instant of the end day.

        Example:
            >>> SearchQuery(start=date(2024, 6, 1), end=date(2024, 6, 30)).to_odata_filter()
            'receivedDateTime ge 2024-06-01T00:00:00Z and receivedDateTime lt 2024-07-01T00:00:00Z'
        """
        lower = format_timestamp(day_start_utc(self.start))
        upper = format_timestamp(day_after_start_utc(self.end))
        return f"receivedDateTime ge {lower} and receivedDateTime lt {upper}"

    def describe(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()} (inclusive)"
