"""
Query Models

Filters and results for reading expenses back out of storage.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from groupledger.models.ledger import Category, utc_now


class ExpenseQuery(BaseModel):
    """
    Which expenses to read.

    All filters are optional and combined with AND. An empty query
    matches every expense.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    query_id: UUID = Field(default_factory=uuid4)

    categories: list[Category] = Field(
        default_factory=list,
        description="Match any of these categories"
    )
    search_text: str = Field(
        default="",
        max_length=200,
        description="Case-insensitive substring of the expense name"
    )
    group_id: Optional[str] = None
    is_group_expense: Optional[bool] = Field(
        default=None,
        description="True for shared expenses only, False for standalone only"
    )
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    limit: int = Field(
        default=100,
        ge=1,
        le=1000
    )

    @model_validator(mode='after')
    def validate_date_range(self) -> 'ExpenseQuery':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class QueryResult(BaseModel):
    """Result of executing an ExpenseQuery."""

    query_id: UUID
    executed_at: datetime = Field(default_factory=utc_now)

    success: bool
    error_message: Optional[str] = None

    data_found: bool = Field(
        ...,
        description="Was any data found?"
    )
    result_count: int = Field(
        ge=0,
        description="Number of matching expenses"
    )

    results: list[dict] = Field(
        default_factory=list,
        description="Matching expenses as plain dicts"
    )
    aggregation_result: Optional[dict] = None

    query_description: str = Field(
        ...,
        description="Human-readable description of what was queried"
    )
