# donations/schemas.py
"""Pydantic response models for the JSON API."""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class TotalsResponse(BaseModel):
    """Donation totals for a campaign, after filters."""

    campaign_id: str
    total: Decimal
    count: int
    average: Decimal
    name_query: Optional[str] = None
    method: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class LeaderboardItem(BaseModel):
    name: str
    total: Decimal
    count: int


class LeaderboardResponse(BaseModel):
    campaign_id: str
    donors: List[LeaderboardItem]


class SummaryResponse(BaseModel):
    """Money in, money out."""

    campaign_id: str
    donations_total: Decimal
    donations_count: int
    expenses_total: Decimal
    expenses_count: int
    balance: Decimal


class HealthResponse(BaseModel):
    status: str = "healthy"
    service: str
    version: str


class ErrorResponse(BaseModel):
    detail: str
    error_code: Optional[str] = Field(None, description="Exception class name")
