from __future__ import annotations

import datetime as dt
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from .domain import WorkRecord


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WelderCreateRequest(BaseModel):
    name: str


class WelderUpdateRequest(BaseModel):
    name: str


class WorkRecordCreateRequest(BaseModel):
    article: str
    quantity: float


class OvertimeUseRequest(BaseModel):
    date: dt.date
    hours: float


class OvertimeUpdateRequest(BaseModel):
    hours: float


class NormRequest(CamelModel):
    article: str
    time_per_unit: float = Field(alias="timePerUnit")


class PlanCreateRequest(BaseModel):
    article: str
    planned: float


class PlanUpdateRequest(BaseModel):
    planned: float


class AvailableOvertimeResponse(CamelModel):
    welder_id: str = Field(alias="welderId")
    date: dt.date
    hours: float


class ResolveTimeResponse(BaseModel):
    article: str
    quantity: float
    hours: float


class DaySummaryResponse(CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)
    welder_id: str = Field(alias="welderId")
    day: dt.date
    records: List[WorkRecord]
    articles: Dict[str, float]
    work_hours: float = Field(alias="workHours")
    adjustment_hours: float = Field(alias="adjustmentHours")
    total_hours: float = Field(alias="totalHours")
    is_over_threshold: bool = Field(alias="isOverThreshold")
    available_overtime: float = Field(alias="availableOvertime")


class WelderArticleStatResponse(CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)
    welder_id: str = Field(alias="welderId")
    welder_name: str = Field(alias="welderName")
    quantity: float


class ArticleStatsResponse(CamelModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)
    article: str
    total_planned: float = Field(alias="totalPlanned")
    total_completed: float = Field(alias="totalCompleted")
    welder_stats: List[WelderArticleStatResponse] = Field(default_factory=list, alias="welderStats")


class CommandResponse(BaseModel):
    changed: List[str]
