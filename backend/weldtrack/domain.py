"""Entities of the work accounting aggregate.

Field names are snake_case in Python; the persisted and exported document uses the
camelCase aliases, so every dump that leaves the process goes through ``by_alias=True``.
Welders, norms and plan items reference each other only through the article string.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from typing_extensions import Annotated

from .utils import generate_id, is_valid_article, normalize_article, normalize_name, now_ms


def _check_article(value: Any) -> str:
    article = normalize_article(value)
    if not is_valid_article(article):
        raise ValueError(f"Invalid article: {value!r}")
    return article


Article = Annotated[str, BeforeValidator(_check_article)]


class Entity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_id)
    created_at: int = Field(default_factory=now_ms, alias="createdAt")
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")

    def touch(self, now: Optional[int] = None) -> None:
        self.updated_at = now if now is not None else now_ms()


class Norm(Entity):
    article: Article
    time_per_unit: float = Field(gt=0, alias="timePerUnit")


class PlanItem(Entity):
    article: Article
    planned: float = Field(default=0, ge=0)
    completed: float = Field(default=0, ge=0)
    is_locked: bool = Field(default=False, alias="isLocked")

    @model_validator(mode="after")
    def _derive_lock(self) -> "PlanItem":
        self.refresh_lock()
        return self

    def refresh_lock(self) -> bool:
        self.is_locked = self.completed >= self.planned > 0
        return self.is_locked


class WorkRecord(Entity):
    article: Article
    quantity: float = Field(gt=0)
    welder_id: str = Field(default="", alias="welderId")
    date: dt.date


class Welder(Entity):
    name: str
    work_records: List[WorkRecord] = Field(default_factory=list, alias="workRecords")
    overtime: float = Field(default=0, ge=0)
    time_adjustments: Dict[dt.date, float] = Field(default_factory=dict, alias="timeAdjustments")

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> str:
        text = normalize_name(value)
        if not text:
            raise ValueError("Welder name must not be empty")
        return text

    @field_validator("work_records", "time_adjustments", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return [] if info.field_name == "work_records" else {}
        return value

    def records_on(self, day: dt.date) -> List[WorkRecord]:
        return [record for record in self.work_records if record.date == day]

    def find_record(self, record_id: str) -> Optional[WorkRecord]:
        return next((record for record in self.work_records if record.id == record_id), None)


class AppState(BaseModel):
    """Root aggregate: three independent collections joined by article."""

    model_config = ConfigDict(populate_by_name=True)

    welders: List[Welder] = Field(default_factory=list)
    norms: List[Norm] = Field(default_factory=list)
    plan: List[PlanItem] = Field(default_factory=list)

    def find_welder(self, welder_id: str) -> Optional[Welder]:
        return next((welder for welder in self.welders if welder.id == welder_id), None)

    def find_norm(self, article: str) -> Optional[Norm]:
        return next((norm for norm in self.norms if norm.article == article), None)

    def find_plan_item(self, article: str) -> Optional[PlanItem]:
        return next((item for item in self.plan if item.article == article), None)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AppStateImport(BaseModel):
    """Partial aggregate accepted by import; any of the three arrays may be missing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    welders: Optional[List[Welder]] = None
    norms: Optional[List[Norm]] = None
    plan: Optional[List[PlanItem]] = None
    exported_at: Optional[str] = Field(default=None, alias="exportedAt")


__all__ = [
    "AppState",
    "AppStateImport",
    "Entity",
    "Norm",
    "PlanItem",
    "Welder",
    "WorkRecord",
]
