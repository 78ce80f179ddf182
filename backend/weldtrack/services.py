from __future__ import annotations

import datetime as dt
import json
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .config import settings
from .domain import AppState, AppStateImport, Norm, PlanItem, Welder, WorkRecord
from .errors import DuplicateError, ImportFormatError, NotFoundError, ValidationError
from .utils import generate_id, is_valid_article, local_today, normalize_article, normalize_name, now_ms

WELDERS = "welders"
NORMS = "norms"
PLAN = "plan"

DocumentInput = Union[str, bytes, bytearray, Dict[str, Any], AppState, AppStateImport]


@dataclass
class CommandResult:
    """Outcome of a command: the next aggregate plus the collections it touched."""

    state: AppState
    changed: List[str] = field(default_factory=list)
    entity: Any = None

    @property
    def applied(self) -> bool:
        return bool(self.changed)


@dataclass
class DaySummary:
    welder_id: str
    day: dt.date
    records: List[WorkRecord]
    articles: Dict[str, float]
    work_hours: float
    adjustment_hours: float
    total_hours: float
    is_over_threshold: bool
    available_overtime: float


@dataclass
class WelderArticleStat:
    welder_id: str
    welder_name: str
    quantity: float


@dataclass
class ArticleStats:
    article: str
    total_planned: float
    total_completed: float
    welder_stats: List[WelderArticleStat] = field(default_factory=list)


def _unchanged(state: AppState) -> CommandResult:
    return CommandResult(state=state)


def _draft(state: AppState) -> AppState:
    return state.model_copy(deep=True)


def _clean_article(value: Any) -> str:
    article = normalize_article(value)
    if not is_valid_article(article):
        raise ValidationError("Article must consist of letters and digits only")
    return article


def _positive(value: Any, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number") from exc
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{label} must be greater than zero")
    return number


def _clean_name(value: Any) -> str:
    name = normalize_name(value)
    if not name:
        raise ValidationError("Welder name must not be empty")
    return name


def _get_welder(state: AppState, welder_id: str) -> Welder:
    welder = state.find_welder(welder_id)
    if welder is None:
        raise NotFoundError("Welder not found")
    return welder


# ----------------------------------------------------------------------
# Welders
# ----------------------------------------------------------------------
def add_welder(state: AppState, name: str) -> CommandResult:
    name = _clean_name(name)
    draft = _draft(state)
    welder = Welder(name=name)
    draft.welders.insert(0, welder)
    return CommandResult(draft, [WELDERS], welder)


def rename_welder(state: AppState, welder_id: str, name: str) -> CommandResult:
    name = _clean_name(name)
    _get_welder(state, welder_id)
    draft = _draft(state)
    welder = _get_welder(draft, welder_id)
    welder.name = name
    welder.touch()
    return CommandResult(draft, [WELDERS], welder)


def delete_welder(state: AppState, welder_id: str) -> CommandResult:
    if state.find_welder(welder_id) is None:
        return _unchanged(state)
    draft = _draft(state)
    draft.welders = [welder for welder in draft.welders if welder.id != welder_id]
    return CommandResult(draft, [WELDERS])


def reset_data(state: Optional[AppState] = None) -> CommandResult:
    return CommandResult(AppState(), [WELDERS, NORMS, PLAN])


# ----------------------------------------------------------------------
# Norm registry
# ----------------------------------------------------------------------
def resolve_time(norms: Iterable[Norm], article: str, quantity: float) -> float:
    """Hours needed for ``quantity`` units of ``article``; 0 when no norm matches."""
    article = normalize_article(article)
    norm = next((norm for norm in norms if norm.article == article), None)
    if norm is None:
        return 0.0
    return norm.time_per_unit * quantity


def add_norm(state: AppState, article: str, time_per_unit: float) -> CommandResult:
    article = _clean_article(article)
    time_per_unit = _positive(time_per_unit, "Time per unit")
    if state.find_norm(article) is not None:
        raise DuplicateError(f"A norm for article {article} already exists")
    draft = _draft(state)
    norm = Norm(article=article, time_per_unit=time_per_unit)
    draft.norms.insert(0, norm)
    return CommandResult(draft, [NORMS], norm)


def update_norm(state: AppState, norm_id: str, article: str, time_per_unit: float) -> CommandResult:
    article = _clean_article(article)
    time_per_unit = _positive(time_per_unit, "Time per unit")
    if not any(norm.id == norm_id for norm in state.norms):
        raise NotFoundError("Norm not found")
    clash = state.find_norm(article)
    if clash is not None and clash.id != norm_id:
        raise DuplicateError(f"A norm for article {article} already exists")
    draft = _draft(state)
    norm = next(norm for norm in draft.norms if norm.id == norm_id)
    norm.article = article
    norm.time_per_unit = time_per_unit
    norm.touch()
    return CommandResult(draft, [NORMS], norm)


def delete_norm(state: AppState, norm_id: str) -> CommandResult:
    # Work records keep their article; their computed time drops to 0.
    if not any(norm.id == norm_id for norm in state.norms):
        return _unchanged(state)
    draft = _draft(state)
    draft.norms = [norm for norm in draft.norms if norm.id != norm_id]
    return CommandResult(draft, [NORMS])


# ----------------------------------------------------------------------
# Plan ledger
# ----------------------------------------------------------------------
def apply_completion_delta(
    plan: List[PlanItem],
    article: str,
    delta: float,
    now: Optional[int] = None,
) -> Optional[PlanItem]:
    """Shift ``completed`` of the matching plan item and re-derive its lock."""
    item = next((item for item in plan if item.article == article), None)
    if item is None:
        return None
    item.completed = max(0.0, item.completed + delta)
    item.refresh_lock()
    item.touch(now)
    return item


def add_plan_item(state: AppState, article: str, planned: float) -> CommandResult:
    article = _clean_article(article)
    planned = _positive(planned, "Planned quantity")
    draft = _draft(state)
    item = draft.find_plan_item(article)
    if item is not None:
        item.planned += planned
        item.refresh_lock()
        item.touch()
    else:
        item = PlanItem(article=article, planned=planned)
        draft.plan.insert(0, item)
    return CommandResult(draft, [PLAN], item)


def update_plan_item(state: AppState, item_id: str, planned: float) -> CommandResult:
    planned = _positive(planned, "Planned quantity")
    if not any(item.id == item_id for item in state.plan):
        raise NotFoundError("Plan item not found")
    draft = _draft(state)
    item = next(item for item in draft.plan if item.id == item_id)
    item.planned = planned
    item.refresh_lock()
    item.touch()
    return CommandResult(draft, [PLAN], item)


def delete_plan_item(state: AppState, item_id: str) -> CommandResult:
    if not any(item.id == item_id for item in state.plan):
        return _unchanged(state)
    draft = _draft(state)
    draft.plan = [item for item in draft.plan if item.id != item_id]
    return CommandResult(draft, [PLAN])


# ----------------------------------------------------------------------
# Work ledger
# ----------------------------------------------------------------------
def day_work_time(welder: Welder, norms: Iterable[Norm], day: dt.date) -> float:
    norms = list(norms)
    return sum(resolve_time(norms, record.article, record.quantity) for record in welder.records_on(day))


def day_total_time(welder: Welder, norms: Iterable[Norm], day: dt.date) -> float:
    return day_work_time(welder, norms, day) + welder.time_adjustments.get(day, 0.0)


def add_work_record(
    state: AppState,
    welder_id: str,
    article: str,
    quantity: float,
    *,
    day: Optional[dt.date] = None,
) -> CommandResult:
    """Book ``quantity`` units of ``article`` for a welder on ``day`` (today by default).

    Overtime grows by the excess of the day's total over the workday threshold,
    evaluated against the running total at the moment of this call. Same-day
    bookings of an article merge into one record, and the matching plan item
    receives the quantity as completion.
    """
    article = _clean_article(article)
    quantity = _positive(quantity, "Quantity")
    _get_welder(state, welder_id)
    day = day or local_today()

    draft = _draft(state)
    welder = _get_welder(draft, welder_id)
    now = now_ms()

    total_time = day_total_time(welder, draft.norms, day) + resolve_time(draft.norms, article, quantity)
    if total_time > settings.workday_hours:
        welder.overtime += total_time - settings.workday_hours

    record = next((record for record in welder.records_on(day) if record.article == article), None)
    if record is not None:
        record.quantity += quantity
        record.touch(now)
    else:
        record = WorkRecord(
            article=article,
            quantity=quantity,
            welder_id=welder.id,
            date=day,
            created_at=now,
            updated_at=now,
        )
        welder.work_records.insert(0, record)
    welder.touch(now)

    changed = [WELDERS]
    if apply_completion_delta(draft.plan, article, quantity, now) is not None:
        changed.append(PLAN)
    return CommandResult(draft, changed, record)


def delete_work_record(state: AppState, welder_id: str, record_id: str) -> CommandResult:
    """Remove a record and reverse its plan completion. Accrued overtime stays."""
    welder = state.find_welder(welder_id)
    if welder is None or welder.find_record(record_id) is None:
        return _unchanged(state)

    draft = _draft(state)
    welder = _get_welder(draft, welder_id)
    record = welder.find_record(record_id)
    now = now_ms()
    welder.work_records = [item for item in welder.work_records if item.id != record_id]
    welder.touch(now)

    changed = [WELDERS]
    if apply_completion_delta(draft.plan, record.article, -record.quantity, now) is not None:
        changed.append(PLAN)
    return CommandResult(draft, changed, record)


def use_overtime(state: AppState, welder_id: str, day: dt.date, hours: float) -> CommandResult:
    hours = _positive(hours, "Hours")
    welder = state.find_welder(welder_id)
    if welder is None or welder.overtime < hours:
        return _unchanged(state)

    draft = _draft(state)
    welder = _get_welder(draft, welder_id)
    welder.overtime = max(0.0, welder.overtime - hours)
    welder.time_adjustments[day] = welder.time_adjustments.get(day, 0.0) + hours
    welder.touch()
    return CommandResult(draft, [WELDERS], welder)


def update_overtime(state: AppState, welder_id: str, hours: float) -> CommandResult:
    try:
        hours = float(hours)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Overtime must be a number") from exc
    if not math.isfinite(hours) or hours < 0:
        raise ValidationError("Overtime must not be negative")
    _get_welder(state, welder_id)

    draft = _draft(state)
    welder = _get_welder(draft, welder_id)
    welder.overtime = max(0.0, hours)
    welder.touch()
    return CommandResult(draft, [WELDERS], welder)


def available_overtime_for(state: AppState, welder_id: str, day: Optional[dt.date] = None) -> float:
    """Banked overtime that still fits into ``day`` without exceeding the workday."""
    welder = _get_welder(state, welder_id)
    if welder.overtime <= 0:
        return 0.0
    day = day or local_today()
    remaining = settings.workday_hours - day_total_time(welder, state.norms, day)
    return min(welder.overtime, max(0.0, remaining))


# ----------------------------------------------------------------------
# Queries
# ----------------------------------------------------------------------
def welder_day_summary(state: AppState, welder_id: str, day: Optional[dt.date] = None) -> DaySummary:
    welder = _get_welder(state, welder_id)
    day = day or local_today()
    records = sorted(welder.records_on(day), key=lambda record: record.created_at, reverse=True)
    articles: Dict[str, float] = defaultdict(float)
    for record in records:
        articles[record.article] += record.quantity
    work_hours = day_work_time(welder, state.norms, day)
    adjustment_hours = welder.time_adjustments.get(day, 0.0)
    total_hours = work_hours + adjustment_hours
    return DaySummary(
        welder_id=welder.id,
        day=day,
        records=records,
        articles=dict(articles),
        work_hours=work_hours,
        adjustment_hours=adjustment_hours,
        total_hours=total_hours,
        is_over_threshold=total_hours > settings.workday_hours,
        available_overtime=available_overtime_for(state, welder.id, day),
    )


def article_stats(state: AppState, article: str) -> Optional[ArticleStats]:
    article = normalize_article(article)
    item = state.find_plan_item(article)
    if item is None:
        return None
    stats: List[WelderArticleStat] = []
    for welder in state.welders:
        quantity = sum(record.quantity for record in welder.work_records if record.article == article)
        if quantity > 0:
            stats.append(WelderArticleStat(welder_id=welder.id, welder_name=welder.name, quantity=quantity))
    return ArticleStats(
        article=article,
        total_planned=item.planned,
        total_completed=item.completed,
        welder_stats=stats,
    )


def suggest_norms(state: AppState, query: str, limit: Optional[int] = None) -> List[Norm]:
    search = normalize_article(query)
    if not search:
        return []
    limit = settings.suggestion_limit if limit is None else limit
    return [norm for norm in state.norms if search in norm.article][:limit]


def suggest_plan_items(
    state: AppState,
    query: str,
    limit: Optional[int] = None,
    include_locked: bool = False,
) -> List[PlanItem]:
    search = normalize_article(query)
    limit = settings.suggestion_limit if limit is None else limit
    matches = [
        item
        for item in state.plan
        if (include_locked or not item.is_locked) and (not search or search in item.article)
    ]
    return matches[:limit]


# ----------------------------------------------------------------------
# Import / export
# ----------------------------------------------------------------------
def export_snapshot(state: AppState, exported_at: Optional[dt.datetime] = None) -> Dict[str, Any]:
    document = state.to_document()
    stamp = exported_at or dt.datetime.now(dt.timezone.utc)
    document["exportedAt"] = stamp.isoformat()
    return document


def parse_document(raw: DocumentInput) -> AppStateImport:
    """Validate an incoming document into a partial aggregate."""
    if isinstance(raw, AppStateImport):
        return raw.model_copy(deep=True)
    if isinstance(raw, AppState):
        raw = raw.to_document()
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ImportFormatError("Document is not valid UTF-8") from exc
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"Document is not valid JSON: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise ImportFormatError("Document must be a JSON object")
    try:
        return AppStateImport.model_validate(raw)
    except PydanticValidationError as exc:
        raise ImportFormatError(f"Document does not match the expected shape: {exc.error_count()} error(s)") from exc


def load_state(raw: DocumentInput) -> AppState:
    document = parse_document(raw)
    state = AppState(
        welders=document.welders or [],
        norms=document.norms or [],
        plan=document.plan or [],
    )
    for welder in state.welders:
        _merge_duplicate_records(welder)
    return state


def _merge_duplicate_records(welder: Welder) -> None:
    merged: Dict[tuple, WorkRecord] = {}
    kept: List[WorkRecord] = []
    for record in welder.work_records:
        record.welder_id = welder.id
        key = (record.date, record.article)
        existing = merged.get(key)
        if existing is not None:
            existing.quantity += record.quantity
            continue
        merged[key] = record
        kept.append(record)
    welder.work_records = kept


def import_data(state: AppState, incoming: DocumentInput) -> CommandResult:
    """Merge an external document into the aggregate without overwriting anything.

    Welders are matched by case-insensitive name and norms by article; both are only
    ever appended. Plan items with a known article have planned and completed summed
    in, unknown ones are appended. Appended entities get fresh identities.
    """
    document = parse_document(incoming)
    draft = _draft(state)
    changed: List[str] = []

    if document.welders:
        known_names = {welder.name.lower() for welder in draft.welders}
        for incoming_welder in document.welders:
            key = incoming_welder.name.lower()
            if key in known_names:
                continue
            welder = incoming_welder.model_copy(deep=True, update={"id": generate_id()})
            _merge_duplicate_records(welder)
            draft.welders.append(welder)
            known_names.add(key)
            if WELDERS not in changed:
                changed.append(WELDERS)

    if document.norms:
        known_articles = {norm.article for norm in draft.norms}
        for incoming_norm in document.norms:
            if incoming_norm.article in known_articles:
                continue
            draft.norms.append(incoming_norm.model_copy(update={"id": generate_id()}))
            known_articles.add(incoming_norm.article)
            if NORMS not in changed:
                changed.append(NORMS)

    if document.plan:
        now = now_ms()
        for incoming_item in document.plan:
            existing = draft.find_plan_item(incoming_item.article)
            if existing is not None:
                existing.planned += incoming_item.planned
                existing.completed += incoming_item.completed
                existing.refresh_lock()
                existing.touch(now)
            else:
                item = incoming_item.model_copy(update={"id": generate_id()})
                item.refresh_lock()
                draft.plan.append(item)
            if PLAN not in changed:
                changed.append(PLAN)

    if not changed:
        return _unchanged(state)
    return CommandResult(draft, changed)
