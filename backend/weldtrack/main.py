from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing_extensions import Literal

from . import services
from .config import settings
from .domain import Norm, PlanItem, Welder, WorkRecord
from .errors import DuplicateError, EngineError, ImportFormatError, LockedError, NotFoundError, ValidationError
from .schemas import (
    ArticleStatsResponse,
    AvailableOvertimeResponse,
    CommandResponse,
    DaySummaryResponse,
    NormRequest,
    OvertimeUpdateRequest,
    OvertimeUseRequest,
    PlanCreateRequest,
    PlanUpdateRequest,
    ResolveTimeResponse,
    WelderCreateRequest,
    WelderUpdateRequest,
    WorkRecordCreateRequest,
)
from .state import WorkAccountingStore, build_store
from .storage import build_document_store
from .utils import local_today, normalize_article

_ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    ImportFormatError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateError: status.HTTP_409_CONFLICT,
    LockedError: status.HTTP_409_CONFLICT,
}


def _store(request: Request) -> WorkAccountingStore:
    return request.app.state.store


def _engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse({"detail": exc.message}, status_code=status_code)


def create_app(store: Optional[WorkAccountingStore] = None) -> FastAPI:
    if store is None:
        store = build_store(build_document_store(settings), settings.storage_key)

    app = FastAPI(title=settings.app_name)
    app.state.store = store
    app.add_exception_handler(EngineError, _engine_error_handler)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/state")
    def get_state(request: Request) -> Dict[str, Any]:
        return _store(request).state.to_document()

    @app.get("/export")
    def export_state(request: Request) -> JSONResponse:
        document = services.export_snapshot(_store(request).state)
        filename = f"welders-data-{local_today().isoformat()}.json"
        return JSONResponse(document, headers={"Content-Disposition": f'attachment; filename="{filename}"'})

    @app.post("/import", response_model=CommandResponse)
    def import_state(request: Request, payload: Union[Dict[str, Any], str] = Body(...)) -> CommandResponse:
        result = _store(request).dispatch(services.import_data, payload)
        return CommandResponse(changed=result.changed)

    @app.post("/reset", response_model=CommandResponse)
    def reset_state(request: Request) -> CommandResponse:
        result = _store(request).dispatch(services.reset_data)
        return CommandResponse(changed=result.changed)

    # ------------------------------------------------------------------
    # Welders and work
    # ------------------------------------------------------------------
    @app.post("/welders", response_model=Welder, status_code=status.HTTP_201_CREATED)
    def create_welder(payload: WelderCreateRequest, request: Request) -> Welder:
        return _store(request).dispatch(services.add_welder, payload.name).entity

    @app.patch("/welders/{welder_id}", response_model=Welder)
    def update_welder(welder_id: str, payload: WelderUpdateRequest, request: Request) -> Welder:
        return _store(request).dispatch(services.rename_welder, welder_id, payload.name).entity

    @app.delete("/welders/{welder_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_welder(welder_id: str, request: Request) -> Response:
        _store(request).dispatch(services.delete_welder, welder_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/welders/{welder_id}/days/{day}", response_model=DaySummaryResponse)
    def welder_day(welder_id: str, day: dt.date, request: Request) -> DaySummaryResponse:
        summary = _store(request).query(services.welder_day_summary, welder_id, day)
        return DaySummaryResponse.model_validate(summary)

    @app.post("/welders/{welder_id}/work", response_model=WorkRecord, status_code=status.HTTP_201_CREATED)
    def create_work_record(welder_id: str, payload: WorkRecordCreateRequest, request: Request) -> WorkRecord:
        store = _store(request)
        if store.state.find_norm(normalize_article(payload.article)) is None:
            raise ValidationError("Article not found in norms")
        result = store.dispatch(
            services.add_work_record, welder_id, payload.article, payload.quantity
        )
        return result.entity

    @app.delete("/welders/{welder_id}/work/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_work_record(welder_id: str, record_id: str, request: Request) -> Response:
        _store(request).dispatch(services.delete_work_record, welder_id, record_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/welders/{welder_id}/overtime/use", response_model=Welder)
    def apply_overtime(welder_id: str, payload: OvertimeUseRequest, request: Request) -> Welder:
        store = _store(request)
        result = store.dispatch(services.use_overtime, welder_id, payload.date, payload.hours)
        if not result.applied:
            welder = store.state.find_welder(welder_id)
            if welder is None:
                raise NotFoundError("Welder not found")
            return welder
        return result.entity

    @app.put("/welders/{welder_id}/overtime", response_model=Welder)
    def set_overtime(welder_id: str, payload: OvertimeUpdateRequest, request: Request) -> Welder:
        return _store(request).dispatch(services.update_overtime, welder_id, payload.hours).entity

    @app.get("/welders/{welder_id}/overtime/available", response_model=AvailableOvertimeResponse)
    def available_overtime(
        welder_id: str,
        request: Request,
        day: Optional[dt.date] = Query(default=None),
    ) -> AvailableOvertimeResponse:
        day = day or local_today()
        hours = _store(request).query(services.available_overtime_for, welder_id, day)
        return AvailableOvertimeResponse(welder_id=welder_id, date=day, hours=hours)

    # ------------------------------------------------------------------
    # Norms
    # ------------------------------------------------------------------
    @app.post("/norms", response_model=Norm, status_code=status.HTTP_201_CREATED)
    def create_norm(payload: NormRequest, request: Request) -> Norm:
        return _store(request).dispatch(services.add_norm, payload.article, payload.time_per_unit).entity

    @app.put("/norms/{norm_id}", response_model=Norm)
    def replace_norm(norm_id: str, payload: NormRequest, request: Request) -> Norm:
        result = _store(request).dispatch(
            services.update_norm, norm_id, payload.article, payload.time_per_unit
        )
        return result.entity

    @app.delete("/norms/{norm_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_norm(norm_id: str, request: Request) -> Response:
        _store(request).dispatch(services.delete_norm, norm_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/resolve-time", response_model=ResolveTimeResponse)
    def resolve_time(
        request: Request,
        article: str = Query(...),
        quantity: float = Query(...),
    ) -> ResolveTimeResponse:
        hours = services.resolve_time(_store(request).state.norms, article, quantity)
        return ResolveTimeResponse(article=normalize_article(article), quantity=quantity, hours=hours)

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------
    @app.post("/plan", response_model=PlanItem, status_code=status.HTTP_201_CREATED)
    def create_plan_item(payload: PlanCreateRequest, request: Request) -> PlanItem:
        store = _store(request)
        if store.state.find_norm(normalize_article(payload.article)) is None:
            raise ValidationError("Article not found in norms")
        return store.dispatch(services.add_plan_item, payload.article, payload.planned).entity

    @app.put("/plan/{item_id}", response_model=PlanItem)
    def replace_plan_item(item_id: str, payload: PlanUpdateRequest, request: Request) -> PlanItem:
        store = _store(request)
        item = next((item for item in store.state.plan if item.id == item_id), None)
        if item is not None and item.is_locked:
            raise LockedError("Completed plan items are locked and cannot be edited")
        return store.dispatch(services.update_plan_item, item_id, payload.planned).entity

    @app.delete("/plan/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    def remove_plan_item(item_id: str, request: Request) -> Response:
        _store(request).dispatch(services.delete_plan_item, item_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/articles/{article}/stats", response_model=ArticleStatsResponse)
    def get_article_stats(article: str, request: Request) -> ArticleStatsResponse:
        stats = _store(request).query(services.article_stats, article)
        if stats is None:
            raise NotFoundError("Plan item not found")
        return ArticleStatsResponse.model_validate(stats)

    @app.get("/suggestions", response_model=List[str])
    def suggestions(
        request: Request,
        q: str = Query(default=""),
        source: Literal["norms", "plan"] = Query(default="norms"),
        include_locked: bool = Query(default=False),
    ) -> List[str]:
        store = _store(request)
        if source == "plan":
            items = store.query(services.suggest_plan_items, q, include_locked=include_locked)
        else:
            items = store.query(services.suggest_norms, q)
        return [item.article for item in items]

    return app


app = create_app()
