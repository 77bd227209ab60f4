"""Garden pages and JSON API routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from pydantic import BaseModel

from tane import __version__
from tane.garden.models import SeedStatus
from tane.garden.services import (
    GardenService,
    PlantSeed,
    SeedBusyError,
    SeedNotFoundError,
)

logger = logging.getLogger(__name__)

pages_router = APIRouter()
api_router = APIRouter()

REFRESH_SECONDS = 3


class SeedIn(BaseModel):
    content: str = ""
    model: str | None = None


def _service(request: Request) -> GardenService:
    return request.app.state.service


def _render(
    request: Request,
    name: str,
    context: dict[str, Any],
    *,
    status_code: int = 200,
) -> HTMLResponse:
    return request.app.state.templates.TemplateResponse(
        request,
        name,
        context,
        status_code=status_code,
    )


def _error_page(request: Request, *, status_code: int, title: str, message: str) -> HTMLResponse:
    return _render(
        request,
        "error.html",
        {"title": title, "message": message},
        status_code=status_code,
    )


def _not_found(request: Request, seed_id: str) -> HTMLResponse:
    return _error_page(
        request,
        status_code=404,
        title="Seed not found",
        message=f"No seed with id {seed_id} grows in this garden.",
    )


def _index(
    request: Request,
    *,
    error: str | None = None,
    idea: str = "",
    status_code: int = 200,
) -> HTMLResponse:
    service = _service(request)
    settings = request.app.state.settings
    return _render(
        request,
        "index.html",
        {
            "seeds": service.list_recent(limit=settings.web.recent_seeds_limit),
            "models": service.list_models(),
            "error": error,
            "idea": idea,
        },
        status_code=status_code,
    )


@pages_router.get("/", response_class=HTMLResponse)
def garden(request: Request) -> HTMLResponse:
    return _index(request)


@pages_router.post("/seeds", response_model=None)
def plant(
    request: Request,
    idea: str = Form(""),
    model: str = Form(""),
) -> Response:
    try:
        seed = _service(request).plant(PlantSeed(content=idea, model=model or None))
    except ValueError as error:
        return _index(request, error=str(error), idea=idea, status_code=400)
    return RedirectResponse(url=f"/seed/{seed.id}", status_code=303)


@pages_router.get("/seed/{seed_id}", response_model=None)
def seed_page(request: Request, seed_id: str) -> Response:
    try:
        details = _service(request).details(seed_id)
    except SeedNotFoundError:
        return _not_found(request, seed_id)

    if details.seed.status == SeedStatus.COMPLETED:
        return RedirectResponse(url=f"/report/{seed_id}", status_code=303)
    return _render(
        request,
        "seed.html",
        {
            "seed": details.seed,
            "report": details.report,
            "refresh_seconds": None if details.seed.status.is_terminal else REFRESH_SECONDS,
        },
    )


@pages_router.get("/report/{seed_id}", response_model=None)
def report_page(request: Request, seed_id: str) -> Response:
    try:
        details = _service(request).details(seed_id)
    except SeedNotFoundError:
        return _not_found(request, seed_id)

    if not details.seed.status.is_terminal:
        return RedirectResponse(url=f"/seed/{seed_id}", status_code=303)
    return _render(
        request,
        "report.html",
        {"seed": details.seed, "report": details.report},
    )


@pages_router.post("/seed/{seed_id}/delete")
def delete_seed(request: Request, seed_id: str) -> RedirectResponse:
    try:
        _service(request).delete(seed_id)
    except SeedNotFoundError:
        logger.info("Delete requested for missing seed %s", seed_id)
    return RedirectResponse(url="/", status_code=303)


@pages_router.post("/seed/{seed_id}/regenerate", response_model=None)
def regenerate_seed(request: Request, seed_id: str) -> Response:
    try:
        _service(request).regenerate(seed_id)
    except SeedNotFoundError:
        return _not_found(request, seed_id)
    except SeedBusyError:
        return _error_page(
            request,
            status_code=409,
            title="Still growing",
            message="This seed is being researched right now. Regenerate it once it finishes.",
        )
    return RedirectResponse(url=f"/seed/{seed_id}", status_code=303)


@api_router.get("/seeds")
def api_list_seeds(
    request: Request,
    status: SeedStatus | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    limit = max(1, min(limit, 500))
    return jsonable_encoder(_service(request).list_recent(limit=limit, status=status))


@api_router.post("/seeds", status_code=201)
def api_plant_seed(request: Request, payload: SeedIn) -> dict[str, Any]:
    try:
        seed = _service(request).plant(PlantSeed(content=payload.content, model=payload.model))
    except ValueError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error
    return jsonable_encoder(seed)


@api_router.get("/seeds/{seed_id}")
def api_get_seed(request: Request, seed_id: str) -> dict[str, Any]:
    try:
        details = _service(request).details(seed_id)
    except SeedNotFoundError as error:
        raise HTTPException(status_code=404, detail="Seed not found") from error
    return jsonable_encoder(details)


@api_router.get("/models")
def api_models(request: Request) -> list[dict[str, Any]]:
    return jsonable_encoder(_service(request).list_models())


@api_router.get("/health")
def api_health(request: Request) -> dict[str, Any]:
    nursery = request.app.state.nursery
    return {
        "status": "ok",
        "version": __version__,
        "nursery": {
            "running": nursery is not None and nursery.is_running,
            "in_flight": nursery.in_flight if nursery is not None else [],
        },
    }
