# pipelines_host/api/routes.py

"""
================================================================================
FILE: pipelines_host/api/routes.py
================================================================================

PURPOSE:
    HTTP surface of the host. Mounted twice by main.py: at the root and
    under /v1.

ENDPOINTS:
    Public:
        GET  /                          health
        GET  /health                    health
        GET  /pipelines                 registry listing
        GET  /models                    OpenAI-style model list
        GET  /{id}/valves               current valve values
        GET  /{id}/valves/spec          valve schema
        POST /{id}/valves/update        type-checked valve update
        POST /{id}/filter/inlet         run only the inlet stage
        POST /{id}/filter/outlet        run only the outlet stage
        POST /chat/completions          execute a pipeline
    Admin (Authorization: Bearer <API_KEY>):
        POST   /pipelines/add           download from URL
        POST   /pipelines/upload        multipart .py upload
        DELETE /pipelines/delete        delete by id
        POST   /pipelines/reload        reload one (id) or all

KEY FACTS:
    - Handlers never catch PipelineHostException; the app-level handlers
      turn them into the {error: {message, type, code}} envelope
"""

import logging
import time
import uuid
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, Body, Depends, File, UploadFile

from pipelines_host import __version__
from pipelines_host.api.dependencies import (
    get_dispatcher,
    get_http_client,
    get_lifecycle,
    get_registry,
    get_settings,
    require_admin,
)
from pipelines_host.api.models import (
    AddPipelineRequest,
    ChatCompletionChoice,
    ChatCompletionMessage,
    ChatCompletionRequest,
    ChatCompletionResponse,
    DeletePipelineRequest,
    FilterRequest,
    HealthCheckResponse,
    ModelCard,
    ModelList,
    ModelPipelineInfo,
    PipelineListResponse,
    ReloadPipelineRequest,
)
from pipelines_host.api.sources import download_pipeline_source, save_uploaded_source
from pipelines_host.config.constants import CHAT_COMPLETION_OBJECT
from pipelines_host.config.settings import Settings
from pipelines_host.pipeline.dispatcher import ExecutionDispatcher
from pipelines_host.pipeline.lifecycle import LifecycleManager
from pipelines_host.pipeline.registry import PipelineRegistry
from pipelines_host.utils import safe_json_dumps

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pipelines"])
admin_router = APIRouter(
    prefix="/pipelines",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


# ============================================================================
# HEALTH & LISTINGS
# ============================================================================

@router.get("/", response_model=HealthCheckResponse, summary="Health check")
async def health() -> HealthCheckResponse:
    return HealthCheckResponse(status=True, version=__version__)


@router.get("/health", response_model=HealthCheckResponse, include_in_schema=False)
async def health_alias() -> HealthCheckResponse:
    return HealthCheckResponse(status=True, version=__version__)


@router.get("/pipelines", response_model=PipelineListResponse, summary="List pipelines")
async def list_pipelines(registry: PipelineRegistry = Depends(get_registry)) -> PipelineListResponse:
    return PipelineListResponse(data=registry.list_all())


@router.get("/models", response_model=ModelList, summary="List pipelines as models")
async def list_models(
    registry: PipelineRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
) -> ModelList:
    """Every registered pipeline, whether loaded yet or not."""
    created = int(time.time())
    snapshot = registry.snapshot()
    cards = []
    for identifier in sorted(snapshot):
        entry = snapshot[identifier]
        has_valves = entry.loaded is not None and entry.loaded.capabilities.has_valves
        cards.append(
            ModelCard(
                id=identifier,
                name=entry.descriptor.name,
                created=created,
                owned_by=settings.model_owner,
                pipeline=ModelPipelineInfo(type=entry.descriptor.declared_type, valves=has_valves),
            )
        )
    return ModelList(data=cards)


# ============================================================================
# ADMIN: ADD / UPLOAD / DELETE / RELOAD
# ============================================================================

@admin_router.post("/add", summary="Add a pipeline from a URL")
async def add_pipeline(
    request: AddPipelineRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Dict[str, Any]:
    path = await download_pipeline_source(
        request.url,
        lifecycle.pipelines_dir,
        client=client,
        max_bytes=settings.max_upload_size_bytes,
    )
    entry = await lifecycle.add_pipeline_from_source(path)
    return {
        "status": True,
        "detail": f"Pipeline '{entry.identifier}' added from {request.url}",
        "pipeline": entry.to_dict(),
    }


@admin_router.post("/upload", summary="Upload a pipeline source file")
async def upload_pipeline(
    file: UploadFile = File(..., description="Pipeline .py source"),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    try:
        path = await save_uploaded_source(
            file, lifecycle.pipelines_dir, max_bytes=settings.max_upload_size_bytes
        )
    finally:
        await file.close()
    entry = await lifecycle.add_pipeline_from_source(path)
    return {
        "status": True,
        "detail": f"Pipeline '{entry.identifier}' uploaded",
        "pipeline": entry.to_dict(),
    }


@admin_router.delete("/delete", summary="Delete a pipeline")
async def delete_pipeline(
    request: DeletePipelineRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    await lifecycle.delete_pipeline(request.id)
    return {"status": True, "detail": f"Pipeline '{request.id}' deleted"}


@admin_router.post("/reload", summary="Reload one pipeline or all of them")
async def reload_pipelines(
    request: Optional[ReloadPipelineRequest] = Body(None),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    if request is None or not request.id:
        summary = await lifecycle.reload_all()
        return {"status": True, "detail": "Pipelines reloaded", **summary}

    entry = await lifecycle.reload_pipeline(request.id)
    return {
        "status": True,
        "detail": f"Pipeline '{request.id}' reloaded",
        "pipeline": entry.to_dict(),
    }


# ============================================================================
# CHAT COMPLETIONS
# ============================================================================

@router.post("/chat/completions", response_model=ChatCompletionResponse, response_model_exclude_none=True)
async def chat_completions(
    request: ChatCompletionRequest,
    dispatcher: ExecutionDispatcher = Depends(get_dispatcher),
) -> ChatCompletionResponse:
    """
    Run the pipeline named by `model` on the full request body.

    WORKFLOW:
    1. model → pipeline identifier
    2. dispatcher.execute(model, body, user) (lazy load on first use)
    3. Non-string results are JSON-encoded into message.content
    4. Outlet warnings are passed through under `warnings`
    """
    body = request.model_dump()
    result = await dispatcher.execute(request.model, body, body.get("user"))

    content = result.body if isinstance(result.body, str) else safe_json_dumps(result.body)
    logger.info(f"Chat completion served by '{request.model}' ({len(content)} chars)")

    return ChatCompletionResponse(
        id=f"{request.model}-{uuid.uuid4()}",
        object=CHAT_COMPLETION_OBJECT,
        created=int(time.time()),
        model=request.model,
        choices=[ChatCompletionChoice(index=0, message=ChatCompletionMessage(content=content))],
        warnings=result.warnings or None,
    )


# ============================================================================
# VALVES & FILTERS
# ============================================================================

@router.get("/{pipeline_id}/valves", summary="Current valve values")
async def get_valves(
    pipeline_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    return await lifecycle.get_valves(pipeline_id)


@router.get("/{pipeline_id}/valves/spec", summary="Valve schema")
async def get_valves_spec(
    pipeline_id: str,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    return await lifecycle.get_valves_spec(pipeline_id)


@router.post("/{pipeline_id}/valves/update", summary="Update valve values")
async def update_valves(
    pipeline_id: str,
    values: Dict[str, Any] = Body(...),
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Dict[str, Any]:
    return await lifecycle.update_valves(pipeline_id, values)


@router.post("/{pipeline_id}/filter/inlet", summary="Run the inlet stage only")
async def filter_inlet(
    pipeline_id: str,
    request: FilterRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Any:
    return await lifecycle.apply_inlet_filter(pipeline_id, request.body, request.user)


@router.post("/{pipeline_id}/filter/outlet", summary="Run the outlet stage only")
async def filter_outlet(
    pipeline_id: str,
    request: FilterRequest,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
) -> Any:
    return await lifecycle.apply_outlet_filter(pipeline_id, request.body, request.user)
