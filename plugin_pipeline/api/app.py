"""
FastAPI application exposing a plugin pipeline over HTTP.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from .. import __version__
from ..config import PipelineConfig
from ..observability import MetricsCollector
from ..pipeline import PluginPipeline
from ..queue import PluginQueue
from ..storage import StateStorage
from .logging_middleware import RequestLoggingMiddleware
from .models import (
    ErrorResponse,
    ExecuteQueueRequest,
    ExecuteQueueResponse,
    HealthResponse,
    OptionsRequest,
    PluginResponse,
    ProcessRequest,
    ProcessResponse,
    QueueRequest,
    QueueResponse,
    ToggleRequest,
)

logger = logging.getLogger(__name__)

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown plugin"}}


def create_app(
    pipeline: Optional[PluginPipeline] = None,
    storage: Optional[StateStorage] = None,
    metrics: Optional[MetricsCollector] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        pipeline: Pipeline to serve; one with the built-in plugins and
            default configuration when omitted.
        storage: Optional backend. State is restored from it at creation
            and saved after every change.
        metrics: Collector for the metrics endpoints. Attached to the
            pipeline when it has none.
    """
    if pipeline is None:
        pipeline = PluginPipeline.from_config(PipelineConfig(), metrics=metrics)
    if pipeline.metrics is None:
        pipeline.metrics = metrics or MetricsCollector()

    if storage is not None:
        dropped = pipeline.load_state(storage)
        if dropped:
            logger.info(f"Dropped saved state for unknown plugins: {dropped}")

    app = FastAPI(
        title="Plugin Pipeline API",
        description="Run text through chains of text plugins.",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.state.pipeline = pipeline
    app.state.storage = storage

    register_routes(app, pipeline, storage)
    return app


def register_routes(
    app: FastAPI,
    pipeline: PluginPipeline,
    storage: Optional[StateStorage],
):
    """Register all API routes."""

    def persist():
        if storage is not None:
            storage.save(pipeline.snapshot())

    def plugin_response(plugin_id: str) -> PluginResponse:
        plugin = pipeline.registry.get(plugin_id)
        if plugin is None:
            raise HTTPException(status_code=404, detail=f"Plugin not found: {plugin_id}")

        state = pipeline.store.get_state(plugin_id)
        last_result = state.last_result if state else None
        return PluginResponse(
            id=plugin.id,
            name=plugin.name,
            description=plugin.description,
            version=plugin.version,
            options_schema=[option.to_dict() for option in plugin.options_schema],
            active=pipeline.store.is_active(plugin_id),
            options=pipeline.store.resolve_options(plugin_id),
            last_result=last_result.to_dict() if last_result else None,
        )

    @app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
    async def health_check():
        """Check API health status."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc),
            plugins=len(pipeline.registry),
            processing=pipeline.processing,
        )

    @app.get("/api/v1/plugins", response_model=List[PluginResponse], tags=["Plugins"])
    async def list_plugins():
        """List registered plugins in registration order."""
        return [plugin_response(plugin_id) for plugin_id in pipeline.registry.ids()]

    @app.get(
        "/api/v1/plugins/{plugin_id}",
        response_model=PluginResponse,
        responses=NOT_FOUND,
        tags=["Plugins"],
    )
    async def get_plugin(plugin_id: str):
        return plugin_response(plugin_id)

    @app.post(
        "/api/v1/plugins/{plugin_id}/toggle",
        response_model=PluginResponse,
        responses=NOT_FOUND,
        tags=["Plugins"],
    )
    async def toggle_plugin(plugin_id: str, request: ToggleRequest):
        """Activate or deactivate a plugin for implicit runs."""
        if plugin_id not in pipeline.registry:
            raise HTTPException(status_code=404, detail=f"Plugin not found: {plugin_id}")
        pipeline.store.toggle(plugin_id, request.active)
        persist()
        return plugin_response(plugin_id)

    @app.put(
        "/api/v1/plugins/{plugin_id}/options",
        response_model=PluginResponse,
        responses=NOT_FOUND,
        tags=["Plugins"],
    )
    async def set_plugin_options(plugin_id: str, request: OptionsRequest):
        """Replace the stored options of a plugin."""
        if plugin_id not in pipeline.registry:
            raise HTTPException(status_code=404, detail=f"Plugin not found: {plugin_id}")
        pipeline.store.set_options(plugin_id, request.options)
        persist()
        return plugin_response(plugin_id)

    @app.post("/api/v1/process", response_model=ProcessResponse, tags=["Execution"])
    async def process_message(request: ProcessRequest):
        """
        Apply plugins to a message.

        Without ``plugin_ids`` the active plugins run in registration
        order. Failing plugins leave the text unchanged.
        """
        if request.plugin_ids is None:
            plugin_ids = pipeline.store.list_active()
            output = await pipeline.process_message(request.input)
        else:
            plugin_ids = request.plugin_ids
            output = await pipeline.process_with_specific_plugins(
                request.input, plugin_ids, request.options
            )
        persist()
        return ProcessResponse(output=output, plugin_ids=plugin_ids)

    @app.get("/api/v1/queue", response_model=QueueResponse, tags=["Queue"])
    async def get_queue():
        return QueueResponse(plugin_ids=pipeline.queue.ids(), processing=pipeline.processing)

    @app.put("/api/v1/queue", response_model=QueueResponse, tags=["Queue"])
    async def set_queue(request: QueueRequest):
        """Replace the queue contents."""
        pipeline.queue = PluginQueue(request.plugin_ids)
        return QueueResponse(plugin_ids=pipeline.queue.ids(), processing=pipeline.processing)

    @app.post("/api/v1/queue/execute", response_model=ExecuteQueueResponse, tags=["Queue"])
    async def execute_queue(request: ExecuteQueueRequest):
        """
        Run the queue as a dependent chain, stopping at the first failure.

        A request arriving during another run waits for it to finish.
        """
        results = await pipeline.execute_queue(request.input)
        persist()
        return ExecuteQueueResponse(
            results=[result.to_dict() for result in results],
            output=results[-1].output if results else request.input,
            completed=all(result.success for result in results),
        )

    @app.get("/api/v1/history", tags=["History"])
    async def get_history(plugin_id: Optional[str] = None):
        """Recent execution results, oldest first."""
        if plugin_id is not None:
            entries = pipeline.history.for_plugin(plugin_id)
        else:
            entries = pipeline.history.list()
        return [entry.to_dict() for entry in entries]

    @app.delete("/api/v1/history", tags=["History"])
    async def clear_history():
        pipeline.history.clear()
        persist()
        return {"message": "History cleared"}

    @app.post("/api/v1/reset", tags=["Plugins"])
    async def reset():
        """Deactivate every plugin and restore default options."""
        pipeline.store.reset()
        persist()
        return {"message": "All plugins reset"}

    @app.get("/api/v1/metrics", tags=["Metrics"])
    async def get_metrics():
        return {
            "summary": pipeline.metrics.get_summary(),
            "metrics": pipeline.metrics.get_all_metrics(),
        }

    @app.get("/api/v1/metrics/prometheus", response_class=PlainTextResponse, tags=["Metrics"])
    async def get_prometheus_metrics():
        return pipeline.metrics.to_prometheus()
