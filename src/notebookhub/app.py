"""FastAPI application setup for Notebook Hub."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates

from .config import Settings
from .conversations import ConversationLogStore
from .database import Database
from .notebooks import NotebookNotFound, NotebookStore
from .observability import MetricsRecorder
from .progress import InvalidInput
from .search import SearchService
from .seeds import load_seed_notebooks, seed_default_notebooks
from .spine import SpineClient, SpineUnavailable
from .topics import TopicStore

_TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"

logger = logging.getLogger(__name__)


_LOGGING_CONFIGURED = False


def _ensure_logging() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    hub_logger = logging.getLogger("notebookhub")
    uvicorn_logger = logging.getLogger("uvicorn.error")

    handlers = list(uvicorn_logger.handlers)
    if handlers:
        hub_logger.handlers = []
        for handler in handlers:
            hub_logger.addHandler(handler)
    else:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        hub_logger.addHandler(handler)

    if hub_logger.level == logging.NOTSET or hub_logger.level > logging.INFO:
        hub_logger.setLevel(logging.INFO)
    hub_logger.propagate = False
    _LOGGING_CONFIGURED = True


class ApplicationState:
    """Container for runtime dependencies used by the FastAPI app."""

    def __init__(
        self,
        *,
        settings: Settings,
        database: Database,
        notebook_store: NotebookStore,
        topic_store: TopicStore,
        conversation_store: ConversationLogStore,
        search_service: SearchService,
        spine_client: SpineClient,
        metrics: MetricsRecorder | None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.notebook_store = notebook_store
        self.topic_store = topic_store
        self.conversation_store = conversation_store
        self.search_service = search_service
        self.spine_client = spine_client
        self.metrics = metrics


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    notebook_store: NotebookStore | None = None,
    topic_store: TopicStore | None = None,
    conversation_store: ConversationLogStore | None = None,
    search_service: SearchService | None = None,
    spine_client: SpineClient | None = None,
    metrics: MetricsRecorder | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    _ensure_logging()

    settings = settings or Settings.from_env()
    metrics = metrics or settings.build_metrics_recorder()
    database = database or Database(settings.resolved_database_path())
    notebook_store = notebook_store or NotebookStore(database, metrics=metrics)
    topic_store = topic_store or TopicStore(database)
    conversation_store = conversation_store or ConversationLogStore(database, metrics=metrics)
    search_service = search_service or SearchService(database, metrics=metrics)
    spine_client = spine_client or SpineClient.from_settings(settings)
    logger.info("app.start settings_loaded database=%s", database.path)

    if settings.seed_on_startup:
        seed_default_notebooks(notebook_store, load_seed_notebooks(settings.seed_path))

    app = FastAPI(title="Notebook Hub")
    app.state.services = ApplicationState(
        settings=settings,
        database=database,
        notebook_store=notebook_store,
        topic_store=topic_store,
        conversation_store=conversation_store,
        search_service=search_service,
        spine_client=spine_client,
        metrics=metrics,
    )

    templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))
    templates.env.globals["settings"] = settings

    def get_state(request: Request) -> ApplicationState:
        return request.app.state.services

    def get_settings_dependency(request: Request) -> Settings:
        return get_state(request).settings

    def get_notebook_store(request: Request) -> NotebookStore:
        return get_state(request).notebook_store

    def get_topic_store(request: Request) -> TopicStore:
        return get_state(request).topic_store

    def get_conversation_store(request: Request) -> ConversationLogStore:
        return get_state(request).conversation_store

    def get_search_service(request: Request) -> SearchService:
        return get_state(request).search_service

    def get_spine_client(request: Request) -> SpineClient:
        return get_state(request).spine_client

    def get_metrics(request: Request) -> MetricsRecorder | None:
        return get_state(request).metrics

    # Pages ----------------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def index(
        request: Request,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> HTMLResponse:
        context = {
            "notebooks": notebook_store.list_notebooks(),
            "stats": notebook_store.get_stats(),
        }
        return templates.TemplateResponse(request, "index.html", context)

    @app.get("/notebooks/{notebook_id}", response_class=HTMLResponse)
    async def notebook_page(
        notebook_id: str,
        request: Request,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> HTMLResponse:
        notebook = notebook_store.get_notebook(notebook_id)
        if notebook is None:
            raise HTTPException(status_code=404, detail="Notebook not found")
        context = {
            "notebook": notebook,
            "documents": notebook_store.list_documents(notebook_id),
        }
        return templates.TemplateResponse(request, "notebook.html", context)

    # Notebooks ------------------------------------------------------------------

    @app.get("/api/notebooks", response_class=JSONResponse)
    async def list_notebooks_api(
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        notebooks = [notebook.to_dict() for notebook in notebook_store.list_notebooks()]
        return JSONResponse({"notebooks": notebooks, "stats": notebook_store.get_stats().to_dict()})

    @app.post("/api/notebooks", response_class=JSONResponse)
    async def create_notebook_api(
        request: Request,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        payload = await _read_payload(request)
        try:
            notebook = notebook_store.create_notebook(
                _optional_str(payload.get("name")) or "",
                description=_optional_str(payload.get("description")),
                icon=_optional_str(payload.get("icon")),
                category=_optional_str(payload.get("category")),
            )
        except InvalidInput as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(notebook.to_dict(), status_code=201)

    @app.get("/api/notebooks/{notebook_id}", response_class=JSONResponse)
    async def get_notebook_api(
        notebook_id: str,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        notebook = notebook_store.get_notebook(notebook_id)
        if notebook is None:
            raise HTTPException(status_code=404, detail="Notebook not found")
        documents = [document.to_dict() for document in notebook_store.list_documents(notebook_id)]
        return JSONResponse({"notebook": notebook.to_dict(), "documents": documents})

    @app.patch("/api/notebooks/{notebook_id}", response_class=JSONResponse)
    async def update_notebook_api(
        notebook_id: str,
        request: Request,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        payload = await _read_payload(request)
        try:
            notebook = notebook_store.update_notebook(
                notebook_id,
                name=_optional_str(payload.get("name")),
                description=_optional_str(payload.get("description")),
                icon=_optional_str(payload.get("icon")),
                category=_optional_str(payload.get("category")),
                progress=_coerce_optional_int(payload.get("progress")),
                status=_optional_str(payload.get("status")),
            )
        except InvalidInput as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if notebook is None:
            raise HTTPException(status_code=404, detail="Notebook not found")
        return JSONResponse(notebook.to_dict())

    @app.delete("/api/notebooks/{notebook_id}", response_class=JSONResponse)
    async def delete_notebook_api(
        notebook_id: str,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        if not notebook_store.delete_notebook(notebook_id):
            raise HTTPException(status_code=404, detail="Notebook not found")
        return JSONResponse({"success": True})

    # Documents ------------------------------------------------------------------

    @app.post("/api/documents", response_class=JSONResponse)
    async def create_document_api(
        request: Request,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        payload = await _read_payload(request)
        notebook_id = _optional_str(payload.get("notebook_id"))
        title = _optional_str(payload.get("title"))
        if not notebook_id or not title:
            raise HTTPException(status_code=400, detail="notebook_id and title are required")
        try:
            document = notebook_store.create_document(
                notebook_id,
                title,
                content=_optional_text(payload.get("content")),
                order_index=_coerce_optional_int(payload.get("order_index"), min_value=0),
            )
        except NotebookNotFound as exc:
            raise HTTPException(status_code=404, detail="Notebook not found") from exc
        return JSONResponse(document.to_dict(), status_code=201)

    @app.get("/api/documents/{document_id}", response_class=JSONResponse)
    async def get_document_api(
        document_id: str,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        document = notebook_store.get_document(document_id)
        if document is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return JSONResponse(document.to_dict())

    @app.patch("/api/documents/{document_id}", response_class=JSONResponse)
    async def update_document_api(
        document_id: str,
        request: Request,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        payload = await _read_payload(request)
        document = notebook_store.update_document(
            document_id,
            title=_optional_str(payload.get("title")),
            content=_optional_text(payload.get("content")),
            order_index=_coerce_optional_int(payload.get("order_index"), min_value=0),
        )
        if document is None:
            raise HTTPException(status_code=404, detail="Document not found")
        return JSONResponse(document.to_dict())

    @app.delete("/api/documents/{document_id}", response_class=JSONResponse)
    async def delete_document_api(
        document_id: str,
        notebook_store: NotebookStore = Depends(get_notebook_store),
    ) -> JSONResponse:
        if not notebook_store.delete_document(document_id):
            raise HTTPException(status_code=404, detail="Document not found")
        return JSONResponse({"success": True})

    # Conversations & topics -----------------------------------------------------

    @app.get("/api/conversations", response_class=JSONResponse)
    async def list_conversations_api(
        provider: str | None = Query(None),
        project: str | None = Query(None),
        limit: str | None = Query(None),
        conversation_store: ConversationLogStore = Depends(get_conversation_store),
        settings: Settings = Depends(get_settings_dependency),
    ) -> JSONResponse:
        records = conversation_store.list_conversations(
            provider=provider,
            project_key=project,
            limit=settings.clamp_limit(_parse_optional_int(limit, min_value=1)),
        )
        return JSONResponse({"conversations": [record.to_dict() for record in records]})

    @app.post("/api/conversations", response_class=JSONResponse)
    async def log_conversation_api(
        request: Request,
        conversation_store: ConversationLogStore = Depends(get_conversation_store),
    ) -> JSONResponse:
        payload = await _read_payload(request)
        try:
            record = conversation_store.log_conversation(
                ai_provider=_optional_str(payload.get("ai_provider")) or "",
                title=_optional_str(payload.get("title")) or "",
                summary=_optional_text(payload.get("summary")),
                topic_key=_optional_str(payload.get("topic_key")),
                project_key=_optional_str(payload.get("project_key")),
                section=_optional_str(payload.get("section")),
                message_count=_coerce_optional_int(payload.get("message_count"), min_value=0) or 0,
            )
        except InvalidInput as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(record.to_dict(), status_code=201)

    @app.get("/api/topics", response_class=JSONResponse)
    async def list_topics_api(
        project: str | None = Query(None),
        limit: str | None = Query(None),
        topic_store: TopicStore = Depends(get_topic_store),
        settings: Settings = Depends(get_settings_dependency),
    ) -> JSONResponse:
        topics = topic_store.list_topics(
            project_key=project,
            limit=settings.clamp_limit(_parse_optional_int(limit, min_value=1)),
        )
        return JSONResponse({"topics": [topic.to_dict() for topic in topics]})

    @app.post("/api/topics", response_class=JSONResponse)
    async def create_topic_api(
        request: Request,
        topic_store: TopicStore = Depends(get_topic_store),
    ) -> JSONResponse:
        payload = await _read_payload(request)
        try:
            topic = topic_store.create_topic(
                title=_optional_str(payload.get("title")) or "",
                topic_key=_optional_str(payload.get("topic_key")) or "",
                project_key=_optional_str(payload.get("project_key")),
                section=_optional_str(payload.get("section")),
                description=_optional_text(payload.get("description")),
            )
        except InvalidInput as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(topic.to_dict(), status_code=201)

    # Search & integrations ------------------------------------------------------

    @app.get("/api/search", response_class=JSONResponse)
    async def search_api(
        q: str | None = Query(None),
        project: str | None = Query(None),
        limit: str | None = Query(None),
        search_service: SearchService = Depends(get_search_service),
        settings: Settings = Depends(get_settings_dependency),
    ) -> JSONResponse:
        if not q or not q.strip():
            raise HTTPException(status_code=400, detail="Query parameter q is required")
        per_kind_limit = settings.clamp_limit(
            _parse_optional_int(limit, min_value=1),
            default=settings.search_default_limit,
        )
        response = search_service.search(q, project_key=project, limit=per_kind_limit)
        return JSONResponse(response.to_dict())

    @app.get("/api/spine", response_class=JSONResponse)
    def spine_health_api(spine_client: SpineClient = Depends(get_spine_client)) -> JSONResponse:
        try:
            payload = spine_client.health()
        except SpineUnavailable as exc:
            raise HTTPException(status_code=500, detail="Failed to connect to spine") from exc
        return JSONResponse(payload)

    @app.get("/metrics")
    async def metrics_endpoint(metrics: MetricsRecorder | None = Depends(get_metrics)) -> Response:
        if metrics is None or not metrics.prometheus_enabled:
            raise HTTPException(status_code=404, detail="Metrics export disabled")
        return Response(content=metrics.render_prometheus(), media_type=metrics.prometheus_content_type)

    return app


async def _read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _optional_text(value: Any) -> str | None:
    """Keep free text as written; only empty values collapse to ``None``."""

    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _parse_optional_int(raw: str | None, *, min_value: int | None = None) -> int | None:
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        parsed = int(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Expected integer value") from exc
    if min_value is not None and parsed < min_value:
        raise HTTPException(status_code=400, detail=f"Value must be ≥ {min_value}")
    return parsed


def _coerce_optional_int(value: Any, *, min_value: int | None = None) -> int | None:
    if value is None:
        return None
    if isinstance(value, str):
        return _parse_optional_int(value, min_value=min_value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise HTTPException(status_code=400, detail="Expected integer value")
    if isinstance(value, float) and not value.is_integer():
        raise HTTPException(status_code=400, detail="Expected integer value")
    parsed = int(value)
    if min_value is not None and parsed < min_value:
        raise HTTPException(status_code=400, detail=f"Value must be ≥ {min_value}")
    return parsed


__all__ = ["create_app", "ApplicationState"]
