from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, Response
from starlette.routing import Route

from ..config import ExtractorSettings, load_settings
from ..domain.constants import ID_CARD_FIELDS, LANGUAGES, MAX_FILES
from ..errors import (
    ExtractionFailed,
    IdExtractorError,
    IndexOutOfRange,
    MissingInput,
    SessionBusy,
    UnknownSelection,
)
from ..export.spreadsheet import ExcelExporter, SpreadsheetExporter
from ..extraction import ExtractionClient, create_client
from ..logging import get_logger
from ..pipeline.images import ImageSet, IncomingFile
from ..pipeline.session import ExtractionSession

LOG = get_logger("frontend")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ClientFactory = Callable[[ExtractorSettings], ExtractionClient]


def _status_for(exc: IdExtractorError) -> int:
    if isinstance(exc, (IndexOutOfRange, UnknownSelection)):
        return 404
    if isinstance(exc, MissingInput) and exc.what == "no results":
        return 404
    if isinstance(exc, SessionBusy):
        return 409
    if isinstance(exc, ExtractionFailed):
        return 502
    return 400


async def _domain_error(_: Request, exc: IdExtractorError) -> JSONResponse:
    status = _status_for(exc)
    LOG.warning(f"Request failed ({status}): {exc.message}")
    return JSONResponse({"detail": exc.message, "error": exc.__class__.__name__}, status_code=status)


def _env_origins() -> List[str]:
    raw = os.environ.get("IDCARD_ALLOW_ORIGINS") or ""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


async def _json_body(request: Request) -> Dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body


def create_app(
    session: Optional[ExtractionSession] = None,
    *,
    settings: Optional[ExtractorSettings] = None,
    client_factory: Optional[ClientFactory] = None,
    exporter: Optional[SpreadsheetExporter] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the upload/select/extract/export workflow."""

    settings = settings or load_settings(os.getcwd())
    if session is None:
        session = ExtractionSession(images=ImageSet(preview_dir=settings.preview_dir))
    client_factory = client_factory or create_client
    exporter = exporter or ExcelExporter()

    def _images_payload() -> Dict[str, Any]:
        items = [
            {
                "index": index,
                "name": image.name,
                "mime_type": image.mime_type,
                "byte_size": image.byte_size,
                "preview_url": f"/api/images/{index}/preview",
            }
            for index, image in enumerate(session.images.snapshot())
        ]
        return {"items": items, "count": len(items), "max_files": session.images.max_files}

    def _fields_payload() -> Dict[str, Any]:
        rows = session.selections.rows
        return {
            "items": [
                {**row.as_dict(), "options": session.selections.options_for(row.selection_id)}
                for row in rows
            ],
            "can_add": session.selections.can_add,
            "can_remove": len(rows) > 1,
        }

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "backend": settings.backend, "model": settings.model})

    async def catalog(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "fields": list(ID_CARD_FIELDS),
                "languages": [{"value": value, "label": label} for value, label in LANGUAGES],
                "max_files": MAX_FILES,
            }
        )

    async def list_images(_: Request) -> JSONResponse:
        return JSONResponse(_images_payload())

    async def upload_images(request: Request) -> JSONResponse:
        incoming: List[IncomingFile] = []
        async with request.form() as form:
            for upload in form.getlist("files"):
                if isinstance(upload, str):
                    continue
                data = await upload.read()
                incoming.append(IncomingFile.from_bytes(upload.filename or "upload", upload.content_type, data))
        if not incoming:
            raise HTTPException(status_code=400, detail="No files provided (multipart field 'files')")
        result = session.add_files(incoming)
        payload = _images_payload()
        payload.update({"added": len(result.added), "errors": result.errors})
        return JSONResponse(payload)

    async def delete_image(request: Request) -> JSONResponse:
        session.remove_image(int(request.path_params["index"]))
        return JSONResponse(_images_payload())

    async def image_preview(request: Request) -> Response:
        image = session.images[int(request.path_params["index"])]
        if image.preview is None or image.preview.released:
            raise HTTPException(status_code=404, detail="Preview not available")
        return FileResponse(image.preview.path, media_type="image/png")

    async def list_fields(_: Request) -> JSONResponse:
        return JSONResponse(_fields_payload())

    async def add_field(_: Request) -> JSONResponse:
        row = session.selections.add()
        if row is None:
            raise HTTPException(status_code=400, detail="Every available field already has a row")
        return JSONResponse(_fields_payload(), status_code=201)

    async def update_field(request: Request) -> JSONResponse:
        body = await _json_body(request)
        session.selections.update(
            request.path_params["selection_id"],
            field=body.get("field"),
            language=body.get("language"),
        )
        return JSONResponse(_fields_payload())

    async def delete_field(request: Request) -> JSONResponse:
        removed = session.selections.remove(request.path_params["selection_id"])
        if not removed:
            raise HTTPException(status_code=400, detail="At least one field row must remain")
        return JSONResponse(_fields_payload())

    async def extract(request: Request) -> JSONResponse:
        body = await _json_body(request)
        effective = settings.with_api_key(body.get("api_key"))
        client = client_factory(effective)
        table = await run_in_threadpool(session.run, client)
        return JSONResponse(table.as_dict())

    async def progress(_: Request) -> JSONResponse:
        return JSONResponse({"running": session.running, "progress": session.progress, "error": session.error})

    async def results(_: Request) -> JSONResponse:
        if session.table is None:
            raise MissingInput("no results")
        return JSONResponse(session.table.as_dict())

    async def export(_: Request) -> Response:
        payload = session.export(exporter)
        headers = {"Content-Disposition": f'attachment; filename="{session.export_filename}"'}
        return Response(payload, media_type=XLSX_MEDIA_TYPE, headers=headers)

    async def reset(_: Request) -> JSONResponse:
        session.reset()
        return JSONResponse({"status": "reset", **_images_payload()})

    async def api_only(_: Request) -> JSONResponse:
        return JSONResponse({"detail": "ID card extraction API is running. See /api/catalog."})

    routes = [
        Route("/", api_only, methods=["GET"]),
        Route("/api/health", health, methods=["GET"]),
        Route("/api/catalog", catalog, methods=["GET"]),
        Route("/api/images", list_images, methods=["GET"]),
        Route("/api/images", upload_images, methods=["POST"]),
        Route("/api/images/{index:int}", delete_image, methods=["DELETE"]),
        Route("/api/images/{index:int}/preview", image_preview, methods=["GET"]),
        Route("/api/fields", list_fields, methods=["GET"]),
        Route("/api/fields", add_field, methods=["POST"]),
        Route("/api/fields/{selection_id:str}", update_field, methods=["PATCH"]),
        Route("/api/fields/{selection_id:str}", delete_field, methods=["DELETE"]),
        Route("/api/extract", extract, methods=["POST"]),
        Route("/api/progress", progress, methods=["GET"]),
        Route("/api/results", results, methods=["GET"]),
        Route("/api/export", export, methods=["GET"]),
        Route("/api/reset", reset, methods=["POST"]),
    ]

    app = Starlette(debug=False, routes=routes, exception_handlers={IdExtractorError: _domain_error})
    app.state.session = session

    origins = allow_origins or _env_origins() or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


__all__ = ["create_app"]
