from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..config import ExtractionConfig, build_config
from ..domain.models import ExtractionResult
from ..extraction.constants import KIND_IMAGE, KIND_PDF, STRATEGY_CHOICES, STRATEGY_PATTERN
from ..extraction.service import ExtractionService, SourceFile
from ..logging import get_logger
from ..usage import PERIODS, UsageMeter, build_meter


LOG = get_logger("http")

_BATCH_FIELD = re.compile(r"^image_(\d+)$")


def _error(message: str, code: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"success": False, "error": message, "error_code": code}, status_code=status_code)


def _result_response(result: ExtractionResult) -> JSONResponse:
    return JSONResponse(result.as_dict(), status_code=result.status_code)


def _non_negative_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


async def _read_upload(upload: UploadFile) -> bytes:
    data = await upload.read()
    await upload.close()
    return data


def create_app(
    config: Optional[ExtractionConfig] = None,
    *,
    service: Optional[ExtractionService] = None,
    meter: Optional[UsageMeter] = None,
    allow_origins: Optional[List[str]] = None,
    root_dir: Optional[str] = None,
) -> Starlette:
    """Create the Starlette app exposing extraction and usage endpoints."""

    config = config or (service.config if service is not None else build_config(root_dir))
    if meter is None:
        meter = service.meter if service is not None and service.meter is not None else build_meter(config)
    if service is None:
        service = ExtractionService(config, meter=meter)

    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "ai_available": config.ai_available,
                "model": config.openai_model,
                "usage_store": type(meter.store).__name__,
            }
        )

    async def extract_json(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error("Request body is not valid JSON", "request.invalid_json")
        if not isinstance(body, dict) or not isinstance(body.get("text"), str):
            return _error("JSON body needs a 'text' string", "request.missing_text")
        strategy = body.get("strategy") or STRATEGY_PATTERN
        if strategy not in STRATEGY_CHOICES:
            return _error(f"Unknown strategy: {strategy}", "request.invalid_strategy")
        result = await run_in_threadpool(service.extract_text, body["text"], strategy)
        return _result_response(result)

    async def extract(request: Request) -> JSONResponse:
        if request.headers.get("content-type", "").startswith("application/json"):
            return await extract_json(request)

        form = await request.form()
        strategy = form.get("strategy") or STRATEGY_PATTERN
        if not isinstance(strategy, str) or strategy not in STRATEGY_CHOICES:
            return _error(f"Unknown strategy: {strategy}", "request.invalid_strategy")

        pdf = form.get("pdf")
        if isinstance(pdf, UploadFile):
            data = await _read_upload(pdf)
            LOG.info("POST /extract pdf=%s (%d bytes) strategy=%s", pdf.filename, len(data), strategy)
            result = await run_in_threadpool(service.extract_file, data, KIND_PDF, strategy, pdf.filename)
            return _result_response(result)

        image = form.get("image")
        if isinstance(image, UploadFile):
            data = await _read_upload(image)
            LOG.info("POST /extract image=%s (%d bytes) strategy=%s", image.filename, len(data), strategy)
            result = await run_in_threadpool(service.extract_file, data, KIND_IMAGE, strategy, image.filename)
            return _result_response(result)

        indexed: Dict[int, UploadFile] = {}
        for key, value in form.multi_items():
            m = _BATCH_FIELD.match(key)
            if m and isinstance(value, UploadFile):
                indexed[int(m.group(1))] = value
        files: List[SourceFile] = []
        # image_0..N, stopping at the first missing index.
        index = 0
        while index in indexed:
            upload = indexed[index]
            files.append(SourceFile(await _read_upload(upload), KIND_IMAGE, upload.filename or f"image_{index}"))
            index += 1
        if not files:
            return _error("No file uploaded (expected 'pdf', 'image' or 'image_0..N')", "request.missing_file")

        LOG.info("POST /extract batch of %d image(s) strategy=%s", len(files), strategy)
        result = await run_in_threadpool(service.extract_batch, files, strategy)
        return _result_response(result)

    async def log_usage(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return _error("Request body is not valid JSON", "request.invalid_json")
        if not isinstance(body, dict):
            return _error("JSON body must be an object", "request.invalid_usage")
        model = body.get("model")
        prompt_tokens = _non_negative_int(body.get("prompt_tokens"))
        completion_tokens = _non_negative_int(body.get("completion_tokens"))
        if not isinstance(model, str) or not model.strip():
            return _error("'model' is required", "request.invalid_usage")
        if prompt_tokens is None or completion_tokens is None:
            return _error("Token counts must be non-negative integers", "request.invalid_usage")
        entry = await run_in_threadpool(
            meter.record,
            model.strip(),
            prompt_tokens,
            completion_tokens,
            str(body.get("endpoint") or "unknown"),
            str(body.get("user_action") or "unknown"),
        )
        return JSONResponse({"success": True, "logged": entry.as_dict()})

    async def usage_stats(request: Request) -> JSONResponse:
        requested = request.query_params.get("period")
        stats = await run_in_threadpool(meter.query, requested)
        return JSONResponse({"success": True, "period": stats.period, "stats": stats.as_dict()})

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/extract", extract, methods=["POST"]),
        Route("/usage", log_usage, methods=["POST"]),
        Route("/usage", usage_stats, methods=["GET"]),
    ]

    app = Starlette(debug=False, routes=routes)

    origins = allow_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    if "*" in origins:
        cors_allow_origins = ["*"]
    else:
        cors_allow_origins = origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allow_origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    LOG.info("HTTP app ready (periods: %s)", ", ".join(PERIODS))
    return app


__all__ = ["create_app"]
