from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Sequence

from ..config import build_config
from ..extraction.constants import KIND_IMAGE, KIND_PDF, STRATEGY_CHOICES, STRATEGY_PATTERN
from ..extraction.service import ExtractionService
from ..logging import get_logger
from ..paths import expand_abs
from ..usage import PERIODS, build_meter

LOG = get_logger("cli-main")

_IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff", ".webp"}


def _kind_for(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    if ext == ".pdf":
        return KIND_PDF
    if ext in _IMAGE_EXTS:
        return KIND_IMAGE
    raise ValueError(f"Unsupported file type: {ext or '<none>'} (expected .pdf or an image)")


def _emit(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _add_strategy(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--strategy",
        choices=STRATEGY_CHOICES,
        default=STRATEGY_PATTERN,
        help="Extraction strategy (default: pattern; 'ai' needs OPENAI_API_KEY)",
    )


def _handle_extract(ns: argparse.Namespace) -> int:
    path = expand_abs(ns.source)
    if not os.path.isfile(path):
        LOG.error(f"Source file not found: {path}")
        return 2
    try:
        kind = _kind_for(path)
    except ValueError as exc:
        LOG.error(str(exc))
        return 2
    config = build_config(os.getcwd())
    service = ExtractionService(config, meter=build_meter(config))
    with open(path, "rb") as fh:
        data = fh.read()
    result = service.extract_file(data, kind, ns.strategy, os.path.basename(path))
    _emit(result.as_dict())
    return 0 if result.success else 1


def _handle_extract_text(ns: argparse.Namespace) -> int:
    if ns.source == "-":
        text = sys.stdin.read()
    else:
        path = expand_abs(ns.source)
        if not os.path.isfile(path):
            LOG.error(f"Source file not found: {path}")
            return 2
        with open(path, "r", encoding="utf-8") as fh:
            text = fh.read()
    config = build_config(os.getcwd())
    service = ExtractionService(config, meter=build_meter(config))
    result = service.extract_text(text, ns.strategy)
    _emit(result.as_dict())
    return 0 if result.success else 1


def _handle_usage(ns: argparse.Namespace) -> int:
    config = build_config(os.getcwd())
    if not config.usage_db:
        LOG.warning("USAGE_DB is not set; the in-memory usage log of this process is empty")
    stats = build_meter(config).query(ns.period)
    _emit({"success": True, "period": stats.period, "stats": stats.as_dict()})
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..frontend import create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]

    app = create_app(build_config(os.getcwd()), allow_origins=allow_origins)
    uvicorn.run(
        app,
        host=ns.host,
        port=ns.port,
        reload=ns.reload,
        log_level=ns.log_level,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="inventory-intake",
        description="Extract structured instrument inventory records from invoices, catalogs and photos.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract products from a PDF or image file.")
    extract.add_argument("--source", required=True, help="Path to a PDF or image")
    _add_strategy(extract)
    extract.set_defaults(handler=_handle_extract)

    extract_text = subparsers.add_parser("extract-text", help="Extract products from a plain text file.")
    extract_text.add_argument("--source", required=True, help="Path to a UTF-8 text file, or '-' for stdin")
    _add_strategy(extract_text)
    extract_text.set_defaults(handler=_handle_extract_text)

    usage = subparsers.add_parser("usage", help="Show AI usage statistics from the usage log.")
    usage.add_argument("--period", choices=list(PERIODS), default="24h")
    usage.set_defaults(handler=_handle_usage)

    serve = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve.set_defaults(handler=_handle_serve)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.info(f"CLI invoked with arguments: {provided}")

    args = build_parser().parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
