from __future__ import annotations

import argparse
import json
import os
import sys
from typing import List, Sequence

from ..config import BACKENDS, load_settings
from ..domain.constants import DEFAULT_LANGUAGE, EXPORT_FILENAME, ID_CARD_FIELDS, LANGUAGE_VALUES
from ..errors import ExtractionFailed, IdExtractorError
from ..export.spreadsheet import ExcelExporter
from ..extraction import create_client
from ..logging import get_logger
from ..pipeline.images import ImageSet, IncomingFile
from ..pipeline.session import ExtractionSession

LOG = get_logger("cli-main")

APP_FACTORY = "idcard_extractor.frontend.app:create_app"


def parse_field_arg(value: str) -> tuple[str, str]:
    """`"Name:Arabic"` -> ("Name", "Arabic"); language defaults to English."""
    name, sep, language = value.partition(":")
    name = name.strip()
    language = language.strip() if sep else DEFAULT_LANGUAGE
    if name not in ID_CARD_FIELDS:
        raise argparse.ArgumentTypeError(f"unknown field {name!r}; choose from: {', '.join(ID_CARD_FIELDS)}")
    if language not in LANGUAGE_VALUES:
        raise argparse.ArgumentTypeError(f"unknown language {language!r}; choose from: {', '.join(LANGUAGE_VALUES)}")
    return name, language


def _apply_fields(session: ExtractionSession, fields: List[tuple[str, str]]) -> None:
    rows = session.selections.rows
    first = rows[0]
    session.selections.update(first.selection_id, field=fields[0][0], language=fields[0][1])
    for name, language in fields[1:]:
        row = session.selections.add()
        if row is None:
            break
        session.selections.update(row.selection_id, field=name, language=language)


def _handle_extract(ns: argparse.Namespace) -> int:
    settings = load_settings(os.getcwd(), backend=ns.backend, model=ns.model, api_key=ns.api_key)
    fields = ns.fields or [(name, DEFAULT_LANGUAGE) for name in ID_CARD_FIELDS]

    with ImageSet(preview_dir=settings.preview_dir) as images:
        session = ExtractionSession(images=images)
        try:
            added = session.add_files(IncomingFile.from_path(p) for p in ns.images)
        except IdExtractorError as exc:
            LOG.error(exc.message)
            return 2
        for err in added.errors:
            LOG.warning(err)

        _apply_fields(session, fields)
        try:
            table = session.run(create_client(settings))
        except ExtractionFailed as exc:
            LOG.error(exc.message)
            return 1
        except IdExtractorError as exc:
            LOG.error(exc.message)
            return 2

        if ns.json:
            print(json.dumps(table.as_dict(), ensure_ascii=False, indent=2))
        path = session.export_to(ExcelExporter(), ns.output)
        LOG.info(f"Exported {len(table)} row(s) to {path}")
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..frontend import create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]

    if ns.reload:
        # The reloader imports the app in a child process; options travel through the environment.
        if ns.backend:
            os.environ["EXTRACTION_BACKEND"] = ns.backend
        if ns.model:
            os.environ["EXTRACTION_MODEL"] = ns.model
        if allow_origins:
            os.environ["IDCARD_ALLOW_ORIGINS"] = ",".join(allow_origins)
        uvicorn.run(
            APP_FACTORY,
            factory=True,
            reload=True,
            host=ns.host,
            port=ns.port,
            log_level=ns.log_level,
        )
        return 0

    settings = load_settings(os.getcwd(), backend=ns.backend, model=ns.model)
    app = create_app(settings=settings, allow_origins=allow_origins)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idcard-extractor",
        description="Extract selected fields from ID card images and export them to Excel.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Extract fields from one or more ID card images.")
    extract.add_argument("images", nargs="+", help="JPG, PNG or WEBP files (up to 100)")
    extract.add_argument(
        "--field",
        action="append",
        dest="fields",
        type=parse_field_arg,
        metavar="FIELD[:LANGUAGE]",
        help="Field to extract, in column order (repeatable). Default: every field in English.",
    )
    extract.add_argument("--output", default=EXPORT_FILENAME, help=f"Spreadsheet path (default: {EXPORT_FILENAME})")
    extract.add_argument("--backend", choices=BACKENDS, help="Extraction backend (default from env/.env)")
    extract.add_argument("--model", help="Model id override")
    extract.add_argument("--api-key", help="API key for the backend (otherwise env/.env)")
    extract.add_argument("--json", action="store_true", help="Also print the result table as JSON")
    extract.set_defaults(handler=_handle_extract)

    serve = subparsers.add_parser("serve", help="Run the HTTP API for the upload/extract/export workflow.")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8002)
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    serve.add_argument("--log-level", default="info")
    serve.add_argument("--backend", choices=BACKENDS)
    serve.add_argument("--model")
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
    parser = build_parser()
    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
