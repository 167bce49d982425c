from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from granite_transfer.api.client import GraniteApiClient
from granite_transfer.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from granite_transfer.logging.init import setup_logging
from granite_transfer.models.config_models import HIERARCHY_MODES, MAX_CONCURRENCY, TransferConfig
from granite_transfer.models.schema import KNOWN_ENTITY_TYPES
from granite_transfer.parsing.csv_parser import ParseError, read_file, rows_to_frame
from granite_transfer.services.exporter import ExportError, default_filename
from granite_transfer.services.log_store import OperationLogStore
from granite_transfer.services.orchestrator import (
    EXPORT_FORMATS,
    InvalidDataError,
    ProcessingError,
    TransferService,
)
from granite_transfer.services.templates import generate_template
from granite_transfer.storage.json_store import JsonFileStorage, StorageError

"""CLI entrypoint.

granite-transfer [--config PATH] [--debug] <command>

  validate FILE --type T        parse + validate, nothing is committed
  import FILE --type T          parse + validate + commit rows
  export --type T --format F    fetch the catalogue and serialize it
  template --type T             print / write a starter CSV
  inspect FILE                  print headers and the first rows
  logs [--export PATH] [--clear]

Exit codes: 0 all rows succeeded, 2 partial failure (row failures or invalid
data), 1 fatal (config, unreadable input, remote fetch failure).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 5


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env (values override the process environment, e.g. GRANITE_API_URL)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _concurrency(value: str) -> int:
    try:
        n = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an integer: {value}") from e
    if not 1 <= n <= MAX_CONCURRENCY:
        raise argparse.ArgumentTypeError(f"concurrency must be between 1 and {MAX_CONCURRENCY}")
    return n


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="granite-transfer", description="Granite catalogue CSV import / export")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Path to the YAML config")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    types = list(KNOWN_ENTITY_TYPES)

    v = sub.add_parser("validate", help="Validate a file without importing")
    v.add_argument("file", type=Path)
    v.add_argument("--type", dest="entity_type", required=True, choices=types)

    i = sub.add_parser("import", help="Import a file")
    i.add_argument("file", type=Path)
    i.add_argument("--type", dest="entity_type", required=True, choices=types)
    i.add_argument("--mode", choices=HIERARCHY_MODES, default=None, help="Hierarchy parent resolution mode")
    i.add_argument("--concurrency", type=_concurrency, default=None, help=f"Rows in flight (1..{MAX_CONCURRENCY})")

    e = sub.add_parser("export", help="Export the current catalogue")
    e.add_argument("--type", dest="entity_type", required=True, choices=[t for t in types if t != "hierarchy"])
    e.add_argument("--format", dest="fmt", choices=EXPORT_FORMATS, default="csv")
    e.add_argument("--output", type=Path, default=None)

    t = sub.add_parser("template", help="Print a starter CSV for an entity type")
    t.add_argument("--type", dest="entity_type", required=True, choices=types)
    t.add_argument("--output", type=Path, default=None)

    n = sub.add_parser("inspect", help="Print headers and the first rows of a file")
    n.add_argument("file", type=Path)

    g = sub.add_parser("logs", help="List, export or clear operation logs")
    g.add_argument("--export", dest="export_path", type=Path, default=None)
    g.add_argument("--clear", action="store_true")
    return p.parse_args(argv)


def _with_overrides(cfg: TransferConfig, args: argparse.Namespace) -> TransferConfig:
    mode = getattr(args, "mode", None)
    concurrency = getattr(args, "concurrency", None)
    if mode is None and concurrency is None:
        return cfg
    opts = cfg.import_options
    import_options = replace(
        opts,
        hierarchy_mode=mode or opts.hierarchy_mode,
        concurrency=concurrency if concurrency is not None else opts.concurrency,
    )
    return replace(cfg, import_options=import_options)


def _cmd_template(args: argparse.Namespace) -> int:
    text = generate_template(args.entity_type)
    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return EXIT_SUCCESS_ALL


def _cmd_inspect(args: argparse.Namespace, cfg: TransferConfig) -> int:
    rows = read_file(args.file, cfg.import_options)
    frame = rows_to_frame(rows)
    print(f"FILE: {args.file.name} rows={len(rows)} cols={list(frame.columns)}")
    if not frame.empty:
        print(frame.head(INSPECT_SAMPLE_ROWS).to_string())
    return EXIT_SUCCESS_ALL


def _cmd_logs(args: argparse.Namespace, service: TransferService) -> int:
    store = service.log_store
    if args.export_path is not None:
        service.export_logs(args.export_path)
    if args.clear:
        store.clear_logs()
        return EXIT_SUCCESS_ALL
    for log in store.get_logs():
        print(
            f"{log.start_time.isoformat()} {log.id} {log.operation} {log.type} {log.status.value} "
            f"processed={log.processed_records}/{log.total_records} "
            f"success={log.successful_records} failed={log.failed_records}"
        )
    return EXIT_SUCCESS_ALL


def _run(args: argparse.Namespace, cfg: TransferConfig) -> int:
    logger = setup_logging()
    if args.command == "inspect":
        return _cmd_inspect(args, cfg)

    cfg = _with_overrides(cfg, args)
    api = GraniteApiClient(cfg.api.base_url, timeout=cfg.api.timeout_seconds)
    try:
        store = OperationLogStore(JsonFileStorage(Path(cfg.storage.log_path)))
        service = TransferService(cfg, api, store)

        if args.command == "logs":
            return _cmd_logs(args, service)

        if args.command == "validate":
            # 各エラー行はログストア経由で出力済み
            _, outcome = service.validate_file(args.file, args.entity_type)
            return EXIT_SUCCESS_ALL if outcome.is_valid else EXIT_PARTIAL_FAILURE

        if args.command == "import":
            run = service.import_file(args.file, args.entity_type)
            if run.result.failed > 0 or run.result.cancelled:
                return EXIT_PARTIAL_FAILURE
            return EXIT_SUCCESS_ALL

        if args.command == "export":
            output = args.output or Path(default_filename(args.entity_type, args.fmt))
            service.export_entities(args.entity_type, args.fmt, output)
            logger.info(f"Export written: {output}")
            return EXIT_SUCCESS_ALL
    finally:
        api.close()
    return EXIT_FATAL  # pragma: no cover (argparse で command は必須)


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む (テストから main([]) を呼ぶ場合の誤解析防止)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    if args.command == "template":
        return _cmd_template(args)

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        return _run(args, cfg)
    except InvalidDataError as e:
        logger.error(f"import refused: {e}")
        return EXIT_PARTIAL_FAILURE
    except ParseError as e:
        logger.error(f"parse: {e}")
        return EXIT_FATAL
    except ExportError as e:
        logger.error(f"export: {e}")
        return EXIT_FATAL
    except (ProcessingError, StorageError) as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
