"""CLI: slider-server serve, export, hash, config validate."""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from pathlib import Path

from ..config import load_config, validate_config
from ..core.hashing import notebook_file_hash
from ..core.runner import export_directory, run_directory
from ..types import ConfigError, DeployConfig, EngineError, ExecutionEngine, PortInUseError


def _load_config_or_exit(config_path: str | None) -> DeployConfig:
    try:
        config = load_config(config_path)
    except (OSError, ConfigError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)
    errors = validate_config(config)
    if errors:
        print("Config validation errors:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        sys.exit(1)
    return config


def _resolve_engine(spec: str) -> ExecutionEngine:
    """Instantiate the engine named by ``module:attribute``.

    The attribute may be an engine instance or a zero-argument factory.
    """
    if not spec:
        raise ConfigError("No execution engine configured (set 'engine: module:attribute')")
    module_part, _, attr = spec.partition(":")
    try:
        module = importlib.import_module(module_part)
    except ImportError as e:
        raise ConfigError(f"engine {spec!r}: cannot import {module_part}: {e}") from e
    target = getattr(module, attr, None)
    if target is None:
        raise ConfigError(f"engine {spec!r}: {attr} not found in {module_part}")
    if isinstance(target, type) or (callable(target) and not isinstance(target, ExecutionEngine)):
        engine = target()
    else:
        engine = target
    if not isinstance(engine, ExecutionEngine):
        raise ConfigError(f"engine {spec!r} does not implement the execution engine interface")
    return engine


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )


def _run(args, *, run_server: bool) -> None:
    config = _load_config_or_exit(args.config)
    if getattr(args, "port", None) is not None:
        config.slider_server.port = args.port
    if getattr(args, "host", None) is not None:
        config.slider_server.host = args.host
    if args.cache_dir is not None:
        config.export.cache_dir = args.cache_dir

    start_dir = Path(args.directory)
    missing = [p for p in args.notebooks if not (start_dir / p).is_file()]
    if missing:
        print(f"Notebook files not found in {start_dir}: {', '.join(missing)}", file=sys.stderr)
        sys.exit(1)

    try:
        engine = _resolve_engine(config.engine)
        if run_server:
            print(
                f"slider-server on {config.slider_server.host}:{config.slider_server.port} "
                f"({len(args.notebooks)} notebooks)",
                flush=True,
            )
            run_directory(start_dir, args.notebooks, engine, config)
        else:
            registry = export_directory(start_dir, args.notebooks, engine, config)
            print(f"Ran {len(registry)} notebooks: {registry.counts()}")
    except PortInUseError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (ConfigError, EngineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_serve(args):
    """Run the notebooks and serve bond updates."""
    _run(args, run_server=True)


def cmd_export(args):
    """Run the notebooks once and cache their snapshots."""
    _run(args, run_server=False)


def cmd_hash(args):
    """Print the content hash used to address each notebook."""
    status = 0
    for path in args.files:
        try:
            print(f"{notebook_file_hash(path)}  {path}")
        except OSError as e:
            print(f"{path}: {e}", file=sys.stderr)
            status = 1
    if status:
        sys.exit(status)


def cmd_config_validate(args):
    """Validate config file."""
    config = _load_config_or_exit(args.config)
    settings = config.slider_server
    print("Config is valid.")
    print(f"  Listen: {settings.host}:{settings.port}")
    print(f"  Engine: {config.engine or '(not set)'}")
    print(f"  Cache dir: {config.export.cache_dir or '(disabled)'}")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="slider-server",
        description="Serve live bond updates for running notebooks",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run notebooks and serve bond updates")
    serve_parser.add_argument("directory", help="Directory the notebook paths are relative to")
    serve_parser.add_argument("notebooks", nargs="+", help="Notebook files to serve")
    serve_parser.add_argument("--port", "-p", type=int, default=None)
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--cache-dir", default=None, help="Snapshot cache directory")

    # export
    export_parser = subparsers.add_parser("export", help="Run notebooks once and cache their state")
    export_parser.add_argument("directory", help="Directory the notebook paths are relative to")
    export_parser.add_argument("notebooks", nargs="+", help="Notebook files to run")
    export_parser.add_argument("--cache-dir", default=None, help="Snapshot cache directory")

    # hash
    hash_parser = subparsers.add_parser("hash", help="Print notebook content hashes")
    hash_parser.add_argument("files", nargs="+")

    # config validate
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    _setup_logging(args.verbose)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "export":
        cmd_export(args)
    elif args.command == "hash":
        cmd_hash(args)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            print("Usage: slider-server config validate")
            sys.exit(1)


if __name__ == "__main__":
    main()
