# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Command line entry points for the ``memdav`` executable."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from ..errors import MemdavError
from ..filesystem import ROOT, VirtualFilesystem, load_manifest_file
from ..logging import StructuredLogger, configure_logging, get_logger
from ..server import build_app, run_server
from .config import ConfigError, ServerConfig, load_config


def main(argv: Sequence[str] | None = None) -> int:
    """Run the memdav CLI."""

    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:  # argparse exits with code 2 on errors
        code = exc.code if isinstance(exc.code, int) else 2
        return int(code)

    configure_logging(level=args.log_level, json_mode=args.json_logs)
    logger = get_logger(__name__)

    if args.command == "serve":
        return _run_serve(args, logger)
    if args.command == "tree":
        return _run_tree(args, logger)

    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memdav",
        description="Serve a manifest-declared virtual filesystem over WebDAV.",
    )
    _ = parser.add_argument(
        "--log-level",
        choices=("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"),
        default=None,
        help="Override the log level emitted by the CLI.",
    )
    _ = parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Emit structured JSON logs (disable with --no-json-logs).",
    )
    _ = parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (TOML or YAML, default: ~/.config/memdav/config.toml).",
    )

    subcommands = parser.add_subparsers(dest="command", required=True)

    serve_parser = subcommands.add_parser(
        "serve",
        help="Load a manifest and serve it through the HTTP gateway.",
    )
    _ = serve_parser.add_argument(
        "manifest",
        nargs="?",
        type=Path,
        default=None,
        help="Manifest file of path#size[#displayName] lines.",
    )
    _ = serve_parser.add_argument(
        "--host",
        default=None,
        help="Host interface to bind the gateway to (default: 127.0.0.1).",
    )
    _ = serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the gateway to (default: 39124).",
    )
    _ = serve_parser.add_argument(
        "--read-only",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Reject mutating requests (enable writes with --no-read-only).",
    )
    _ = serve_parser.add_argument(
        "--writable",
        dest="read_only",
        action="store_false",
        default=None,
        help="Shorthand for --no-read-only.",
    )

    tree_parser = subcommands.add_parser(
        "tree",
        help="Print the hierarchy a manifest synthesizes.",
    )
    _ = tree_parser.add_argument(
        "manifest",
        type=Path,
        help="Manifest file of path#size[#displayName] lines.",
    )

    return parser


def _load_filesystem(
    manifest: Path | None, *, read_only: bool, logger: StructuredLogger
) -> VirtualFilesystem:
    filesystem = VirtualFilesystem(read_only=read_only, logger=logger)
    if manifest is None:
        logger.warning(
            "No manifest configured; serving an empty filesystem",
            event="memdav.manifest.missing",
        )
        return filesystem
    _ = filesystem.load(load_manifest_file(manifest))
    return filesystem


def _run_serve(args: argparse.Namespace, logger: StructuredLogger) -> int:
    overrides = {
        "manifest_path": args.manifest,
        "listen_host": args.host,
        "listen_port": args.port,
        "read_only": args.read_only,
    }
    try:
        config: ServerConfig = load_config(args.config, overrides)
    except ConfigError as error:
        logger.exception(
            "Invalid configuration",
            event="memdav.config_error",
            context={"error": str(error)},
        )
        return 2

    try:
        filesystem = _load_filesystem(
            config.manifest_path, read_only=config.read_only, logger=logger
        )
    except (MemdavError, OSError) as error:
        logger.exception(
            "Manifest could not be loaded",
            event="memdav.manifest_error",
            context={"path": str(config.manifest_path), "error": str(error)},
        )
        return 2

    app = build_app(
        filesystem,
        users=config.users,
        realm=config.realm,
        logger=logger,
    )
    return run_server(
        app,
        host=config.listen_host,
        port=config.listen_port,
        logger=logger,
    )


def _run_tree(
    args: argparse.Namespace,
    logger: StructuredLogger,
    *,
    out: TextIO | None = None,
) -> int:
    stream = out if out is not None else sys.stdout
    try:
        filesystem = _load_filesystem(args.manifest, read_only=True, logger=logger)
    except (MemdavError, OSError) as error:
        logger.exception(
            "Manifest could not be loaded",
            event="memdav.manifest_error",
            context={"path": str(args.manifest), "error": str(error)},
        )
        return 2

    for line in render_tree(filesystem):
        print(line, file=stream)
    return 0


def render_tree(filesystem: VirtualFilesystem, path: str = ROOT) -> list[str]:
    """Render the hierarchy under ``path`` as indented lines."""

    lines = [path]
    _render_children(filesystem, path, depth=1, lines=lines)
    return lines


def _render_children(
    filesystem: VirtualFilesystem, path: str, *, depth: int, lines: list[str]
) -> None:
    indent = "  " * depth
    for child in filesystem.list_children(path):
        if child.is_directory:
            lines.append(f"{indent}{child.name}/")
            _render_children(filesystem, child.path, depth=depth + 1, lines=lines)
            continue
        label = f"  ({child.display_name})" if child.display_name != child.name else ""
        lines.append(f"{indent}{child.name}  {child.size} bytes{label}")


__all__ = ["main", "render_tree"]
