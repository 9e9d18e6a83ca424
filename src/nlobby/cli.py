"""Command line entry point.

Run the MCP server:        nlobby-mcp            (or: nlobby-mcp serve)
Extract a saved page:      nlobby-mcp extract news.html
Extract an article page:   nlobby-mcp extract article.html --detail 12345

Exit codes:
  0 = success (JSON on stdout for extract)
  1 = error (message on stderr)
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from src.nlobby.config import get_config
from src.nlobby.extraction import ExtractionEngine
from src.nlobby.logging import get_logger, setup_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        prog="nlobby-mcp",
        description="N Lobby portal bridge for MCP clients.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="Run the MCP server over stdio (default).")

    extract = commands.add_parser(
        "extract", help="Run the extraction engine on a saved page and print JSON."
    )
    extract.add_argument("file", type=Path, help="Saved HTML page.")
    extract.add_argument(
        "--detail",
        metavar="ID",
        default=None,
        help="Treat the page as an article page and pick the record with this id.",
    )
    return parser.parse_args(argv)


def run_extract(path: Path, news_id: str | None = None) -> dict:
    """Extract records from a saved page; the result is what extract prints."""
    config = get_config()
    engine = ExtractionEngine(data_grid_index=config.data_grid_container_index)
    payload = path.read_text(encoding="utf-8")

    if news_id is not None:
        detail = engine.extract_detail(payload, news_id)
        return {
            "found": detail.found,
            "record": detail.record,
            "content": detail.content,
            "diagnostics": detail.diagnostics.summary() if detail.diagnostics else None,
        }

    result = engine.extract(payload)
    return {
        "strategy": result.strategy,
        "count": len(result.records),
        "records": result.records,
        "diagnostics": result.diagnostics.summary() if result.diagnostics else None,
    }


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _parse_args(argv)
    config = get_config()
    setup_logging(
        json_output=config.log_json,
        log_level=config.log_level,
        quiet=config.log_quiet,
    )
    log = get_logger(__name__)

    if args.command == "extract":
        try:
            output = run_extract(args.file, args.detail)
        except OSError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            sys.exit(1)
        print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
        return

    # Imported here so extract does not build the server
    from src.nlobby.server import mcp

    log.info("server_starting", name=config.mcp_server_name, version=config.mcp_server_version)
    mcp.run()


if __name__ == "__main__":
    main()
