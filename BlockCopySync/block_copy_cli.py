#!/usr/bin/env python3
"""
Block Copy command line tool.

Runs the export and import sides of a block copy on files, without the API
server:

    export  local asset IDs -> portable URL sentinels
    import  URL sentinels   -> downloaded, uploaded, local asset IDs
    scan    list the asset ID candidates found in block data
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from asset_store import get_asset_store
from blockcopy_core.config.settings import SyncConfig, configure_logging, load_config
from blockcopy_core.errors import BlockCopyError
from blockcopy_core.mapping import BlockExporter, ControlEndpointLookup
from blockcopy_core.scanning import ReferenceScanner
from blockcopy_core.sync import AssetFetcher, AssetSyncPipeline, SyncState, create_cache

logger = logging.getLogger(__name__)


def _write_output(text: str, output: Optional[Path]) -> None:
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding='utf-8')
        print(f"✓ Written: {output}", file=sys.stderr)
    else:
        sys.stdout.write(text)


def cmd_scan(args, config: SyncConfig) -> int:
    text = args.file.read_text(encoding='utf-8')
    report = ReferenceScanner(max_depth=config.scanner.max_depth).scan_with_report(text)

    print(report.summary())
    for asset_id in sorted(report.candidates):
        print(asset_id)
    return 0


def cmd_export(args, config: SyncConfig) -> int:
    text = args.file.read_text(encoding='utf-8')

    if args.endpoint:
        lookup = ControlEndpointLookup(args.endpoint, token=args.token)
    else:
        lookup = get_asset_store(config.store)

    result = BlockExporter(lookup, ReferenceScanner(config.scanner.max_depth)).export(text)
    _write_output(result.content, args.output)

    print(f"Resolved {len(result.resolved)} reference(s), {result.substitutions} substitution(s)", file=sys.stderr)
    if result.unresolved:
        print(f"⚠ Unresolved IDs left as-is: {', '.join(str(i) for i in result.unresolved)}", file=sys.stderr)
    return 0


def cmd_import(args, config: SyncConfig) -> int:
    text = args.file.read_text(encoding='utf-8')

    pipeline = AssetSyncPipeline(
        fetcher=AssetFetcher.from_config(config.fetch),
        asset_store=get_asset_store(config.store),
        cache=create_cache(config.cache),
        config=config,
    )
    result = pipeline.run(args.file.name, text)
    _write_output(result.content, args.output)

    print(result.summary(), file=sys.stderr)
    return 1 if result.state == SyncState.FAILED_PARTIAL else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Copy content blocks between sites, images included",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s scan page.html
  %(prog)s export page.html -o portable.html
  %(prog)s export page.html --endpoint https://source.example/api/v1/resolve-attachments --token SECRET
  %(prog)s import portable.html -o local.html
        """
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON or YAML configuration file (default: BLOCKCOPY_* environment variables)"
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: from configuration, INFO)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="List asset ID candidates")
    scan.add_argument("file", type=Path, help="File with serialized block markup")
    scan.set_defaults(handler=cmd_scan)

    export = subparsers.add_parser("export", help="Rewrite local asset IDs to portable locators")
    export.add_argument("file", type=Path, help="File with serialized block markup")
    export.add_argument(
        "--endpoint",
        default=None,
        help="Remote resolve-attachments URL (default: the local asset store)"
    )
    export.add_argument("--token", default=None, help="X-Block-Copy-Token for the remote endpoint")
    export.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")
    export.set_defaults(handler=cmd_export)

    imp = subparsers.add_parser("import", help="Import images referenced by portable locators")
    imp.add_argument("file", type=Path, help="File with portable block markup")
    imp.add_argument("-o", "--output", type=Path, default=None, help="Output file (default: stdout)")
    imp.set_defaults(handler=cmd_import)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config) if args.config else SyncConfig.from_env()
    except (FileNotFoundError, BlockCopyError) as e:
        print(f"✗ Error: {e}", file=sys.stderr)
        return 1

    configure_logging(args.log_level or config.log_level)

    if not args.file.exists():
        print(f"✗ Error: File not found: {args.file}", file=sys.stderr)
        return 1

    try:
        return args.handler(args, config)
    except BlockCopyError as e:
        logger.error(f"[Block Copy] {e}")
        print(f"✗ Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
