"""Command-line interface for romsync."""

import sys
import signal
import logging
import argparse
import asyncio
import httpx
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

from romsync import __version__
from romsync.catalog.store import CatalogError, CatalogStore
from romsync.config.loader import load_config, get_config_value, get_database_path, ConfigError
from romsync.config.options import DownloaderOptions
from romsync.config.validator import validate_config, ValidationError
from romsync.remote.listing import DEFAULT_USER_AGENT
from romsync.remote.sources import (
    RomEntry,
    get_entries_by_keys,
    get_entries_by_sources,
    unknown_entry_keys,
)
from romsync.scanner.collection import ScannerError
from romsync.workflow.orchestrator import DownloadOrchestrator
from romsync.workflow.progress import DownloadProgressReporter, SyncProgressReporter
from romsync.workflow.reconciler import ReconcileError, SyncReconciler


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog='romsync',
        description='Mirror curated No-Intro / Redump ROM sets into a local collection',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Download every no-intro system, USA releases only
  romsync download --sources no-intro --preset usa

  # Re-check existing files of two systems for remote changes
  romsync download --systems GB GBA --update

  # Refresh the catalog and record local files with hashes
  romsync sync --hashes

  # Use custom config file
  romsync --config /path/to/config.yaml download
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=Path,
        metavar='PATH',
        help='Path to config.yaml (default: ./config.yaml)'
    )

    parser.add_argument(
        '--target',
        type=Path,
        metavar='DIR',
        help='Collection root holding Roms/ and the catalog. Overrides config.'
    )

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    download = subparsers.add_parser('download', help='Download missing or changed ROMs')
    download.add_argument(
        '--systems',
        nargs='+',
        metavar='SYSTEM',
        help='Catalog system keys (e.g., GB GBA FC_CART). Overrides config.'
    )
    download.add_argument(
        '--sources',
        nargs='+',
        choices=['no-intro', 'redump'],
        help='Sources to download from when no systems are given. Overrides config.'
    )
    download.add_argument(
        '--dry-run',
        action='store_true',
        help='Report what would run without fetching anything.'
    )
    download.add_argument(
        '--update',
        action='store_true',
        help='Re-download existing files whose remote size or date changed.'
    )
    download.add_argument(
        '--jobs',
        type=int,
        metavar='N',
        help='Parallel downloads. Overrides config.'
    )
    download.add_argument(
        '--disk-profile',
        choices=['fast', 'balanced', 'slow'],
        help='Destination disk speed class. Overrides config.'
    )
    name_filter = download.add_mutually_exclusive_group()
    name_filter.add_argument(
        '--preset',
        choices=['usa', 'english', 'ntsc', 'pal', 'japanese', 'all'],
        help='Region preset filter.'
    )
    name_filter.add_argument(
        '--filter',
        metavar='REGEX',
        help='Custom filename regex (ignored when a preset is set).'
    )
    download.add_argument(
        '--no-1g1r',
        action='store_true',
        help='Keep every variant instead of one ROM per title.'
    )
    download.add_argument(
        '--no-extract',
        action='store_true',
        help='Keep downloaded archives packed.'
    )
    download.add_argument(
        '--verbose',
        action='store_true',
        help='Print one line per downloaded file.'
    )

    sync = subparsers.add_parser('sync', help='Refresh the catalog and record local files')
    sync.add_argument(
        '--systems',
        nargs='+',
        metavar='SYSTEM',
        help='Catalog system keys to sync (default: all).'
    )
    sync.add_argument(
        '--force',
        action='store_true',
        help='Refresh listings even when the remote directory is unchanged.'
    )
    sync.add_argument(
        '--hashes',
        action='store_true',
        help='Compute SHA-1 and CRC32 of local files.'
    )

    return parser


def _setup_logging(config: dict) -> None:
    """
    Setup logging configuration from config.

    Args:
        config: Configuration dictionary
    """
    logging_config = config.get('logging', {}) or {}

    # Get log level
    level_str = (logging_config.get('level') or 'INFO').upper()
    level = getattr(logging, level_str, logging.INFO)

    handlers = []

    if logging_config.get('console', True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
        handlers.append(console_handler)

    # File handler (if configured)
    log_file = logging_config.get('file')
    if log_file:
        try:
            log_path = Path(log_file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(level)
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as e:
            print(f"Error: Could not create log file '{log_file}': {e}", file=sys.stderr)
            sys.exit(1)

    if not handlers:
        handlers.append(logging.NullHandler())

    # Configure root logger
    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    # Request logging is noisy at DEBUG
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def _apply_overrides(config: dict, args: argparse.Namespace) -> None:
    """Apply command-line overrides to the loaded config in place."""
    if args.target:
        config['paths']['target'] = str(args.target)

    if args.command == 'download':
        download = config['download']
        if args.systems:
            download['systems'] = args.systems
        if args.sources:
            download['sources'] = args.sources
        if args.dry_run:
            download['dry_run'] = True
        if args.update:
            download['update'] = True
        if args.jobs is not None:
            download['jobs'] = args.jobs
        if args.disk_profile:
            download['disk_profile'] = args.disk_profile
        if args.no_1g1r:
            download['enable_1g1r'] = False
        if args.no_extract:
            download['extract'] = False
        if args.preset:
            config['filters']['preset'] = args.preset
            config['filters']['custom'] = None
        if args.filter:
            config['filters']['custom'] = args.filter
            config['filters']['preset'] = None

    elif args.command == 'sync':
        if args.systems:
            config['download']['systems'] = args.systems
        if args.force:
            config['sync']['force'] = True
        if args.hashes:
            config['sync']['include_hashes'] = True


def resolve_entries(config: dict) -> List[RomEntry]:
    """
    Select catalog entries from download.systems, else download.sources.

    Unknown system keys are reported and ignored.
    """
    systems = get_config_value(config, 'download.systems', []) or []
    if systems:
        for key in unknown_entry_keys(systems):
            print(f"Error: Unknown system '{key}' (not retryable)", file=sys.stderr)
        return get_entries_by_keys(systems)

    sources = get_config_value(config, 'download.sources', ['no-intro', 'redump'])
    return get_entries_by_sources(sources)


def _create_client(config: dict, max_connections: int = 10) -> httpx.AsyncClient:
    timeout = float(get_config_value(config, 'http.timeout', 30.0))
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
        limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections),
        follow_redirects=True,
        headers={'User-Agent': get_config_value(config, 'http.user_agent') or DEFAULT_USER_AGENT},
    )


def _install_interrupt_handler(callback) -> None:
    """Route SIGINT to callback so in-flight work can wind down."""
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, callback)
    except (NotImplementedError, RuntimeError):
        # Not supported on this platform; KeyboardInterrupt still applies
        pass


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for romsync CLI.

    Args:
        argv: Command-line arguments (default: sys.argv)

    Returns:
        Exit code (0 for success, 1 for errors or failures, 130 on interrupt)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # Load and validate configuration
    try:
        config = load_config(args.config)
        _apply_overrides(config, args)
        validate_config(config)
    except (ConfigError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    _setup_logging(config)

    try:
        if args.command == 'download':
            return asyncio.run(run_download(config, verbose=args.verbose))
        return asyncio.run(run_sync(config))
    except KeyboardInterrupt:
        print("\n\nInterrupted by user.", file=sys.stderr)
        return 130
    except (CatalogError, ReconcileError, ScannerError) as e:
        print(f"\nFatal error: {e}", file=sys.stderr)
        return 1


async def run_download(config: dict, verbose: bool = False) -> int:
    """
    Run the download workflow (async).

    Args:
        config: Validated configuration
        verbose: Print one line per downloaded file

    Returns:
        Exit code
    """
    entries = resolve_entries(config)
    if not entries:
        print("Error: No matching systems to download", file=sys.stderr)
        return 1

    options = DownloaderOptions.from_config(config)
    reporter = DownloadProgressReporter(verbose=verbose)

    store = None
    if not options.dry_run:
        store = CatalogStore(get_database_path(config)).open()

    try:
        async with _create_client(config, max_connections=max(10, options.jobs * 2)) as client:
            orchestrator = DownloadOrchestrator(client, options, store)
            _install_interrupt_handler(orchestrator.cancel)

            async for event in orchestrator.run(entries):
                reporter.handle(event)
    finally:
        if store is not None:
            store.close()

    reporter.print_final_summary()

    if orchestrator.cancelled:
        print("\nDownload cancelled; finished files were kept.", file=sys.stderr)
        return 130
    return 1 if reporter.has_errors() else 0


async def run_sync(config: dict) -> int:
    """
    Run the catalog sync and local reconciliation (async).

    Args:
        config: Validated configuration

    Returns:
        Exit code
    """
    systems = get_config_value(config, 'download.systems', []) or []
    unknown = unknown_entry_keys(systems)
    for key in unknown:
        print(f"Error: Unknown system '{key}' (not retryable)", file=sys.stderr)
    known = [key for key in systems if key not in unknown]
    if systems and not known:
        print("Error: No matching systems to sync", file=sys.stderr)
        return 1

    target = Path(get_config_value(config, 'paths.target', '.')).expanduser()
    reporter = SyncProgressReporter()

    with CatalogStore(get_database_path(config)) as store:
        async with _create_client(config) as client:
            reconciler = SyncReconciler(
                store,
                client,
                target / 'Roms',
                user_agent=get_config_value(config, 'http.user_agent'),
                include_hashes=bool(get_config_value(config, 'sync.include_hashes', False)),
                on_event=reporter.handle,
                retries=int(get_config_value(config, 'download.retry_count', 3)),
                retry_delay=float(get_config_value(config, 'download.retry_delay', 2.0)),
            )
            report = await reconciler.run(known or None, force=bool(get_config_value(config, 'sync.force', False)))

    print(
        f"Local: {report.scan.total_roms} ROM(s) scanned, {report.local.linked} linked to the catalog, "
        f"{report.local.pruned} stale record(s) pruned"
    )
    return 0 if report.ok else 1


if __name__ == '__main__':
    sys.exit(main())
