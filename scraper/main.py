"""
Main entry point for the repack scraper.
"""

import argparse
import signal
import sys
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = Path(__file__).parent / '.env'
if not env_path.exists():
    print(f"⚠️  Warning: .env file not found at {env_path}")
    print("Using environment variables from system")
else:
    load_dotenv(env_path)
    print("✓ Loaded environment from .env")

from config import ScraperConfig
from finder import newest_and_largest, search
from reconciliation import Reconciler
from scraper_controller import ScraperController
from sites import SITES
from storage import GameStorage
from utils import format_timestamp


CRAWL_MODES = ScraperController.VALID_MODES
RECONCILE_MODES = ['count', 'compare', 'redirects', 'check-dates', 'ddl']

# Global job for signal handling
_job = None


def signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM for graceful shutdown."""
    print("\n\n" + "=" * 60)
    print("STOP SIGNAL RECEIVED - SHUTTING DOWN GRACEFULLY")
    print("=" * 60)
    if _job:
        _job.stop()
        print("Waiting for current operation to complete...")
    else:
        print("Exiting immediately...")
        sys.exit(0)


def install_signal_handlers():
    signal.signal(signal.SIGINT, signal_handler)
    # SIGTERM is not reliably available on Windows
    if hasattr(signal, 'SIGTERM') and sys.platform != 'win32':
        signal.signal(signal.SIGTERM, signal_handler)


def build_config(args) -> ScraperConfig:
    """Configuration from the environment with CLI overrides."""
    config = ScraperConfig.from_env()
    if args.site:
        config.site = args.site
    if args.visible:
        config.headless = False
    config.query = args.query
    config.start_index = args.start_index
    return config


def run_crawl(config: ScraperConfig, args) -> int:
    """Run a crawl with ScraperController."""
    global _job

    _job = ScraperController(config)
    install_signal_handlers()

    result = _job.run(mode=args.mode, resume=not args.no_resume)

    # Print summary
    print("\n" + "=" * 60)
    print("CRAWL COMPLETE")
    print("=" * 60)
    print(f"Mode:        {result.mode}")
    print(f"Success:     {result.success}")
    print(f"Duration:    {result.duration_seconds / 60:.1f} minutes")
    print(f"Pages:       {result.pages_processed}")
    print(f"Discovered:  {result.total_discovered}")
    print(f"Completed:   {result.total_completed}")
    print(f"Skipped:     {result.total_skipped}")
    print(f"Failed:      {result.total_failed}")
    print(f"Speed:       {result.items_per_hour:.1f} games/hour")

    if result.failed_links:
        print(f"\nFailed games ({len(result.failed_links)}):")
        for link in result.failed_links[:10]:
            print(f"  - {link}")
        if len(result.failed_links) > 10:
            print(f"  ... and {len(result.failed_links) - 10} more")

    return 0 if result.success else 1


def run_reconcile(config: ScraperConfig, args) -> int:
    """Run a reconciliation job."""
    global _job

    _job = Reconciler(config)
    install_signal_handlers()

    try:
        if args.mode == 'count':
            _job.count_report()
        elif args.mode == 'compare':
            _job.compare()
        elif args.mode == 'redirects':
            _job.clean_redirects()
        elif args.mode == 'check-dates':
            report = _job.check_dates(start_index=config.start_index)
            if report.failed:
                return 1
        elif args.mode == 'ddl':
            _job.backfill_direct_links()
    except Exception as e:
        print(f"✗ {args.mode} failed: {e}")
        return 1
    finally:
        _job.close()

    return 0


def run_find(config: ScraperConfig, args) -> int:
    """Search the store, or list the newest and largest games."""
    records = GameStorage(config.data_file).load()

    def show(title, found):
        print(f"\n{title} ({len(found)})")
        for record in found:
            print(f"  {format_timestamp(record.date) or '-':<24} {record.size:>6.1f} GB  {record.name}")
            print(f"      {record.link}")

    if args.query:
        show(f"Results for \"{args.query}\"", search(records, args.query))
    else:
        lists = newest_and_largest(records)
        show("Newest", lists['newest'])
        show("Largest", lists['largest'])
    return 0


def main():
    parser = argparse.ArgumentParser(
        description='FitGirl / DODI repack scraper',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Full crawl (resumable)
  python main.py --mode full

  # Only games newer than the last run
  python main.py --mode update

  # Walk the newest pages following next links
  python main.py --mode newest

  # Scrape one game by URL or name
  python main.py --mode fetch --query "https://fitgirl-repacks.site/some-game/"

  # DODI uploads on 1337x
  python main.py --site dodi --mode full

  # Build the A-Z enumeration, then reconcile the store against it
  python main.py --mode enumerate
  python main.py --mode compare

  # Re-check stored dates from row 500
  python main.py --mode check-dates --start-index 500

  # Search the store
  python main.py --mode find --query "racing"
"""
    )

    parser.add_argument(
        '--site',
        type=str,
        choices=sorted(SITES),
        help='Source site (default: SITE from environment, then fitgirl)'
    )
    parser.add_argument(
        '--mode',
        type=str,
        default='update',
        choices=CRAWL_MODES + RECONCILE_MODES + ['find'],
        help='Job to run (default: update)'
    )
    parser.add_argument(
        '--query',
        type=str,
        help='URL or name (fetch mode), search term (find mode)'
    )
    parser.add_argument(
        '--start-index',
        type=int,
        help='Store row to start from (check-dates mode)'
    )
    parser.add_argument(
        '--visible',
        action='store_true',
        help='Show browser window (default: headless)'
    )
    parser.add_argument(
        '--no-resume',
        action='store_true',
        help='Start fresh instead of resuming from saved progress'
    )

    args = parser.parse_args()

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"✗ Configuration error: {e}")
        return 1

    if args.mode == 'fetch' and not args.query:
        parser.error('--query is required for fetch mode')

    if args.mode == 'find':
        return run_find(config, args)
    if args.mode in RECONCILE_MODES:
        return run_reconcile(config, args)
    return run_crawl(config, args)


if __name__ == '__main__':
    sys.exit(main())
