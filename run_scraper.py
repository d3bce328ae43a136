"""
Simple runner - just run: python run_scraper.py

Usage:
    python run_scraper.py              # Games newer than the last run (default)
    python run_scraper.py --mode full  # Full crawl (page 1 to end)
    python run_scraper.py --mode newest  # Newest pages following next links
    python run_scraper.py --site dodi  # DODI uploads on 1337x
    python run_scraper.py --visible    # Show browser window
    python run_scraper.py --no-resume  # Start fresh
"""
import sys
import os
import argparse

# Get the directory containing this script
script_dir = os.path.dirname(os.path.abspath(__file__))

# Add scraper directory to path
scraper_dir = os.path.join(script_dir, 'scraper')
sys.path.insert(0, scraper_dir)
os.chdir(scraper_dir)

from dotenv import load_dotenv

from scraper_controller import ScraperController
from config import ScraperConfig


def main():
    parser = argparse.ArgumentParser(description='Repack Scraper')
    parser.add_argument('--mode', type=str, default='update',
                        choices=['full', 'update', 'newest'],
                        help='Crawl mode (default: update)')
    parser.add_argument('--site', type=str, choices=['fitgirl', 'dodi'],
                        help='Source site (default: SITE from .env)')
    parser.add_argument('--visible', action='store_true',
                        help='Show browser window (default: headless)')
    parser.add_argument('--no-resume', action='store_true',
                        help='Start fresh instead of resuming')
    args = parser.parse_args()

    load_dotenv(os.path.join(scraper_dir, '.env'))
    try:
        config = ScraperConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 1

    if args.site:
        config.site = args.site
    config.headless = not args.visible

    print(f"Starting {config.site} scraper ({args.mode} mode)...")
    print("Press Ctrl+C to stop (progress is saved automatically)\n")

    controller = ScraperController(config)

    try:
        result = controller.run(mode=args.mode, resume=not args.no_resume)

        print(f"\nDone! Scraped {result.total_completed} games")
        print(f"Failed: {result.total_failed} | Skipped: {result.total_skipped}")

        if result.duration_seconds > 0:
            print(f"Speed: {result.items_per_hour:.1f} games/hour")

        return 0 if result.success else 1

    except KeyboardInterrupt:
        print("\nStopped. Run again to resume.")
        return 0


if __name__ == '__main__':
    sys.exit(main())
