#!/usr/bin/env python3
"""
View PostVault extraction history
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from postvault.storage.database import HistoryDatabase
from postvault.storage.repository import DownloadedPostRepository, ExtractionRunRepository


def format_datetime(dt: datetime) -> str:
    """Format datetime for display."""
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_duration(started_at: datetime, completed_at: datetime) -> str:
    """Format duration between two datetimes."""
    seconds = max(int((completed_at - started_at).total_seconds()), 0)

    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


async def view_recent_history(db: HistoryDatabase, limit: int = 50):
    """View recent extraction runs."""
    async with db.session() as session:
        runs = await ExtractionRunRepository.get_recent(session, limit=limit)

    if not runs:
        print("📭 No extraction history found")
        return

    print(f"\n📊 Recent Extractions (showing {len(runs)} records)\n")
    print("=" * 100)

    for run in runs:
        status = "✅" if run.success else "❌"
        print(f"{status} {run.url}")
        if run.username:
            print(f"   User: {run.username}")
        print(f"   Time: {format_datetime(run.started_at)} ({format_duration(run.started_at, run.completed_at)})")
        if run.success:
            print(f"   Comments: {run.comment_count} + {run.reply_count} replies "
                  f"of {run.expected_count} ({run.completeness})")
            print(f"   Media: {run.media_count}")
        if run.download_path:
            print(f"   Path: {run.download_path}")
        if not run.success and run.error_message:
            print(f"   Error: {run.error_message[:100]}")
        print()


async def view_stats(db: HistoryDatabase):
    """View overall statistics."""
    async with db.session() as session:
        stats = await ExtractionRunRepository.get_stats(session)
        downloaded = await DownloadedPostRepository.count(session)

    total = stats["total_runs"]
    print("\n📊 Extraction Statistics\n")
    print("=" * 50)
    print(f"   Posts downloaded: {downloaded}")
    print(f"   Total runs: {total}")
    print(f"   Failed runs: {stats['failed_runs']}")
    print(f"   Comments: {stats['total_comments']}")
    print(f"   Replies: {stats['total_replies']}")
    print(f"   Media files: {stats['total_media']}")
    print(f"   Success rate: {stats['successful_runs'] / total * 100:.1f}%" if total else "   Success rate: N/A")
    print()


async def search_history(db: HistoryDatabase, shortcode: str):
    """Search extraction history by shortcode."""
    async with db.session() as session:
        runs = await ExtractionRunRepository.get_by_shortcode(session, shortcode)

    if not runs:
        print(f"📭 No extraction history found for: {shortcode}")
        return

    for run in runs:
        status = "✅" if run.success else "❌"
        print(f"{status} {format_datetime(run.started_at)} {run.url}")
        if not run.success and run.error_message:
            print(f"   Error: {run.error_message}")


def print_usage():
    """Print usage information."""
    print("PostVault History Viewer")
    print("\nUsage:")
    print("  python scripts/view_history.py [command] [options]")
    print("\nCommands:")
    print("  recent [N]           Show N most recent extractions (default: 50)")
    print("  stats                Show overall statistics")
    print("  search <SHORTCODE>   Show extractions of one post")


async def main():
    """Main entry point."""
    args = sys.argv[1:]

    if not args or args[0] in ["-h", "--help", "help"]:
        print_usage()
        return

    command = args[0].lower()
    db = HistoryDatabase()
    await db.init()
    try:
        if command == "recent":
            await view_recent_history(db, limit=int(args[1]) if len(args) > 1 else 50)
        elif command == "stats":
            await view_stats(db)
        elif command == "search" and len(args) > 1:
            await search_history(db, args[1])
        else:
            print(f"❌ Unknown command: {' '.join(args)}\n")
            print_usage()
    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
