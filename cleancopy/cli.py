"""Command-line interface for CleanCopy.

Usage:
    python -m cleancopy.cli --volumes
    python -m cleancopy.cli --source /Volumes/CARD
    python -m cleancopy.cli --source /Volumes/CARD --destination /Volumes/BACKUP --policy exclude_flagged

Without --destination, the analysis summary is printed as JSON and nothing is
copied.
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from cleancopy.config import ClassifierProvider, config, logger
from cleancopy.events import DebouncedListener
from cleancopy.exceptions import CopySetupError
from cleancopy.models import AnalysisSnapshot, CopyReport, EventKind, FilterPolicy, MediaCategory, PipelineEvent
from cleancopy.pipeline import CleanCopyPipeline
from cleancopy.providers import build_provider
from cleancopy.thumbnails import FFmpegThumbnailExtractor
from cleancopy.utils import format_bytes, top_extensions
from cleancopy.volumes import eligible_destinations, free_space, list_volumes

EXIT_OK = 0
EXIT_SETUP = 1
EXIT_COPY_FAILURES = 2


class ProgressReporter:
    """Report progress as JSON lines on stderr for a hosting app."""

    def report(self, current: int, total: int, message: str, stage: Optional[str] = None) -> None:
        percentage = int((current / total) * 100) if total else 100
        progress_data = {
            "type": "progress",
            "current": current,
            "total": total,
            "percentage": percentage,
            "message": message,
            "stage": stage
        }
        print(json.dumps(progress_data), file=sys.stderr)


class ProgressDisplay:
    """Render pipeline events as tqdm bars, or JSON lines with --json-progress."""

    def __init__(self, json_progress: bool = False) -> None:
        self.reporter = ProgressReporter() if json_progress else None
        self.bars: Dict[str, tqdm] = {}

    def __call__(self, event: PipelineEvent) -> None:
        if event.kind in (EventKind.COPY_PROGRESS, EventKind.COPY_DONE):
            self._copy(event)
        elif event.snapshot is not None:
            self._scan(event.snapshot)

    def _scan(self, snapshot: AnalysisSnapshot) -> None:
        submitted = snapshot.pending_verdicts + snapshot.resolved_verdicts
        if self.reporter:
            self.reporter.report(snapshot.discovered, snapshot.total_files, "Scanning files", "scan")
            if submitted:
                self.reporter.report(snapshot.resolved_verdicts, submitted, "Checking images and videos", "classify")
            return
        self._update("scan", "Scanning", snapshot.discovered, snapshot.total_files)
        if submitted:
            self._update("classify", "Checking", snapshot.resolved_verdicts, submitted)

    def _copy(self, event: PipelineEvent) -> None:
        percent = int(round((event.progress or 0.0) * 100))
        if self.reporter:
            self.reporter.report(percent, 100, "Copying files", "copy")
            return
        self._update("copy", "Copying", percent, 100, unit="%")

    def _update(self, key: str, desc: str, current: int, total: int, unit: str = "file") -> None:
        bar = self.bars.get(key)
        if bar is None:
            bar = tqdm(total=total, desc=desc, unit=unit, file=sys.stderr, leave=True)
            self.bars[key] = bar
        if bar.total != total:
            bar.total = total
        bar.n = current
        bar.refresh()

    def close(self) -> None:
        for bar in self.bars.values():
            bar.close()
        self.bars.clear()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Scan a volume, screen images and videos, and back up what passes the filter")
    parser.add_argument("--volumes", action="store_true", help="List mounted volumes with free space and exit")
    parser.add_argument("--source", type=str, help="Volume or directory to scan")
    parser.add_argument("--destination", type=str, help="Volume or directory to create the backup folder in")
    parser.add_argument(
        "--policy",
        choices=[p.value for p in FilterPolicy],
        default=FilterPolicy.EXCLUDE_FLAGGED.value,
        help="Which files to copy (default: exclude_flagged)",
    )
    parser.add_argument("--yes", action="store_true", help="Copy without asking for confirmation")
    parser.add_argument("--classifier-url", type=str, help="Classification service endpoint")
    parser.add_argument("--concurrency", type=int, help="Maximum simultaneous classifications")
    parser.add_argument("--threshold", type=float, help="Probability above which an unsafe label flags a file")
    parser.add_argument("--no-safety", action="store_true", help="Skip content checks; nothing is flagged")
    parser.add_argument("--json-progress", action="store_true", help="Emit JSON progress lines on stderr")
    return parser


def _apply_overrides(args: argparse.Namespace) -> None:
    if args.classifier_url:
        config.classifier.url = args.classifier_url
    if args.concurrency is not None:
        if args.concurrency < 1:
            raise ValueError("--concurrency must be at least 1")
        config.classifier.max_concurrent_requests = args.concurrency
    if args.threshold is not None:
        if not 0.0 <= args.threshold <= 1.0:
            raise ValueError("--threshold must be between 0 and 1")
        config.classifier.flag_threshold = args.threshold
    if args.no_safety:
        config.classifier.provider = ClassifierProvider.NONE


def _print_volumes() -> int:
    volumes = list_volumes()
    if not volumes:
        print("No volumes found.", file=sys.stderr)
        return EXIT_SETUP
    rows: List[dict] = []
    for volume in volumes:
        free = free_space(volume)
        rows.append({"volume": str(volume), "free_bytes": free})
        print(f"{volume}  (Free: {format_bytes(free)})", file=sys.stderr)
    print(json.dumps(rows, indent=2))
    return EXIT_OK


def _summary(snapshot: AnalysisSnapshot, selected: int, policy: FilterPolicy) -> dict:
    return {
        "files": snapshot.discovered,
        "total_size": snapshot.total_size,
        "counts": {c.value: snapshot.count(c) for c in MediaCategory},
        "flagged_images": sorted(str(p) for p in snapshot.flagged_images),
        "flagged_videos": sorted(str(p) for p in snapshot.flagged_videos),
        "other_extensions": dict(top_extensions(snapshot.other_extensions)),
        "policy": policy.value,
        "selected": selected,
    }


def _print_summary(snapshot: AnalysisSnapshot) -> None:
    print(f"\n📊 Analysis of {snapshot.discovered} files ({format_bytes(snapshot.total_size)}):", file=sys.stderr)
    for category in MediaCategory:
        print(f"   {category.value}: {snapshot.count(category)}", file=sys.stderr)
    if snapshot.other_extensions:
        breakdown = ", ".join(f"{ext} ({n})" for ext, n in top_extensions(snapshot.other_extensions))
        print(f"   Other types: {breakdown}", file=sys.stderr)
    print(f"   Flagged images: {len(snapshot.flagged_images)}", file=sys.stderr)
    print(f"   Flagged videos: {len(snapshot.flagged_videos)}", file=sys.stderr)


def _existing_ancestor(path: Path) -> Path:
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return path


def _confirm(message: str) -> bool:
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


async def run(args: argparse.Namespace) -> int:
    source = Path(args.source).expanduser()
    if not source.is_dir():
        print(f"Error: source {source} is not a directory.", file=sys.stderr)
        return EXIT_SETUP

    display = ProgressDisplay(json_progress=args.json_progress)
    listener = DebouncedListener(display, interval=config.notifications.debounce_seconds)
    provider = build_provider(config.classifier)
    extractor = FFmpegThumbnailExtractor.from_config(config.classifier)

    async with provider:
        pipeline = CleanCopyPipeline(provider, extractor, settings=config)
        pipeline.events.subscribe(listener)
        try:
            snapshot = await pipeline.start_scan(source)
            listener.flush()
        finally:
            display.close()

        selected = pipeline.set_filter_policy(args.policy)
        _print_summary(snapshot)
        print(json.dumps(_summary(snapshot, len(selected), pipeline.filter_policy), indent=2))
        logger.debug(f"Classifier health: {provider.get_health_status()}")

        if not args.destination:
            return EXIT_OK

        destination = Path(args.destination).expanduser()
        plan = pipeline.build_plan(destination)
        if not plan.files:
            print("Nothing to copy with the selected filter.", file=sys.stderr)
            return EXIT_OK

        needed = plan.total_bytes
        free = free_space(_existing_ancestor(destination))
        if free < needed:
            print(
                f"Error: {destination} has {format_bytes(free)} free, {format_bytes(needed)} needed.",
                file=sys.stderr,
            )
            others = [o for o in eligible_destinations(source, needed) if o.has_space]
            if others:
                print("Volumes with enough space: " + ", ".join(str(o.volume) for o in others), file=sys.stderr)
            return EXIT_SETUP

        if not args.yes and not _confirm(
            f"Copy {plan.total_files} files ({format_bytes(needed)}) to {destination}?"
        ):
            print("Copy cancelled.", file=sys.stderr)
            return EXIT_OK

        try:
            report = await pipeline.start_copy(plan)
        except CopySetupError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_SETUP
        finally:
            listener.flush()
            display.close()

    return _report_copy(report)


def _report_copy(report: CopyReport) -> int:
    print(f"✔️ Backup written to {report.backup_root}", file=sys.stderr)
    print(f"   Copied: {report.copied}  Failed: {report.failed}  Skipped: {report.skipped}", file=sys.stderr)
    for outcome in report.outcomes:
        if outcome.reason:
            print(f"   {outcome.status.value}: {outcome.entry.path} ({outcome.reason})", file=sys.stderr)
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_COPY_FAILURES if report.failed else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.volumes:
        return _print_volumes()
    if not args.source:
        parser.print_usage(sys.stderr)
        print("Error: --source is required unless --volumes is given.", file=sys.stderr)
        return EXIT_SETUP

    try:
        _apply_overrides(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SETUP

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return EXIT_SETUP


if __name__ == "__main__":
    sys.exit(main())
