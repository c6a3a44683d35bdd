#!/usr/bin/env python
"""
Rescan Wedding Photos

This script runs a full corpus rescan: every photo is run through face
detection and matched against all guests with a verified selfie.

Usage:
    python -m guest_tagger.cli.rescan_photos [--only-unprocessed] [--batch-size N]
"""
import argparse
import asyncio
import time

from tqdm import tqdm

from guest_tagger.core.container import ServiceContainer
from guest_tagger.core.logging import get_logger, setup_logging
from guest_tagger.domain.value_objects.scan import BatchReport, PhotoOutcome

logger = get_logger(__name__)


def print_report(report: BatchReport, elapsed: float) -> None:
    """Print the outcome of a rescan."""
    print("\n===== Rescan Statistics =====")
    print(report.message)
    print(f"Total photos: {report.total_photos}")
    print(f"Processed photos: {report.photos_processed}")
    print(f"Failed photos: {report.photos_failed}")
    print(f"Skipped photos: {report.photos_skipped}")
    print(f"Faces detected: {report.faces_detected}")
    print(f"Faces matched: {report.faces_matched}")
    print(f"Total time: {elapsed:.2f} seconds")

    if report.photos_processed > 0:
        print(f"Average time per photo: {elapsed / report.photos_processed:.2f} seconds")

    for failure in report.failures:
        print(f"  {failure.photo_id}: {failure.stage.value} failed: {failure.error}")
    print("=============================")


def positive_int(value: str) -> int:
    """argparse type for options that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rescan wedding photos for guest faces")
    parser.add_argument("--only-unprocessed", action="store_true",
                        help="Only scan photos that were never processed")
    parser.add_argument("--batch-size", type=positive_int,
                        help="Photos processed concurrently per batch")
    return parser


async def main(args) -> BatchReport:
    """Main entry point."""
    container = ServiceContainer()
    await container.initialize()
    engine = container.photo_match_engine
    if args.batch_size is not None:
        engine.batch_size = args.batch_size

    start_time = time.time()
    progress = tqdm(desc="Rescanning photos", unit="photo")

    def on_photo(outcome: PhotoOutcome) -> None:
        progress.update(1)
        if outcome.failure is not None:
            progress.set_postfix_str(f"last failure: {outcome.photo_id}")

    try:
        report = await engine.rescan_corpus(
            rescan_all=not args.only_unprocessed,
            on_photo=on_photo,
        )
    finally:
        progress.close()
        await container.cleanup()

    print_report(report, time.time() - start_time)
    return report


if __name__ == "__main__":
    args = build_parser().parse_args()

    setup_logging()
    asyncio.run(main(args))
