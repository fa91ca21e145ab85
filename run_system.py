#!/usr/bin/env python3
"""
Quran Recitation Checking System Launcher

This script provides an easy way to launch different components of the system.
"""

import sys
import argparse
import subprocess
import logging
import os
from pathlib import Path

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

TEST_FILES = [
    "test_text_normalizer.py",
    "test_fuzzy_matcher.py",
    "test_batch_aligner.py",
    "test_incremental_tracker.py",
    "test_verse_locator.py",
    "test_live_session.py",
    "test_api_clients.py",
    "test_correction_pipeline.py",
    "test_fastapi_server.py",
]


def _src_env():
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, ["src", env.get("PYTHONPATH")]))
    return env


def run_fastapi_server():
    """Launch the FastAPI backend server."""
    logger.info("Starting FastAPI backend server...")
    try:
        subprocess.run([sys.executable, "-m", "quran_tasmee.fastapi_server"], check=True, env=_src_env())
    except subprocess.CalledProcessError as e:
        logger.error(f"Failed to start FastAPI server: {e}")
        return False
    except KeyboardInterrupt:
        logger.info("FastAPI server stopped by user")
    return True


def run_tests():
    """Run the system tests."""
    logger.info("Running system tests...")
    try:
        subprocess.run([sys.executable, "-m", "unittest", "-v", *TEST_FILES], check=True, env=_src_env())
        logger.info("All tests passed!")
        return True
    except subprocess.CalledProcessError as e:
        logger.error(f"Tests failed: {e}")
        return False


def demo_check():
    """Run a demo check of a transcript with one skipped and one misread word."""
    logger.info("Running demo check...")

    sys.path.insert(0, str(Path(__file__).parent / "src"))
    from quran_tasmee.api_clients import QuranAPIError, build_reference_provider
    from quran_tasmee.config import Settings
    from quran_tasmee.correction_pipeline import RecitationChecker

    settings = Settings.from_env()
    checker = RecitationChecker(build_reference_provider(settings), settings=settings)

    # Al-Fatiha 1:2 with "لله" misread and "العالمين" skipped
    recognized = "الحمد للا رب"
    try:
        result = checker.check_text(recognized, surah_number=1, ayah_number=2)
    except QuranAPIError as e:
        logger.error(f"Demo failed: {e}")
        return False

    print("\n" + "=" * 50)
    print("CHECK RESULTS")
    print("=" * 50)
    print(f"Surah: {result.surah_number}")
    print(f"Expected: {result.expected}")
    print(f"Recognized: {result.recognized}")
    print(f"Score: {result.score}%")
    print(f"Processing Time: {result.processing_time:.2f}s")
    print()
    print(checker.get_correction_summary(result))
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Quran Recitation Checking System Launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_system.py fastapi         # Launch API server
  python run_system.py test            # Run tests
  python run_system.py demo            # Run demo check
        """
    )

    parser.add_argument(
        "component",
        choices=["fastapi", "test", "demo"],
        help="Component to launch"
    )

    args = parser.parse_args()

    # Check if we're in the right directory
    if not Path("src/quran_tasmee").exists():
        logger.error("Please run this script from the project root directory")
        sys.exit(1)

    success = False

    if args.component == "fastapi":
        success = run_fastapi_server()
    elif args.component == "test":
        success = run_tests()
    elif args.component == "demo":
        success = demo_check()

    if not success:
        sys.exit(1)

    logger.info("Operation completed successfully!")


if __name__ == "__main__":
    main()
