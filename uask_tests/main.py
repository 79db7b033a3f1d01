"""Main entry point for U-Ask chatbot tests - CLI."""

import argparse
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from uask_tests import console
from uask_tests.config import get_settings, load_settings_from_json
from uask_tests.logging_setup import setup_logging


def load_config(args) -> bool:
    """Load config from specified path or default config.json."""
    config_path = Path(args.config) if args.config else Path("config.json")

    if not config_path.exists():
        if args.config:
            console.log(f"{console.error('Error:')} Config file not found: {config_path}")
            return False
        return True

    try:
        load_settings_from_json(config_path)
        console.log(f"Loaded config from: {config_path}")
        return True
    except (json.JSONDecodeError, ValidationError) as e:
        console.log(f"{console.error('Error:')} Invalid config file: {e}")
        return False


def _print_run_header(settings, args, markers, output_path):
    """Print test run configuration header."""
    headless = settings.headless and not args.headed
    console.log("Running U-Ask chatbot tests...")
    console.log(f"  Headless: {headless}")
    console.log(f"  Browser: {settings.browser}")
    console.log(f"  Base URL: {settings.base_url}")
    console.log(f"  Markers: {markers or 'all'}")
    console.log(f"  Live scenarios: {'on' if args.e2e or settings.run_e2e else 'off'}")
    if args.limit:
        console.log(f"  Limit: {args.limit} queries")
    console.log(f"  Output: {output_path}")
    console.log("")


def _print_run_summary(result):
    """Print test run summary with colors."""
    line = console.dim("=" * 50)
    console.log(f"\n{line}")
    console.log(f"Test Run Complete: {console.info(result.run_id[:8])}")

    status = console.success("COMPLETED") if result.status.value == "completed" else console.error("FAILED")
    console.log(f"Status: {status}")
    console.log(f"Duration: {console.dim(f'{result.duration_seconds:.2f}s')}")

    passed = console.success(str(result.passed))
    failed = console.error(str(result.failed)) if result.failed else "0"
    skipped = str(result.skipped)
    console.log(f"Passed: {passed}, Failed: {failed}, Skipped: {skipped}, Total: {result.total}")

    console.log(f"Output: {console.dim(result.output_file)}")
    console.log(line)


def cli_run(args):
    """Run tests via CLI."""
    from uask_tests.output import generate_output_filename
    from uask_tests.runner import run_tests_sync

    if not load_config(args):
        return 1

    if args.color:
        console.force_color(True)

    settings = get_settings()
    setup_logging(settings, verbose=args.verbose)
    markers = args.marker.split(",") if args.marker else None

    if args.output:
        output_path = Path(args.output)
        if output_path.is_dir():
            output_path = output_path / generate_output_filename()
    else:
        output_path = settings.reports_path / generate_output_filename()

    _print_run_header(settings, args, markers, output_path)

    result = run_tests_sync(
        markers=markers,
        headless=settings.headless and not args.headed,
        output_path=output_path,
        limit=args.limit,
        run_e2e=args.e2e,
    )

    _print_run_summary(result)
    return 0 if result.status.value == "completed" else 1


def cli_score(args):
    """Score one query/response pair and print the metrics as JSON."""
    from uask_tests.evaluator import create_evaluator_from_settings

    if not load_config(args):
        return 1

    settings = get_settings()
    setup_logging(settings, verbose=args.verbose)

    try:
        evaluator = create_evaluator_from_settings(settings)
    except ImportError as e:
        console.log(f"{console.error('Error:')} {e}")
        return 1

    result = {
        "quality": evaluator.evaluate_quality(args.query, args.response).model_dump(),
        "helpful": evaluator.is_helpful(args.response),
        "actionable": evaluator.has_actionable_content(args.response),
        "generic": evaluator.is_generic(args.response),
        "completeness": evaluator.completeness_score(args.response),
    }
    if args.reference is not None:
        result["similarity"] = evaluator.similarity(args.response, args.reference)
    if args.llm:
        result["hallucination"] = evaluator.check_hallucination(args.query, args.response).model_dump(by_alias=True)

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="U-Ask Chatbot Playwright Tests",
        prog="uask-tests",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run tests")
    run_parser.add_argument("-c", "--config", help="Path to JSON config file")
    run_parser.add_argument("-m", "--marker", help="Comma-separated test markers")
    run_parser.add_argument("--headed", action="store_true", help="Show browser (overrides config)")
    run_parser.add_argument("-o", "--output", help="Output file/directory")
    run_parser.add_argument("--color", action="store_true", help="Force colors")
    run_parser.add_argument("--limit", type=int, help="Limit to first N queries from fixtures")
    run_parser.add_argument("--e2e", action="store_true", help="Run live browser scenarios against the chatbot")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    run_parser.set_defaults(func=cli_run)

    # Score command
    score_parser = subparsers.add_parser("score", help="Score a chatbot response")
    score_parser.add_argument("-c", "--config", help="Path to JSON config file")
    score_parser.add_argument("query", help="Question that was asked")
    score_parser.add_argument("response", help="Chatbot answer to score")
    score_parser.add_argument("-r", "--reference", help="Expected answer to compare against")
    score_parser.add_argument("--llm", action="store_true", help="Also run the LLM hallucination check")
    score_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    score_parser.set_defaults(func=cli_score)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
