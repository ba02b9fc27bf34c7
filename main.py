"""
CivicLens - Complaint Problem Discovery

CLI entry point for submitting complaints and running the analysis pipeline.
"""

import argparse
import json
import logging
import sys

from civiclens.orchestrator import PipelineOrchestrator
from civiclens.utils.sample_data import generate_sample_complaints
import config.settings as settings


def setup_logging(log_level: str = "INFO"):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(settings.LOG_FILE)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CivicLens - Agentic complaint clustering and prioritization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Submit a complaint
  python main.py submit "Water pipe leaking near the market for days" --location "Ward 4"

  # Load demo complaints, then run the analysis pipeline
  python main.py seed --count 24
  python main.py analyze

  # Inspect results
  python main.py problems
  python main.py show <problem-id>
  python main.py logs --limit 20
  python main.py report --output-dir output
        """
    )

    parser.add_argument(
        "--data-path",
        default=str(settings.STORE_PATH),
        help=f"Record store JSON file (default: {settings.STORE_PATH})"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=settings.CLUSTERING_SEED,
        help="Random seed for cluster initialization (default: unseeded)"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {settings.LOG_LEVEL})"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    submit = subparsers.add_parser("submit", help="Submit one complaint")
    submit.add_argument("text", help="Complaint text")
    submit.add_argument("--location", default="", help="Free-text location (ward, street, ...)")

    subparsers.add_parser("analyze", help="Cluster, prioritize and explain pending complaints")
    subparsers.add_parser("problems", help="List discovered problems by priority")

    show = subparsers.add_parser("show", help="Show one problem and its complaints")
    show.add_argument("problem_id", help="Problem ID")

    logs = subparsers.add_parser("logs", help="Show recent agent execution logs")
    logs.add_argument("--limit", type=int, default=settings.AGENT_LOG_LIMIT)

    subparsers.add_parser("runs", help="Show recent analysis runs")

    seed = subparsers.add_parser("seed", help="Submit synthetic sample complaints")
    seed.add_argument("--count", type=int, default=settings.SAMPLE_COMPLAINT_COUNT)

    report = subparsers.add_parser("report", help="Export the problem table to CSV")
    report.add_argument("--output-dir", default=str(settings.OUTPUT_ROOT))

    return parser


def print_problems(problems):
    if not problems:
        print("No problems discovered yet. Run `python main.py analyze` first.")
        return

    for rank, problem in enumerate(problems, 1):
        print(
            f"{rank:>2}. [{problem['priority_score']:>3}] {problem['title']} "
            f"({problem['complaint_count']} complaints, {problem['trend']})"
        )
        if problem.get("description"):
            print(f"     {problem['description']}")
        if problem.get("keywords"):
            print(f"     Keywords: {', '.join(problem['keywords'])}")
        print(f"     ID: {problem['id']}")


def run_command(args, orchestrator: PipelineOrchestrator) -> int:
    """Execute one CLI command. Returns the process exit code."""
    if args.command == "submit":
        response = orchestrator.submit_complaint(args.text, args.location)
        if not response["success"]:
            print(f"❌ Complaint rejected: {response['error']}")
            return 1
        print(f"✅ Complaint submitted: {response['complaint_id']}")
        return 0

    if args.command == "seed":
        accepted = 0
        for text, location in generate_sample_complaints(args.count, seed=args.seed):
            if orchestrator.submit_complaint(text, location)["success"]:
                accepted += 1
        print(f"✅ Submitted {accepted}/{args.count} sample complaints")
        return 0

    if args.command == "analyze":
        response = orchestrator.analyze_all()
        print("=" * 60)
        print(f"Run: {response['run_id']}")
        print(f"Complaints analyzed: {response['total_complaints']}")
        print(f"Problems discovered: {response['problems_discovered']}")
        print(f"Stages: {' -> '.join(response['stages_executed'])}")
        print("=" * 60)
        print_problems(response["problems"])
        return 0

    if args.command == "problems":
        print_problems(orchestrator.get_problems()["problems"])
        return 0

    if args.command == "show":
        response = orchestrator.get_problem_details(args.problem_id)
        if not response["success"]:
            print(f"❌ {response['error']}")
            return 1
        print_problems([response["problem"]])
        print()
        for complaint in response["complaints"]:
            location = f" @ {complaint['location']}" if complaint["location"] else ""
            print(f"  - {complaint['text']}{location}")
        return 0

    if args.command == "logs":
        for log in orchestrator.get_agent_logs(args.limit)["logs"]:
            print(f"{log['created_at']}  {log['stage_name']:<15} {log['status']:<10} {log['duration_ms']}ms")
        return 0

    if args.command == "runs":
        print(json.dumps(orchestrator.get_analysis_runs()["runs"], indent=2))
        return 0

    if args.command == "report":
        output_path = orchestrator.export_report(args.output_dir)
        print(f"Problem report: {output_path}")
        print(f"Metadata: {output_path.replace('.csv', '_metadata.json')}")
        return 0

    return 1


def main(argv=None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        orchestrator = PipelineOrchestrator(store_path=args.data_path, seed=args.seed)
        exit_code = run_command(args, orchestrator)
        sys.exit(exit_code)

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        print("\n⚠️  Interrupted")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Command {args.command} failed: {e}", exc_info=True)
        print(f"\n❌ {args.command} failed: {e}")
        print(f"Check {settings.LOG_FILE} for details")
        sys.exit(1)


if __name__ == "__main__":
    main()
