#!/usr/bin/env python3
"""
robomirror: Directory backups driven by a job file and executed with robocopy.

Main entry point for the backup application.
"""

import argparse
import logging
import sys
from contextlib import nullcontext
from datetime import datetime
from pathlib import Path

from robomirror.backup_manager import BackupManager, BackupResult, format_duration, prune_logs
from robomirror.config import (
    DEFAULT_CONFIG_NAMES,
    JobNotFound,
    JobRegistry,
    JobValidationError,
    MalformedConfig,
    NoConfigLoaded,
    create_config,
    load_config,
    resolve_config_path,
    working_directory,
)
from robomirror.logging_setup import (
    SESSION_LOG_PATTERN,
    open_log_directory,
    setup_logging,
    shutdown_logging,
)
from robomirror.menu import InteractiveShell
from robomirror.robocopy import RunRequest

DEFAULT_LOG_DIR = Path(__file__).resolve().parent / "logs"
MAX_SESSION_LOGS = 100


def format_backup_summary(results: list[BackupResult], total_execution_time: float) -> str:
    """Format backup results into a readable summary."""
    summary = []
    summary.append("=== Robocopy Backup Summary ===\n")

    successful_count = sum(1 for r in results if r.success)
    failed_count = len(results) - successful_count

    summary.append(f"Total backups processed: {len(results)}")
    summary.append(f"Successful: {successful_count}")
    summary.append(f"Failed: {failed_count}")
    summary.append(f"Total execution time: {format_duration(total_execution_time)}")
    summary.append("")

    summary.append("=== Individual Backup Results ===")
    for result in results:
        status = "✓ SUCCESS" if result.success else "✗ FAILED"
        summary.append(f"\n[{status}] {result.backup_name}")
        summary.append(f"  Mode: {result.request.mode}{' (dry run)' if result.request.dry_run else ''}")
        summary.append(f"  Exit code: {result.exit_code} - {result.message}")
        summary.append(f"  Execution time: {format_duration(result.execution_time)}")
        summary.append(f"  Log: {result.log_file}")

    return "\n".join(summary)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="robomirror",
        description="Back up directories with robocopy using a job file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  python main.py                                  # Interactive menu
  python main.py --job Docs                       # Run one configured job
  python main.py --all --dry                      # Preview every configured job
  python main.py --source C:\\data --destination E:\\data --mirror
  python main.py --init                           # Create {DEFAULT_CONFIG_NAMES[0]}
        """,
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--job", metavar="NAME", help="Run one configured job")
    mode.add_argument("--all", action="store_true", help="Run every configured job in order")
    mode.add_argument(
        "--scheduled",
        action="store_true",
        help="Run the configured jobs whose schedule fired today",
    )
    mode.add_argument("--source", metavar="PATH", help="Source directory for a manual backup")
    mode.add_argument(
        "--init",
        nargs="?",
        const="",
        metavar="PATH",
        help="Create a new configuration file from the bundled template",
    )
    mode.add_argument("--logs", action="store_true", help="Open the log directory")

    parser.add_argument("--destination", metavar="PATH", help="Destination for a manual backup")
    parser.add_argument(
        "--mirror",
        action="store_true",
        help="Manual backup mirrors the source (extra destination files are deleted)",
    )
    parser.add_argument("--config", metavar="PATH", help="Configuration file to load")
    parser.add_argument(
        "--dry",
        action="store_true",
        help="List what would change without touching any files",
    )
    parser.add_argument(
        "--log-dir",
        metavar="PATH",
        default=str(DEFAULT_LOG_DIR),
        help="Directory for run and session logs (default: %(default)s)",
    )
    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.source is not None and not args.destination:
        parser.error("--source requires --destination")
    if args.destination is not None and args.source is None:
        parser.error("--destination requires --source")
    if args.mirror and args.source is None:
        parser.error("--mirror is only valid for a manual backup (--source/--destination)")

    return args


def init_config(target: str, input_func=None) -> int:
    """Create a configuration file, asking before overwriting."""
    input_func = input_func or input
    if not target:
        default = str(Path.cwd() / DEFAULT_CONFIG_NAMES[0])
        try:
            target = input_func(f"Create configuration at [{default}]: ").strip() or default
        except EOFError:
            target = default

    target_path = Path(target).expanduser()
    overwrite = False
    if target_path.exists():
        try:
            answer = input_func(f"{target_path} exists. Overwrite? (y/N): ").strip().lower()
        except EOFError:
            answer = ""
        if answer not in ("y", "yes"):
            logging.getLogger("robomirror").info("Configuration file left unchanged")
            return 0
        overwrite = True

    create_config(target_path, overwrite=overwrite)
    return 0


def dispatch(
    args: argparse.Namespace,
    registry: JobRegistry,
    manager: BackupManager,
    invocation_dir: Path,
    logger: logging.Logger,
) -> int:
    """Run the selected mode and return the process exit code."""
    start_time = datetime.now()

    if args.source is not None:
        request = RunRequest(
            source=invocation_dir / Path(args.source).expanduser(),
            destination=invocation_dir / Path(args.destination).expanduser(),
            mirror=args.mirror,
            dry_run=args.dry,
        )
        results = [manager.run(request)]
    elif args.job is not None:
        results = [manager.run_job(registry.get(args.job), registry.base_dir, dry_run=args.dry)]
    elif args.all:
        results = manager.run_all(registry, dry_run=args.dry)
    elif args.scheduled:
        results = manager.run_scheduled(registry, dry_run=args.dry)
    else:
        shell = InteractiveShell(
            manager, registry, invocation_dir=invocation_dir, dry_run=args.dry
        )
        results = shell.run()

    if len(results) > 1:
        total_execution_time = (datetime.now() - start_time).total_seconds()
        logger.info("\n" + format_backup_summary(results, total_execution_time))

    if any(not result.success for result in results):
        logger.warning("Some backups failed - check logs for details")
        return 2
    return 0


def main(argv: list[str] | None = None, runner=None) -> int:
    """Main application entry point."""
    start_time = datetime.now()
    args = parse_arguments(argv)
    invocation_dir = Path.cwd()
    log_dir = (invocation_dir / Path(args.log_dir).expanduser()).resolve()

    logger = setup_logging(log_dir)
    prune_logs(log_dir, SESSION_LOG_PATTERN, MAX_SESSION_LOGS)

    try:
        if args.logs:
            return 0 if open_log_directory(log_dir) else 1
        if args.init is not None:
            return init_config(args.init)

        config_path = resolve_config_path(args.config)
        if config_path is not None:
            registry = load_config(config_path)
            logger.setLevel(registry.log_level)
            logger.info(f"Configuration loaded from {config_path} with {len(registry)} jobs")
        else:
            registry = JobRegistry()
            logger.info("No configuration file found; only manual backups are available")

        manager_kwargs = {"runner": runner} if runner is not None else {}
        manager = BackupManager(log_dir, **manager_kwargs)

        # Relative job paths resolve against the config file's directory.
        scope = working_directory(config_path.parent) if config_path is not None else nullcontext()
        with scope:
            return dispatch(args, registry, manager, invocation_dir, logger)

    except FileNotFoundError as e:
        error_msg = f"Configuration file error: {e}"
        print(f"ERROR: {error_msg}", file=sys.stderr)
        logger.critical(error_msg)
        return 1

    except (MalformedConfig, JobValidationError) as e:
        error_msg = f"Configuration validation error: {e}"
        print(f"ERROR: {error_msg}", file=sys.stderr)
        logger.critical(error_msg)
        return 1

    except OSError as e:
        error_msg = f"File system error: {e}"
        print(f"ERROR: {error_msg}", file=sys.stderr)
        logger.critical(error_msg)
        return 1

    except (JobNotFound, NoConfigLoaded) as e:
        error_msg = f"Job selection error: {e}"
        print(f"ERROR: {error_msg}", file=sys.stderr)
        logger.critical(error_msg)
        return 1

    except KeyboardInterrupt:
        error_msg = "Backup process interrupted by user"
        print(f"\nINTERRUPTED: {error_msg}", file=sys.stderr)
        logger.warning(error_msg)
        return 130

    finally:
        total_time = (datetime.now() - start_time).total_seconds()
        logger.info(f"robomirror finished in {total_time:.2f} seconds")
        shutdown_logging()


def main_cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    main_cli()
