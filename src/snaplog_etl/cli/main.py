"""Argument parsing for the ``snaplog-etl`` command."""

import argparse

from snaplog_etl.cli.run_etl import run_etl_pipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snaplog-etl",
        description="Decode NDT web100 snaplogs into warehouse rows",
    )
    parser.add_argument("--config", help="Path to user config file")
    parser.add_argument("--input-dir", help="Directory containing test archives")
    parser.add_argument("--mode", choices=["batch", "watch"], help="Override mode")
    parser.add_argument("--base-dir", help="Output directory")
    parser.add_argument("--schema-path", help="Variable schema file (default: bundled tcp-kis.txt)")
    parser.add_argument("--num-workers", type=int, help="Number of processor threads")
    parser.add_argument("--poll-interval", type=int, help="Seconds between scans (implies watch)")
    parser.add_argument("--max-runtime", type=int, help="Max runtime in minutes (watch)")
    parser.add_argument("--rerun", action="store_true", help="Delete output directories before running")
    parser.add_argument("--retry-failed", action="store_true", help="Process previously failed archives again")
    parser.add_argument("--dry-run", action="store_true", help="Keep rows in memory, write no warehouse")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    run_etl_pipeline(
        args.config,
        cli_args={
            "input_dir": args.input_dir,
            "mode": args.mode,
            "base_dir": args.base_dir,
            "schema_path": args.schema_path,
            "num_workers": args.num_workers,
            "poll_interval_sec": args.poll_interval,
        },
        max_runtime=args.max_runtime,
        rerun=args.rerun,
        retry_failed=args.retry_failed,
        dry_run=args.dry_run,
        verbose=args.verbose,
    )


if __name__ == "__main__":
    main()
