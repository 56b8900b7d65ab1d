"""Command line interface for Endeavor tools."""

import csv
import json
import logging
import os
import sys
import tomllib
from argparse import ArgumentParser, Namespace
from collections.abc import Callable, Sequence
from sys import exit

from requests import RequestException

from .errors import AuthError, EndeavorError, HTTPStatusError, SubmitBatchError
from .parser import Entry
from .session import (
    BASE_URL,
    DEFAULT_MAX_WORKERS,
    DEFAULT_TIMEOUT,
    EndeavorSession,
    SubmitOutcome,
)
from .utils import (
    build_hours_form,
    err,
    load_credentials,
    parse_id_list,
    require_entries,
)

logger = logging.getLogger(__name__)

CONFIG_PATH = "~/.config/endeavor/config.toml"
DEFAULT_CREDS_FILE = "creds.txt"
CSV_FIELDS = ["id", "date", "project_number", "customer"]


def main():
    """Main entry point for the endeavor CLI."""
    args = parse_arguments()
    config_logging(args)
    try:
        run(args)
    except KeyboardInterrupt:
        err("Interrupted")
        exit(130)
    except (EndeavorError, RequestException, ValueError) as e:
        logger.error(str(e))
        exit(1)


def run(args: Namespace) -> None:
    """Log in, then list, export or submit entries as requested."""
    config = load_config()
    username, password = load_credentials(resolve_creds_path(args, config))
    hours_form = build_hours_form(args.hours, args.overtime, args.double_time)

    with make_session(args, config) as session:
        try:
            session.login(username, password)
        except (AuthError, HTTPStatusError, RequestException) as e:
            raise AuthError(f"Failed to login: {e}") from e
        if args.verbose:
            logger.debug(f"Cookies received: {', '.join(session.cookie_names())}")

        if args.submit_ids is not None:
            submit_ids(session, parse_id_list(args.submit_ids), hours_form)
            return

        entries = session.list_pending_entries(include_future=args.all_days)
        if args.get_days_json:
            print(json.dumps([entry.to_dict() for entry in entries]))
            return
        if args.get_days_csv:
            write_csv(entries)
            return

        require_entries(entries)
        selected = select_entries(entries)
        if not selected:
            print("Selection canceled")
            return
        submit_ids(session, [entry.id for entry in selected], hours_form)


def make_session(args: Namespace, config: dict) -> EndeavorSession:
    """Build a session from command-line options, falling back to config."""
    timeout = args.timeout
    if timeout is None:
        timeout = config.get("timeout", DEFAULT_TIMEOUT)
    max_workers = args.max_workers
    if max_workers is None:
        max_workers = config.get("max_workers", DEFAULT_MAX_WORKERS)
    return EndeavorSession(
        base_url=args.base_url or config.get("base_url", BASE_URL),
        emulate_browser=args.emulate_browser,
        timeout=timeout,
        max_workers=max_workers,
    )


def submit_ids(
    session: EndeavorSession, ids: Sequence[str], hours_form: dict[str, str]
) -> None:
    """Submit ids concurrently and print one line per outcome."""
    for entry_id in dict.fromkeys(ids):
        print(f"Submitting id: {entry_id}")
    try:
        outcomes = session.submit_entries_concurrently(ids, hours_form)
    except SubmitBatchError as e:
        print_outcomes(e.outcomes)
        raise
    print_outcomes(outcomes)


def print_outcomes(outcomes: dict[str, SubmitOutcome]) -> None:
    for entry_id, outcome in outcomes.items():
        if outcome.ok:
            print(f"OK      {entry_id}")
        else:
            print(f"FAILED  {entry_id} ({outcome.step}): {outcome.error}")


def write_csv(entries: Sequence[Entry], file=None) -> None:
    if file is None:
        file = sys.stdout
    writer = csv.DictWriter(file, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()
    for entry in entries:
        writer.writerow(entry.to_dict())


def select_entries(
    entries: Sequence[Entry], input_fn: Callable[[str], str] = None
) -> list[Entry]:
    """Prompt for a selection of entries; an empty list means canceled."""
    if input_fn is None:
        input_fn = input
    for number, entry in enumerate(entries, start=1):
        print(f"{number:>3}. {entry}")
    while True:
        try:
            answer = input_fn("Select days (e.g. 1,3-5 or all): ")
        except (EOFError, KeyboardInterrupt):
            return []
        try:
            indexes = parse_selection(answer, len(entries))
        except ValueError as e:
            err(e)
            continue
        selected = [entries[i] for i in indexes]
        if selected:
            print(f"Selected days: {len(selected)}")
        return selected


def parse_selection(answer: str, count: int) -> list[int]:
    """Turn "1,3-5" or "all" into sorted zero-based indexes below count."""
    answer = answer.strip().lower()
    if answer == "all":
        return list(range(count))
    indexes = set()
    for part in parse_id_list(answer):
        first, _, last = part.partition("-")
        try:
            start = int(first)
            stop = int(last) if last else start
        except ValueError:
            raise ValueError(f"Invalid selection {part!r}") from None
        if not 1 <= start <= stop <= count:
            raise ValueError(f"Selection {part!r} is out of range 1-{count}")
        indexes.update(range(start - 1, stop))
    return sorted(indexes)


def load_config(config_path: str = CONFIG_PATH) -> dict:
    """Load the optional TOML config file, returning {} if it is absent."""
    config_path = os.path.expanduser(config_path)
    if not os.path.exists(config_path):
        return {}
    with open(config_path, "rb") as f:
        config = tomllib.load(f)
    logger.debug(f"Loaded config from {config_path}")
    return config


def resolve_creds_path(args: Namespace, config: dict) -> str:
    """Resolve the credentials file path according to resolution order."""
    # 1. Command-line option
    if args.creds_path:
        return os.path.expanduser(args.creds_path)

    # 2. Environment variable
    env_path = os.environ.get("ENDEAVOR_CREDS")
    if env_path:
        return os.path.expanduser(env_path)

    # 3. Config file
    if config.get("creds_path"):
        return os.path.expanduser(config["creds_path"])

    # 4. Fallback = creds.txt in the current directory
    return DEFAULT_CREDS_FILE


def parse_arguments(argv: Sequence[str] = None) -> Namespace:
    """Parse command line arguments."""
    parser = ArgumentParser(description="CLI for the Endeavor timesheet portal")
    parser.add_argument(
        "-c",
        "--creds-path",
        metavar="FILE",
        help="Credentials file of exactly 2 lines: username then password. "
        "Resolution order: 1. --creds-path "
        "2. $ENDEAVOR_CREDS "
        "3. config file "
        f"4. {DEFAULT_CREDS_FILE}",
    )
    parser.add_argument(
        "-a",
        "--all-days",
        action="store_true",
        help="Also show days in the future",
    )
    parser.add_argument(
        "--emulate-browser",
        action="store_true",
        help="Make the extra page requests a browser would make",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--get-days-json", action="store_true", help="Print days as JSON and exit"
    )
    mode.add_argument(
        "--get-days-csv", action="store_true", help="Print days as CSV and exit"
    )
    mode.add_argument(
        "--submit-ids", metavar="IDS", help="Comma separated list of ids to submit"
    )
    parser.add_argument(
        "--hours", default="8:00", metavar="H:MM", help="Normal hours per day"
    )
    parser.add_argument(
        "--overtime", default="0:00", metavar="H:MM", help="Overtime hours per day"
    )
    parser.add_argument(
        "--double-time",
        default="0:00",
        metavar="H:MM",
        help="Double-time hours per day",
    )
    parser.add_argument("--base-url", help=f"Portal URL (default {BASE_URL})")
    parser.add_argument(
        "--max-workers", type=int, help="Maximum concurrent submissions"
    )
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Suppress INFO and below messages"
    )
    return parser.parse_args(argv)


def config_logging(args) -> None:
    """Configure logging based on command line arguments."""
    if args.quiet:
        log_level = logging.WARNING
    elif args.verbose:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


if __name__ == "__main__":
    main()
