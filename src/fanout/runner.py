#!/usr/bin/env python3
"""Main entry point for fanout."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import asyncssh
import yaml

from .config import load_config
from .exceptions import ExpressionError, PatternError
from .executor import Executor, SSHTransport
from .expansion import dedup, expand_all, match_all
from .known_hosts import read_known_hosts
from .models import IndexedHost, ResolvedHost
from .presenter import BlockPresenter, Summary, format_outcome, shorten_names
from .resolver import Resolver

logger = logging.getLogger(__name__)

DEFAULT_PARALLEL = 100


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a command on many SSH hosts in parallel"
    )
    parser.add_argument(
        "-e",
        "--expression",
        action="append",
        required=True,
        help="Expression to build the server list, may be repeated. "
        "List and range expansion are supported, e.g. 'web-[1:12]-io-{prod,dev}'",
    )
    parser.add_argument("-c", "--command", required=True, help="Command to execute on servers")
    parser.add_argument("-u", "--username", help="Remote user (default: config or current user)")
    parser.add_argument(
        "-k",
        "--known-hosts",
        action="store_true",
        help="Treat expressions as regexes matched against known_hosts instead of expanding them",
    )
    parser.add_argument("--known-hosts-file", type=Path, help="Override the known_hosts path")
    parser.add_argument("--code", action="store_true", help="Show exit code ONLY")
    parser.add_argument(
        "--print-output",
        action="store_true",
        help="Repeat full STDOUT/STDERR of every host in the summary",
    )
    parser.add_argument(
        "-f",
        "--noconfirm",
        action="store_true",
        help="Don't ask for confirmation",
    )
    parser.add_argument(
        "-p",
        "--parallel",
        type=positive_int,
        help=f"Maximum number of simultaneous executions (default: {DEFAULT_PARALLEL})",
    )
    parser.add_argument("--port", type=positive_int, help="SSH port (default: 22)")
    parser.add_argument("--key", type=Path, help="SSH private key (default: agent and default keys)")
    parser.add_argument("--config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("--dashboard", action="store_true", help="Run with the TUI dashboard")
    parser.add_argument("--log-level", help="Python logging level (default: INFO)")
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(message)s",
    )
    # asyncssh logs every connection at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)


def confirm(question: str) -> bool:
    try:
        answer = input(f"{question} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def collect_hosts(
    expressions: Sequence[str], use_known_hosts: bool, known_hosts_file: Path
) -> list[IndexedHost]:
    """Build the deduplicated host list from expressions or known_hosts."""
    if use_known_hosts:
        logger.info("Using %s to build server list.", known_hosts_file)
        hosts = match_all(expressions, read_known_hosts(known_hosts_file))
    else:
        logger.info("Using string expansion to build server list.")
        hosts = expand_all(expressions)
    return dedup(hosts)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (ValueError, yaml.YAMLError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    defaults = config.defaults
    configure_logging(args.log_level or defaults.log_level)

    user = args.username or defaults.user
    parallel = args.parallel or defaults.parallel
    port = args.port or defaults.port
    ssh_key = args.key.expanduser() if args.key else defaults.ssh_key
    if ssh_key and not ssh_key.exists():
        logger.error("SSH key not found: %s", ssh_key)
        return 1
    if ssh_key:
        try:
            asyncssh.read_private_key(str(ssh_key))
        except (asyncssh.KeyImportError, OSError) as e:
            logger.error("Can't load SSH key %s: %s", ssh_key, e)
            return 1

    try:
        hosts = collect_hosts(
            args.expression,
            args.known_hosts,
            args.known_hosts_file or defaults.known_hosts,
        )
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1
    except (ExpressionError, PatternError) as e:
        logger.error("%s", e)
        return 1

    if not hosts:
        logger.warning("No hosts matched. Stopped")
        return 1

    if parallel != DEFAULT_PARALLEL:
        logger.warning("Parallelism: %d thread%s.", parallel, "" if parallel == 1 else "s")

    logger.info("Matched hosts:")
    resolved = asyncio.run(Resolver().resolve(hosts))
    runnable = [host for host in resolved if host.resolved]
    unresolved = len(resolved) - len(runnable)
    if unresolved:
        logger.error("%d of %d hosts couldn't be resolved.", unresolved, len(resolved))

    if not runnable:
        logger.warning("No reachable hosts. Stopped")
        return 1

    if not args.noconfirm and not confirm(f"Continue on following {len(runnable)} servers?"):
        logger.warning("Stopped")
        return 0

    logger.info("Run command on %d servers.", len(runnable))

    executor = Executor(
        SSHTransport(port=port, ssh_key=ssh_key, connect_timeout=defaults.connect_timeout),
        user=user,
        command=args.command,
        concurrency=parallel,
        display_names=shorten_names(host.name for host in runnable),
    )

    if args.dashboard:
        return _run_dashboard(executor, resolved, args.code, args.print_output)
    return _run_headless(executor, resolved, args.code, args.print_output)


def _run_headless(
    executor: Executor, hosts: Sequence[ResolvedHost], code_only: bool, show_output: bool
) -> int:
    """Run executor, streaming host output as blocks on stdout."""
    presenter = BlockPresenter()
    summary = Summary()

    def on_batch(outcomes) -> None:
        presenter.close()
        for outcome in outcomes:
            summary.add(outcome)
            print(
                format_outcome(
                    outcome,
                    executor.display_name(outcome.host),
                    code_only=code_only,
                    show_output=show_output,
                    color=presenter.color,
                )
            )

    if not code_only:
        executor.on_output = presenter.line
    executor.on_batch = on_batch

    asyncio.run(executor.run(hosts))
    presenter.close()

    summary.unresolved = len(executor.skipped)
    print(summary.render())
    return 1 if summary.failed else 0


def _run_dashboard(
    executor: Executor, hosts: Sequence[ResolvedHost], code_only: bool, show_output: bool
) -> int:
    """Run executor inside the TUI dashboard, then print the summary."""
    from .dashboard import Dashboard

    app = Dashboard(executor, hosts)
    app.run()

    summary = Summary(unresolved=sum(1 for host in hosts if not host.resolved))
    # Outcomes of batches finished before an early quit are kept too
    outcomes = list(executor.outcomes)
    for outcome in outcomes:
        summary.add(outcome)
        print(
            format_outcome(
                outcome,
                executor.display_name(outcome.host),
                code_only=code_only,
                show_output=show_output,
            )
        )
    print(summary.render())
    if len(outcomes) < len(hosts) - summary.unresolved:
        print("Dashboard closed before all hosts finished", file=sys.stderr)
        return 1
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
