"""
================================================================================
netdot2cacti Command Line
================================================================================

Adds and updates devices, graphs and trees in Cacti, based on Netdot
information. Run it periodically (e.g. from cron) on the Cacti server.

Usage:
------
    # Sync from the Netdot database:
    netdot2cacti

    # Only update devices and tree, no graphs:
    netdot2cacti --no-graphs

    # Sync from a flat file instead of Netdot:
    netdot2cacti-file --file=devices.txt

Exit codes:
-----------
    0  success, or help displayed
    1  invalid argument, configuration error, database failure,
       invalid device record or failed Cacti change
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .cacti_client import CactiClient
from .config import load_config
from .errors import SyncError
from .logger import get_logger, setup_logger
from .netdot_source import FlatFileSource, NetdotSource, group_records
from .sync_engine import SyncEngine


DESCRIPTION = (
    "Command line utility to add and update devices, graphs and trees in Cacti, "
    "based on Netdot information"
)

EPILOG = """
Flat file format (one device per line):
  externalId;description;address;templateId;group;disable;snmpVersion;community
"""


class SyncArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with 1 and full help on a bad argument."""

    def error(self, message):
        sys.stderr.write(f"ERROR: {message}\n\n")
        self.print_help(sys.stderr)
        sys.exit(1)


def build_parser(file_mode: bool = False) -> argparse.ArgumentParser:
    prog = "netdot2cacti-file" if file_mode else "netdot2cacti"
    parser = SyncArgumentParser(
        prog=prog,
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    parser.add_argument(
        "--file",
        metavar="PATH",
        required=file_mode,
        help="Read devices from a ';'-delimited file instead of the Netdot database",
    )
    parser.add_argument(
        "--no-graphs",
        action="store_true",
        help="Do not add graphs, only update devices and tree",
    )
    parser.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Enable debugging output",
    )
    parser.add_argument(
        "--env-file",
        metavar="PATH",
        help="Settings file (default: netdot2cacti.env)",
    )
    return parser


# =============================================================================
# MAIN SYNC FUNCTION
# =============================================================================

def run_sync(file: Optional[str] = None, no_graphs: bool = False,
             debug: bool = False, env_file: Optional[str] = None) -> int:
    """
    Execute one Netdot to Cacti synchronization.

    Args:
        file: Flat file to read instead of the Netdot database
        no_graphs: Skip graph creation
        debug: Log at DEBUG level
        env_file: Settings file

    Returns:
        Process exit code
    """
    setup_logger(level=logging.DEBUG if debug else logging.INFO)
    logger = get_logger("netdot2cacti.sync")

    logger.info("=" * 70)
    logger.info("NETDOT TO CACTI SYNC")
    logger.info(f"Source: {file or 'Netdot database'}")
    logger.info(f"Graphs: {'disabled' if no_graphs else 'enabled'}")
    logger.info("=" * 70)

    try:
        config = load_config(env_file, require_netdot=file is None)

        source = FlatFileSource(Path(file)) if file else NetdotSource.from_config(config)
        try:
            groups = group_records(source.load())
        finally:
            source.close()

        client = CactiClient.from_config(config)
        try:
            engine = SyncEngine(client, config, no_graphs=no_graphs)
            report = engine.run(groups)
        finally:
            client.close()

    except SyncError as e:
        logger.error(str(e))
        return 1

    logger.info("=" * 70)
    logger.info("SYNC COMPLETE")
    logger.info(f"  Headers created: {report.headers_created}")
    logger.info(f"  Hosts created: {report.hosts_created}")
    logger.info(f"  Hosts updated: {report.hosts_updated}")
    logger.info(f"  Hosts unchanged: {report.hosts_unchanged}")
    logger.info(f"  Host nodes created: {report.leaves_created}")
    logger.info(f"  Host nodes moved: {report.leaves_moved}")
    logger.info(f"  Graphs created: {report.graphs_created}")
    logger.info(f"  Nodes deleted: {report.leaves_deleted + report.headers_deleted}")
    logger.info(f"  Skipped (disabled): {report.skipped_disabled}")
    logger.info(f"  Conflicts: {report.conflicts}")

    results = report.to_dict()
    results["completed"] = datetime.now().isoformat()
    results["source"] = file or "netdot"

    results_file = config.output_dir / f"sync_results_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
    results_file.parent.mkdir(parents=True, exist_ok=True)
    with open(results_file, "w", encoding="utf-8") as f:
        json.dump(results, f, indent=2)
    logger.info(f"  Results saved to: {results_file}")

    return 0


# =============================================================================
# COMMAND LINE INTERFACE
# =============================================================================

def run(argv: Optional[List[str]] = None, file_mode: bool = False) -> int:
    """Parse arguments and run the sync; returns the exit code."""
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser(file_mode)

    # The file variant cannot do anything without --file
    if file_mode and not argv:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)
    return run_sync(
        file=args.file,
        no_graphs=args.no_graphs,
        debug=args.debug,
        env_file=args.env_file,
    )


def main():
    """Entry point of the Netdot database variant."""
    sys.exit(run())


def main_file():
    """Entry point of the flat-file variant."""
    sys.exit(run(file_mode=True))


if __name__ == "__main__":
    main()
