#!/usr/bin/env python3
"""
clusterctl: cluster metadata command-line interface.

Commands:
    edit-config <name> <file> [-y]   Replace a cluster's topology with <file>
    register <name> <file>           Create the metadata record of a new cluster
    show-config <name>               Print the stored topology (canonical form)
    list                             List registered clusters

Exit codes: 0 success, 1 failure, 2 usage error, 130 aborted by the operator.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from clusterledger.codec import TopologyCodec
from clusterledger.config import Settings
from clusterledger.errors import (
    ChangeCancelled,
    ClusterLedgerError,
    ImmutableFieldViolation,
    MetadataValidationError,
    TopologyParseError,
)
from clusterledger.pipeline import ReconciliationPipeline
from clusterledger.store import MetadataStore

logger = logging.getLogger("clusterctl")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ABORTED = 130


class ClusterCtl:
    """Operator commands over one metadata store."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.codec = TopologyCodec()
        self.store = MetadataStore(settings.home, codec=self.codec, max_backups=settings.max_backups)

    def edit_config(self, name: str, config_file: str, skip_confirm: bool = False) -> None:
        pipeline = ReconciliationPipeline(
            self.store,
            codec=self.codec,
            prog=self.settings.prog,
            color=self.settings.color,
        )
        pipeline.change_config(name, config_file, skip_confirm=skip_confirm)

    def register(self, name: str, config_file: str, version: str = "") -> None:
        path = Path(config_file)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise TopologyParseError(f"cannot read file ({e.strerror or e})", source=config_file) from e
        topology = self.codec.decode(data, source=config_file)
        metadata = self.store.create(name, topology, version=version)
        nodes = sum(1 for _ in topology.iter_nodes())
        print(f"[PASS] Cluster registered name={name} nodes={nodes} revision={metadata.revision}")

    def show_config(self, name: str) -> None:
        try:
            metadata = self.store.load(name)
        except MetadataValidationError as e:
            logger.warning("%s", e)
            metadata = e.metadata
        sys.stdout.write(self.codec.encode(metadata.topology))

    def list_clusters(self) -> None:
        names = self.store.list_clusters()
        if not names:
            print("No clusters registered.")
            return
        for name in names:
            print(name)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clusterctl",
        description="Cluster metadata control CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--home", help="Metadata store root (default: $CLUSTERLEDGER_HOME or ~/.clusterledger)")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase log verbosity (-v info, -vv debug)")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    edit_parser = subparsers.add_parser("edit-config", help="Replace the topology of a cluster")
    edit_parser.add_argument("name", help="Cluster name")
    edit_parser.add_argument("file", help="Path to the new topology YAML")
    edit_parser.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")

    register_parser = subparsers.add_parser("register", help="Register a new cluster")
    register_parser.add_argument("name", help="Cluster name")
    register_parser.add_argument("file", help="Path to the topology YAML")
    register_parser.add_argument("--version", default="", help="Cluster software version")

    show_parser = subparsers.add_parser("show-config", help="Print the stored topology")
    show_parser.add_argument("name", help="Cluster name")

    subparsers.add_parser("list", help="List registered clusters")
    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILURE

    _configure_logging(args.verbose)

    try:
        settings = Settings.from_env()
    except ValueError as e:
        print(f"[FAIL] Invalid configuration: {e}", file=sys.stderr)
        return EXIT_FAILURE
    if args.home:
        settings.home = Path(args.home).expanduser()

    ctl = ClusterCtl(settings)
    try:
        if args.command == "edit-config":
            ctl.edit_config(args.name, args.file, skip_confirm=args.yes)
        elif args.command == "register":
            ctl.register(args.name, args.file, version=args.version)
        elif args.command == "show-config":
            ctl.show_config(args.name)
        elif args.command == "list":
            ctl.list_clusters()
    except ChangeCancelled as e:
        print(f"{e}.", file=sys.stderr)
        return EXIT_ABORTED
    except (TopologyParseError, ImmutableFieldViolation) as e:
        # edit-config has already reported these to the operator.
        if args.command != "edit-config":
            print(f"[FAIL] {e}", file=sys.stderr)
        return EXIT_FAILURE
    except ClusterLedgerError as e:
        print(f"[FAIL] {e}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
