"""repbuild CLI: incremental builds of declared file pipelines."""

import argparse
import json
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path

from repbuild.kernel.errors import RepbuildError


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def _configure_logging(args) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _load(args):
    from .api import load_project

    if args.file is not None:
        source, root = args.file, args.directory
    else:
        source, root = args.directory or Path("."), None
    return load_project(
        source,
        root=root,
        jobs=getattr(args, "jobs", None),
        state_dir=args.state_dir,
    )


def _run_clean(project, targets, quiet: bool) -> int:
    from .api import clean

    report = clean(project, targets or None)
    if not quiet:
        print(report.format_text())
    return EXIT_OK


def main(argv=None):
    """Main CLI entry point for repbuild commands."""
    try:
        repbuild_version = get_version("repbuild")
    except PackageNotFoundError:
        repbuild_version = "dev"

    parser = argparse.ArgumentParser(
        prog="repbuild",
        description="repbuild: incremental, dependency-aware builds for declared file pipelines"
    )
    parser.add_argument("--version", action="version", version=f"repbuild {repbuild_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "-f", "--file",
        type=Path,
        default=None,
        help="Path to the declaration file (defaults to repbuild.json in the project directory)"
    )
    parent_parser.add_argument(
        "-C", "--directory",
        type=Path,
        default=None,
        help="Project root (defaults to the declaration file's directory, else the current directory)"
    )
    parent_parser.add_argument(
        "--state-dir",
        default=None,
        help="Signature store directory, relative to the project root"
    )
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log staleness reasons and stage output."
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build targets (nodes, output paths or aliases; default: configured default targets)",
        parents=[parent_parser]
    )
    build_parser.add_argument("targets", nargs="*", help="Targets to build")
    build_parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove generated outputs of the targets instead of building"
    )
    build_parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        help="Number of stages to run concurrently"
    )
    build_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the build plan without running anything"
    )
    build_parser.add_argument(
        "--force",
        action="store_true",
        help="Rebuild every requested node even if fresh"
    )
    build_parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the report as JSON"
    )

    # clean command
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove generated outputs (default: all nodes)",
        parents=[parent_parser]
    )
    clean_parser.add_argument("targets", nargs="*", help="Targets to clean")

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Show which nodes are stale and why",
        parents=[parent_parser]
    )
    status_parser.add_argument("targets", nargs="*", help="Targets to check")

    # list command
    subparsers.add_parser(
        "list",
        help="List declared nodes and aliases",
        parents=[parent_parser]
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(EXIT_USAGE)

    _configure_logging(args)

    try:
        project = _load(args)

        if args.command == "build" and args.clean:
            sys.exit(_run_clean(project, args.targets, args.quiet))

        elif args.command == "build":
            from .api import build

            report = build(
                project,
                args.targets or None,
                force=args.force,
                dry_run=args.dry_run,
            )
            if args.as_json:
                print(json.dumps(report.model_dump(mode="json"), indent=2))
            elif not args.quiet or not report.ok:
                print(report.format_text())
            if report.cancelled:
                sys.exit(EXIT_INTERRUPTED)
            sys.exit(EXIT_OK if report.ok else EXIT_FAILED)

        elif args.command == "clean":
            sys.exit(_run_clean(project, args.targets, args.quiet))

        elif args.command == "status":
            from .api import status

            states = status(project, args.targets or None)
            stale = [s for s in states if s.stale]
            if not args.quiet:
                width = max((len(s.node_id) for s in states), default=0)
                for s in states:
                    print(f"  {s.node_id.ljust(width)}  {s.describe()}")
                print(f"{len(stale)} of {len(states)} node(s) stale")
            sys.exit(EXIT_OK)

        elif args.command == "list":
            from .api import list_targets

            listing = list_targets(project)
            print("Nodes:")
            for node_id, outputs in listing["nodes"].items():
                print(f"  {node_id}: {', '.join(outputs)}")
            print("Aliases:")
            for name, members in listing["aliases"].items():
                print(f"  {name}: {', '.join(members)}")
            sys.exit(EXIT_OK)

    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except RepbuildError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)


if __name__ == "__main__":
    main()
