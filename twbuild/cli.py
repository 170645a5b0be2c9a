"""
cli.py

Responsibility: CLI entrypoint for twbuild.

High-level flow:
1) Load the build definition -> `BuildConfig`
2) Load plugin.info and check it matches the definition (abort on mismatch)
3) Run the requested stages (default: `bump`) in dependency order

Examples:
    twbuild                                   # bump the version only
    twbuild copy compile bundle --mode develop
    twbuild bundle --with-deps --production   # bump, copy, compile, bundle
    twbuild cleanup                           # remove dist/, bundle/, docs/, maps/
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from twbuild import __version__
from twbuild.config import DEFAULT_CONFIG_NAME, BuildContext, ConfigError, load_config
from twbuild.manifest import ManifestError
from twbuild.stages import StageError, StageGraphError
from twbuild.tasks import DEFAULT_TARGETS, Build
from twbuild.version import VersionError

logger = logging.getLogger("twbuild")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="twbuild",
        description="Build, version and bundle a TiddlyWiki plugin for drag & drop installation",
    )
    p.add_argument("stages", nargs="*", help=f"Stages to run (default: {' '.join(DEFAULT_TARGETS)})")
    p.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_NAME,
        help=f"Build definition file (default: {DEFAULT_CONFIG_NAME})",
    )
    p.add_argument("--production", action="store_true", help="Run in production mode (minify, create docs)")
    p.add_argument(
        "--mode",
        default=None,
        help='Build mode inserted into the version, e.g. "develop" -> 1.2.5-develop+371 ("master" adds nothing)',
    )
    p.add_argument("--with-deps", action="store_true", help="Also run the stages the requested stages require")
    p.add_argument("-j", "--jobs", type=int, default=1, help="Run up to N independent stages at once (default: 1)")
    p.add_argument("--list", action="store_true", help="List the available stages and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _list_stages(build: Build) -> None:
    for stage in build.graph.stages():
        deps = ", ".join(stage.requires)
        suffix = f" (requires: {deps})" if deps else ""
        print(f"{stage.name:<10} {stage.description}{suffix}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(bool(args.verbose))

    if args.jobs < 1:
        parser.error("--jobs must be at least 1")

    try:
        config = load_config(Path(args.config))
        context = BuildContext(
            production=bool(args.production),
            mode=args.mode,
            auto_increment_build=config.auto_increment_build,
        )
        build = Build(config, context)

        if args.list:
            _list_stages(build)
            return 0

        targets = args.stages or list(DEFAULT_TARGETS)
        completed = build.run(targets, with_dependencies=bool(args.with_deps), jobs=args.jobs)
        logger.info("Done: %s (version %s)", ", ".join(completed), build.manifest.version)
        return 0

    except StageError as e:
        print(f"Error: stage '{e.stage}' failed: {e.cause}", file=sys.stderr)
        if args.verbose:
            logger.exception("Stage '%s' failed", e.stage)
        return 1
    except (ConfigError, ManifestError, StageGraphError, VersionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
