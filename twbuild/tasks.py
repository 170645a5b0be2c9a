"""
tasks.py

Responsibility: The concrete build stages of a plugin and how they are wired.

Stages (see `Build.graph`):
- cleanup:  remove every output directory
- bump:     derive and persist the next version
- copy:     copy files that need no processing into dist
- compile:  run the configured compiler (and minifier in production) on scripts
- validate: run the configured syntax checker
- docs:     run the configured documentation generator (production only)
- bundle:   pack dist into the importable JSON artifact

The external tools are configured as argument lists; each argument is a Jinja2
template rendered with the stage context (paths, namespace, version, flags).
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from jinja2 import Environment, StrictUndefined

from twbuild.bundler import bundle
from twbuild.config import BuildConfig, BuildContext, check_namespace
from twbuild.files import copy_tree, remove_paths
from twbuild.host import PluginLoader, make_loader
from twbuild.manifest import Manifest, ManifestStore
from twbuild.stages import Stage, StageGraph

logger = logging.getLogger(__name__)

CLEANUP = "cleanup"
BUMP = "bump"
COPY = "copy"
COMPILE = "compile"
VALIDATE = "validate"
DOCS = "docs"
BUNDLE = "bundle"

DEFAULT_TARGETS = (BUMP,)

SCRIPT_PATTERNS = ("*.js",)
# Styles have no build step yet; they are neither copied nor compiled.
UNPROCESSED_PATTERNS = ("*.js", "*.scss")


class CommandError(RuntimeError):
    pass


def _run(cmd: list[str], *, cwd: Path) -> None:
    """
    Run a subprocess command, raising a CommandError on failure.
    """
    logger.debug("Running: %s", " ".join(cmd))
    try:
        subprocess.run(cmd, cwd=str(cwd), check=True, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
    except FileNotFoundError as e:
        raise CommandError(f"Command not found: {cmd[0]}") from e
    except subprocess.CalledProcessError as e:
        raise CommandError(f"Command failed: {' '.join(cmd)}\n\n{e.stdout}") from e


class Build:
    """
    One build invocation for one plugin.

    Construction loads plugin.info and checks it against the build definition;
    a mismatch raises ConfigMismatchError before any stage can run.
    """

    def __init__(
        self,
        config: BuildConfig,
        context: BuildContext,
        *,
        loader: PluginLoader | None = None,
        store: ManifestStore | None = None,
    ) -> None:
        self.config = config
        self.context = context
        self.store = store or ManifestStore(config.plugin_info_path, config.package_json)
        check_namespace(config, self.store.load())

        self.loader = loader or make_loader(config.host, cwd=config.root)
        self._jinja = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)
        self.graph = self._build_graph()

    def _build_graph(self) -> StageGraph:
        return StageGraph(
            [
                Stage(CLEANUP, self.cleanup, description="Remove all output paths"),
                Stage(BUMP, self.bump, description="Bump the plugin version in plugin.info and package.json"),
                Stage(COPY, self.copy_files, after=(CLEANUP, BUMP), description="Copy files that need no processing to dist"),
                Stage(COMPILE, self.compile_scripts, after=(CLEANUP, BUMP), description="Compile scripts and move them to dist"),
                Stage(VALIDATE, self.validate_scripts, description="Validate script syntax"),
                Stage(DOCS, self.create_docs, after=(CLEANUP, BUMP), description="Create the docs (production only)"),
                Stage(
                    BUNDLE,
                    self.bundle,
                    requires=(BUMP, COPY, COMPILE),
                    after=(CLEANUP,),
                    description="Bundle dist into an importable JSON file",
                ),
            ]
        )

    @property
    def manifest(self) -> Manifest:
        return self.store.manifest

    def run(self, targets: Iterable[str] = DEFAULT_TARGETS, *, with_dependencies: bool = False, jobs: int = 1) -> list[str]:
        return self.graph.run(list(targets), with_dependencies=with_dependencies, jobs=jobs)

    # --- external commands -------------------------------------------------

    def command_context(self) -> dict[str, Any]:
        out = self.config.output
        return {
            "root": str(self.config.root),
            "src": str(self.config.source_dir),
            "plugin_dir": str(self.config.plugin_dir),
            "dist": str(out.dist),
            "maps": str(out.maps),
            "docs": str(out.docs),
            "bundle": str(out.bundle),
            "namespace": self.config.namespace,
            "version": self.manifest.version,
            "production": self.context.production,
            "mode": self.context.mode or "",
        }

    def render_command(self, argv: Iterable[str]) -> list[str]:
        ctx = self.command_context()
        return [self._jinja.from_string(arg).render(**ctx) for arg in argv]

    def run_command(self, key: str) -> bool:
        """
        Run `commands.<key>`. Returns False when the command is not configured.
        """
        argv = self.config.commands.get(key)
        if not argv:
            return False
        _run(self.render_command(argv), cwd=self.config.root)
        return True

    # --- stages ------------------------------------------------------------

    def cleanup(self) -> list[Path]:
        removed = remove_paths(self.config.output.all())
        for path in removed:
            logger.info("Removed %s", path)
        return removed

    def bump(self) -> Manifest:
        return self.store.bump(self.context.mode, self.context.auto_increment_build)

    def copy_files(self) -> None:
        result = copy_tree(
            source_dir=self.config.source_dir,
            destination_dir=self.config.output.dist,
            exclude=UNPROCESSED_PATTERNS,
        )
        logger.info("Copied %d file(s) to %s", result.copied_files, self.config.output.dist)

    def compile_scripts(self) -> None:
        if not self.run_command("compile"):
            result = copy_tree(
                source_dir=self.config.source_dir,
                destination_dir=self.config.output.dist,
                include=SCRIPT_PATTERNS,
            )
            logger.info("No compile command configured; copied %d script(s) verbatim", result.copied_files)
        if self.context.production:
            self.run_command("minify")

    def validate_scripts(self) -> None:
        if not self.run_command("validate"):
            logger.info("No validate command configured; skipping")

    def create_docs(self) -> None:
        if not self.context.production:
            logger.info("Docs are only created in production mode; skipping")
            return
        if not self.run_command("docs"):
            logger.info("No docs command configured; skipping")

    def bundle(self) -> Path:
        return bundle(
            dist_root=self.config.output.dist,
            manifest=self.manifest,
            plugin_name=self.config.plugin_name,
            bundle_dir=self.config.output.bundle,
            loader=self.loader,
            notify=self.config.bell,
        )
