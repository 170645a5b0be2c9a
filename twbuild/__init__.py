"""
twbuild package

Builds a TiddlyWiki plugin source tree into a single importable JSON bundle and
manages the plugin's version across builds.

Key responsibilities are split across modules:
- `config.py`: parse the YAML build definition into a typed configuration
- `version.py`: derive the next version string (pure)
- `manifest.py`: read/write plugin.info and the package descriptor
- `files.py`: deterministic copying, atomic writes, cleanup
- `host.py`: have TiddlyWiki (under Node) load a plugin folder into a record
- `bundler.py`: write the bundled artifact
- `stages.py`: dependency-ordered stage runner
- `tasks.py`: the concrete build stages
- `cli.py`: CLI entrypoint
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
