"""
YAML configuration file loading for forum_bridge.

Finds config files by convention, expands ``!include`` directives and
``${VAR}`` / ``${VAR:-default}`` references, and merges the files so
that more specific ones win.

Usage:
    from forum_bridge.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "FORUM_BRIDGE_CONFIG"
PROJECT_DIR = ".forum_bridge"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in *value*.

    Unset variables expand to the default, or to an empty string when
    there is none.  An empty variable counts as unset.
    """

    def _expand(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_expand, value)


def _interpolate(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader with an ``!include`` tag.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    Each instance carries the chain of files being loaded so circular
    includes can be reported.
    """

    include_chain: tuple[Path, ...] = ()


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    if target in loader.include_chain:
        chain = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {loader.name})"
        )
    return load_yaml_file(target, _chain=loader.include_chain)


IncludeLoader.add_constructor("!include", _construct_include)


def load_yaml_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Load one YAML file, expanding ``!include`` relative to it."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = (*_chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``FORUM_BRIDGE_CONFIG`` env var (explicit single path)
        2. ``.forum_bridge/config.yml`` in CWD
        3. ``.forum_bridge/config.yaml`` in CWD
        4. ``~/.config/forum_bridge/config.yml``

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        explicit = Path(env_path).expanduser().resolve()
        if not explicit.exists():
            logger.warning("%s points to missing file %s", CONFIG_ENV_VAR, explicit)
        candidates.append(explicit)

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_DIR / "config.yml")
    candidates.append(cwd / PROJECT_DIR / "config.yaml")
    candidates.append(Path.home() / ".config" / "forum_bridge" / "config.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def merge_sections(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge two config dicts one level deep.

    Keys inside a section (``discord``, ``sync``...) from *override*
    replace those from *base*; everything below that is replaced whole,
    so a project's ``forum_mappings`` never mixes with a global one.
    """
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest precedence to highest.  Environment
    references are expanded after merging.  Returns an empty dict when
    no config files exist.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using environment only")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged = merge_sections(merged, data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-mapping root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate(merged)
