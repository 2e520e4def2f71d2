"""
Reading the bridge's YAML file from disk.

Relative paths are anchored at the checkout root so ``voice-bridge`` behaves
the same from any working directory. ``${VAR}`` references in the file are
expanded before parsing; credentials never come from here (see security.py).
"""

import os
import yaml
from pathlib import Path


# Checkout root: the directory holding voice_bridge/ and config/
_PROJ_DIR = Path(__file__).parent.parent.parent.resolve()


def resolve_config_path(path: str) -> str:
    """Absolute path for ``path``; relative values are joined to the checkout root."""
    if os.path.isabs(path):
        return path
    return os.path.join(_PROJ_DIR, path)


def load_yaml_with_env_expansion(path: str) -> dict:
    """
    Parse the bridge configuration at ``path`` into a plain dict.

    An empty file yields ``{}`` so every block falls back to model defaults.

    Raises:
        FileNotFoundError: nothing exists at ``path``
        yaml.YAMLError: the text does not parse, or parses to a list or scalar
            instead of the server/webhook/budget/... mapping
    """
    try:
        with open(path, 'r') as f:
            raw = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Voice bridge config not found: {path}")

    try:
        document = yaml.safe_load(os.path.expandvars(raw))
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid voice bridge YAML in {path}: {e}")

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise yaml.YAMLError(
            f"Voice bridge config {path} must be a mapping of config blocks, got {type(document).__name__}"
        )
    return document
