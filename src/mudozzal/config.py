"""
Pipeline configuration.

Settings come from configs/pipeline.yaml merged over DEFAULT_CONFIG.
API keys are read from the environment; a local .env.local is loaded first
but never overrides variables that are already set.
"""

import os
import copy
import logging
from typing import Dict, Any, Optional

import yaml
from dotenv import load_dotenv

from mudozzal.errors import MissingCredentialsError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs/pipeline.yaml"
DEFAULT_ENV_PATH = ".env.local"

# Value shipped in the .env.local template; treated as unset.
PLACEHOLDER_KEY = "your_api_key_here"

DEFAULT_CONFIG: Dict[str, Any] = {
    "paths": {
        "root_dir": ".",
        "images_dir": "raw/images",
        "manifest": "raw/manifest.json",
        "analysis": "raw/analyzed.json",
        "published": "data/memes.json",
        "published_meta": "raw/memes_with_meta.json",
        "public_assets_dir": "public/memes",
    },
    "collection": {
        "keywords": [],
        "results_per_keyword": 20,
        "min_bytes": 5000,
        "max_bytes": 10 * 1024 * 1024,
        "request_timeout": 15,
        "keyword_interval": 2.0,
        "url_interval": 0.5,
        "max_retries": 3,
    },
    "classification": {
        "model": "gemini-2.5-flash",
        "temperature": 0.3,
        "max_output_tokens": 1024,
        "request_interval": 1.5,
        "min_aspect_ratio": 0.4,
        "max_aspect_ratio": 2.5,
    },
    "publishing": {
        "image_url_prefix": "/memes",
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load the pipeline configuration.

    Args:
        config_path: Path to a YAML file. Missing file (or None) means defaults.

    Returns:
        Configuration dict with every section of DEFAULT_CONFIG present.
    """
    if not config_path or not os.path.exists(config_path):
        if config_path:
            logger.info(f"Config {config_path} not found, using defaults")
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(config_path, encoding="utf-8") as f:
        user_config = yaml.safe_load(f) or {}

    return _deep_merge(DEFAULT_CONFIG, user_config)


def load_env(env_path: str = DEFAULT_ENV_PATH) -> bool:
    """Load KEY=VALUE pairs from env_path without overriding set variables."""
    if not os.path.exists(env_path):
        return False
    return load_dotenv(env_path, override=False)


def require_env(name: str) -> str:
    """
    Return the value of a required credential.

    Raises:
        MissingCredentialsError: if the variable is unset, empty or still
        holds the template placeholder.
    """
    value = os.environ.get(name, "").strip()
    if not value or value == PLACEHOLDER_KEY:
        raise MissingCredentialsError(name)
    return value


def resolve_path(config: Dict[str, Any], key: str) -> str:
    """Resolve a paths.<key> entry against paths.root_dir."""
    paths = config["paths"]
    return os.path.join(paths["root_dir"], paths[key])
