"""Configuration loading for cycling-motivator."""

import json
import os
from pathlib import Path

CONFIG_DIR = Path.home() / ".config" / "cycling-motivator"
CONFIG_PATH = CONFIG_DIR / "cycling-motivator.json"
LOCAL_CONFIG_PATH = Path("cycling-motivator.json")
DATA_DIR = Path.home() / ".local" / "share" / "cycling-motivator"

DEFAULTS = {
    "routing_base_url": "https://router.project-osrm.org",
    "routing_profile": "bicycling",
    "routing_timeout": 30.0,
    "save_delay": 1.0,  # seconds
    "store": "file",
    "db_path": str(DATA_DIR / "db.json"),
    "supabase_url": None,
    "supabase_key": None,
    "default_start": [48.20967, 13.48831],  # Ried im Innkreis
    "port": 5051,
}

# Deployment settings that may come from the environment instead of a config file
ENV_OVERRIDES = {
    "routing_base_url": "OSRM_BASE_URL",
    "store": "CYCLING_MOTIVATOR_STORE",
    "db_path": "CYCLING_MOTIVATOR_DB",
    "supabase_url": "SUPABASE_URL",
    "supabase_key": "SUPABASE_KEY",
    "port": "PORT",
}


def _load_config() -> dict:
    """Load configuration from config files.

    Merges config from global and local files:
    1. ~/.config/cycling-motivator/cycling-motivator.json (global, loaded first)
    2. ./cycling-motivator.json (local, overrides global)

    Returns:
        Dict with merged config values, empty dict if no files exist.
    """
    config = {}
    for config_path in [CONFIG_PATH, LOCAL_CONFIG_PATH]:
        if config_path.exists():
            try:
                with config_path.open() as f:
                    config.update(json.load(f))
            except (json.JSONDecodeError, OSError):
                continue
    return config


def get_settings() -> dict:
    """Get effective settings: DEFAULTS, then config files, then environment variables.

    Environment variables take precedence over config files so deployments can
    point at a hosted store without editing JSON.
    """
    settings = dict(DEFAULTS)
    settings.update(_load_config())
    for key, env_var in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            settings[key] = value
    settings["port"] = int(settings["port"])
    settings["routing_timeout"] = float(settings["routing_timeout"])
    settings["save_delay"] = float(settings["save_delay"])
    return settings
