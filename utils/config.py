import copy
import os
import platform

import yaml

# Built-in defaults for the 'fieldmap' section of config.yaml
FIELDMAP_DEFAULTS = {
    "max_concurrency": 5,
    "search_field": "",
    "target_value": "",
    "request_timeout_seconds": 30,
    "ssl_verification": "enabled",
    "list_config": {
        "list_path": "data.list",
        "total_path": "data.total",
        "page_path": "data.page",
        "page_size_path": "data.pageSize",
    },
    "log_buffer_size": 1000,
    "log_level": "INFO",
}


def _get_repo_root() -> str:
    # Assuming this file is at 'repo/utils/config.py', we go up one level.
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def load_config():
    override = os.getenv("FIELDMAP_CONFIG")
    if override:
        if not os.path.exists(override):
            raise FileNotFoundError(f"Configuration file set by FIELDMAP_CONFIG not found: {override}")
        return _read_yaml(override)

    repo_root = _get_repo_root()

    # Platform-specific config mapping
    config_map = {
        'Darwin': 'config.mac.yaml',
        'Windows': 'config.windows.yaml'
    }

    system = platform.system()
    platform_config = config_map.get(system)

    # Use platform-specific config if it exists, otherwise fall back to config.yaml
    candidate_files = [platform_config, 'config.yaml'] if platform_config else ['config.yaml']

    for filename in candidate_files:
        config_path = os.path.join(repo_root, filename)
        if os.path.exists(config_path):
            return _read_yaml(config_path)

    raise FileNotFoundError("No valid configuration file found (checked platform-specific and default).")


def _read_yaml(config_path: str) -> dict:
    with open(config_path, 'r') as file:
        try:
            return yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise Exception(f"Error parsing '{os.path.basename(config_path)}': {e}")


def load_fieldmap_config(config: dict = None) -> dict:
    """
    Returns the 'fieldmap' section of the configuration merged over FIELDMAP_DEFAULTS.

    Nested 'list_config' keys are merged individually so a config file may
    override only 'list_path' and keep the default pagination paths.
    """
    if config is None:
        config = load_config()

    section = (config or {}).get("fieldmap") or {}
    merged = copy.deepcopy(FIELDMAP_DEFAULTS)
    for key, value in section.items():
        if key == "list_config" and isinstance(value, dict):
            merged["list_config"].update(value)
        else:
            merged[key] = value
    return merged


if __name__ == '__main__':
    # For testing purposes, print the merged field mapping configuration.
    print("Loaded fieldmap configuration:")
    print(load_fieldmap_config())
