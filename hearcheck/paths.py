"""Where hearcheck keeps its settings and log file."""

import os
import platform

APP_NAME = "hearcheck"
DATA_DIR_ENV = "HEARCHECK_DATA_DIR"


def _platform_base() -> str:
    system = platform.system().lower()
    if "windows" in system:
        return os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA") or os.path.expanduser("~")
    if "darwin" in system:
        return os.path.expanduser("~/Library/Application Support")
    return os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")


def get_app_data_dir(create=True):
    path = os.environ.get(DATA_DIR_ENV) or os.path.join(_platform_base(), APP_NAME)
    if create:
        os.makedirs(path, exist_ok=True)
    return path


def path_settings():
    return os.path.join(get_app_data_dir(True), "settings.json")


def get_log_file_path() -> str:
    return os.path.join(get_app_data_dir(True), "hearcheck.log")


def default_export_dir() -> str:
    """~/Documents when it exists, else the working directory."""
    docs = os.path.join(os.path.expanduser("~"), "Documents")
    return docs if os.path.isdir(docs) else os.getcwd()
