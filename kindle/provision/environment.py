"""
Host-side .env and data directory preparation.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from kindle.config import load_env_file
from kindle.logging import get_kindle_logger

logger = get_kindle_logger(__name__)

PLACEHOLDER_DATA_PATH = "/home/login/data"
ENV_KEYS = ("DOMAIN_NAME", "MYSQL_DATABASE", "MYSQL_USER", "DATA_PATH")


def default_env(home: Optional[str] = None) -> Dict[str, str]:
    home = home or str(Path.home())
    return {
        "DOMAIN_NAME": "localhost",
        "MYSQL_DATABASE": "wordpress",
        "MYSQL_USER": "wpuser",
        "DATA_PATH": os.path.join(home, "data"),
    }


def ensure_env_file(path: str, defaults: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Write the Compose .env file, preserving existing non-empty values.

    A DATA_PATH still pointing at the /home/login/data placeholder is
    replaced with the default.

    Returns:
        The values written
    """
    values = dict(defaults or default_env())
    env_path = Path(path)

    if env_path.exists():
        logger.info("Updating %s (preserving existing values)", env_path)
        current = load_env_file(path)
        for key in ENV_KEYS:
            value = current.get(key, "")
            if not value:
                continue
            if key == "DATA_PATH" and PLACEHOLDER_DATA_PATH in value:
                logger.warning("Replacing placeholder DATA_PATH with %s", values[key])
                continue
            values[key] = value
    else:
        logger.info("Creating %s", env_path)

    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.write_text(
        "# Domain configuration\n"
        f"DOMAIN_NAME={values['DOMAIN_NAME']}\n"
        "\n"
        "# Database (non-sensitive)\n"
        f"MYSQL_DATABASE={values['MYSQL_DATABASE']}\n"
        f"MYSQL_USER={values['MYSQL_USER']}\n"
        "\n"
        "# Host bind-mount base path for volumes\n"
        f"DATA_PATH={values['DATA_PATH']}\n"
    )
    return values


def prepare_data_dirs(data_path: str) -> None:
    """Create the bind-mount directories for the two stateful services."""
    base = Path(data_path)
    for name, mode in (("wordpress", 0o755), ("mariadb", 0o750)):
        directory = base / name
        directory.mkdir(parents=True, exist_ok=True)
        os.chmod(directory, mode)
    os.chmod(base, 0o750)
    logger.info("Data directories ready under %s", base)
