"""
Host-side secret generation.

Creates the files Compose mounts as secrets. Existing strong values are
kept; blank, placeholder or short ones are regenerated. Values are never
printed.
"""

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from kindle.errors import PolicyViolationError
from kindle.logging import get_kindle_logger
from kindle.policy import validate_admin_identity
from kindle.secrets import parse_bundle

logger = get_kindle_logger(__name__)

ROOT_PASSWORD_FILE = "db_root_password.txt"
DB_PASSWORD_FILE = "db_password.txt"
CREDENTIALS_FILE = "credentials.txt"

PLACEHOLDERS = {"rootpass123", "wppass123", "admin123", "user123"}
MIN_PASSWORD_LENGTH = 12
MIN_USER_PASSWORD_LENGTH = 8

DEFAULT_CREDENTIALS = {
    "WP_ADMIN_USER": "siteowner",
    "WP_ADMIN_EMAIL": "owner@example.com",
    "WP_USER": "writer",
    "WP_USER_EMAIL": "writer@example.com",
}


@dataclass
class SecretsReport:
    """Which files were created, replaced or kept."""
    created: List[str] = field(default_factory=list)
    replaced: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)


def random_hex(nbytes: int = 24) -> str:
    return secrets.token_hex(nbytes)


def is_weak(value: str, min_length: int = MIN_PASSWORD_LENGTH) -> bool:
    return not value or value in PLACEHOLDERS or len(value) < min_length


def _write_private(path: Path, content: str) -> None:
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(content)
    os.chmod(path, 0o600)


def _ensure_password_file(path: Path, report: SecretsReport) -> None:
    if path.exists():
        existing = path.read_text().strip()
        if not is_weak(existing):
            logger.info("Keeping existing %s", path.name)
            report.kept.append(path.name)
            os.chmod(path, 0o600)
            return
        logger.info("Replacing weak or placeholder %s", path.name)
        report.replaced.append(path.name)
    else:
        logger.info("Creating %s", path.name)
        report.created.append(path.name)

    _write_private(path, random_hex(24) + "\n")


def merge_credentials(existing: Dict[str, str]) -> Dict[str, str]:
    """
    Combine an existing credential bundle with defaults.

    Keeps non-empty existing identities and strong passwords; an
    administrator name that breaks the identity policy is replaced.
    """
    values = dict(DEFAULT_CREDENTIALS)
    values["WP_ADMIN_PASSWORD"] = random_hex(24)
    values["WP_USER_PASSWORD"] = random_hex(20)

    admin = existing.get("WP_ADMIN_USER", "")
    if admin:
        try:
            values["WP_ADMIN_USER"] = validate_admin_identity(admin)
        except PolicyViolationError:
            logger.warning(
                "Existing WP_ADMIN_USER is not allowed, replacing it with %s",
                DEFAULT_CREDENTIALS["WP_ADMIN_USER"],
            )

    for key in ("WP_ADMIN_EMAIL", "WP_USER", "WP_USER_EMAIL"):
        if existing.get(key):
            values[key] = existing[key]

    if not is_weak(existing.get("WP_ADMIN_PASSWORD", "")):
        values["WP_ADMIN_PASSWORD"] = existing["WP_ADMIN_PASSWORD"]
    if not is_weak(existing.get("WP_USER_PASSWORD", ""), MIN_USER_PASSWORD_LENGTH):
        values["WP_USER_PASSWORD"] = existing["WP_USER_PASSWORD"]

    return values


def ensure_secrets(secrets_dir: str) -> SecretsReport:
    """
    Create or refresh all secret files under secrets_dir.

    Returns:
        SecretsReport naming what happened to each file
    """
    directory = Path(secrets_dir)
    directory.mkdir(parents=True, exist_ok=True)
    report = SecretsReport()

    _ensure_password_file(directory / ROOT_PASSWORD_FILE, report)
    _ensure_password_file(directory / DB_PASSWORD_FILE, report)

    cred_path = directory / CREDENTIALS_FILE
    existing = parse_bundle(cred_path.read_text()) if cred_path.exists() else {}
    values = merge_credentials(existing)

    order = ("WP_ADMIN_USER", "WP_ADMIN_PASSWORD", "WP_ADMIN_EMAIL",
             "WP_USER", "WP_USER_PASSWORD", "WP_USER_EMAIL")
    content = "".join(f"{key}={values[key]}\n" for key in order)

    if cred_path.exists():
        if existing == values:
            report.kept.append(CREDENTIALS_FILE)
        else:
            report.replaced.append(CREDENTIALS_FILE)
    else:
        report.created.append(CREDENTIALS_FILE)
    _write_private(cred_path, content)

    logger.info("Secrets ready in %s", directory)
    return report
