"""
Shared fixtures.
"""

import pytest

from fakes import FakeTransport
from kindle.config import KindleConfig

CREDENTIALS = (
    "WP_ADMIN_USER=siteowner\n"
    "WP_ADMIN_PASSWORD=owner-password-123\n"
    "WP_ADMIN_EMAIL=owner@example.org\n"
    "WP_USER=writer\n"
    "WP_USER_PASSWORD=writer-password-123\n"
    "WP_USER_EMAIL=writer@example.org\n"
)


@pytest.fixture
def secrets_dir(tmp_path):
    """A secret mount holding every secret the services read."""
    directory = tmp_path / "secrets"
    directory.mkdir()
    (directory / "db_root_password").write_text("root-password-123\n")
    (directory / "db_password").write_text("app-password-123\n")
    (directory / "credentials").write_text(CREDENTIALS)
    return directory


@pytest.fixture
def config(tmp_path, secrets_dir):
    """Configuration with every path under tmp_path and short waits."""
    config = KindleConfig(
        domain_name="example.org",
        secrets_dir=str(secrets_dir),
        probe_timeout=0.5,
        probe_interval=0.05,
        command_timeout=5,
    )
    config.mariadb.datadir = str(tmp_path / "mysql")
    config.mariadb.run_dir = str(tmp_path / "run")
    config.mariadb.log_dir = str(tmp_path / "log")
    config.mariadb.socket = str(tmp_path / "run" / "mysqld.sock")
    config.wordpress.webroot = str(tmp_path / "html")
    config.wordpress.sessions_dir = str(tmp_path / "sessions")
    config.nginx.ssl_dir = str(tmp_path / "ssl")
    config.nginx.site_conf = str(tmp_path / "default.conf")
    return config


@pytest.fixture
def transport():
    return FakeTransport()
