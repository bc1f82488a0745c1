"""
Database container bootstrap.

First start: install the system tables, then provision root, the
application database and its user. Every start: make sure the runtime
directories exist, then exec mysqld.
"""

from kindle.config import KindleConfig
from kindle.core import BootstrapPlan
from kindle.steps import EnsureDirectory, InstallDataDirectory, ProvisionDatabase

MARKER = "mariadb-initialized"
SECRET_NAMES = ("db_root_password", "db_password")


def build_plan(config: KindleConfig) -> BootstrapPlan:
    settings = config.mariadb
    owner = dict(owner=settings.user, group=settings.user)

    return BootstrapPlan(
        service="mariadb",
        handoff=settings.handoff,
        prepare=[
            EnsureDirectory(settings.log_dir, **owner),
            EnsureDirectory(settings.run_dir, **owner),
            EnsureDirectory(settings.datadir, mode=0o750, **owner),
        ],
        marker=MARKER,
        steps=[
            InstallDataDirectory(settings.datadir, user=settings.user),
            ProvisionDatabase(
                datadir=settings.datadir,
                socket_path=settings.socket,
                database=config.db_name,
                app_user=config.db_user,
                os_user=settings.user,
            ),
        ],
    )


def marker_directory(config: KindleConfig) -> str:
    return config.mariadb.datadir
