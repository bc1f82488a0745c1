"""
Application container bootstrap.

Waits for the database, then (first start only) downloads WordPress,
writes wp-config.php, installs the site and creates the secondary user.
Hands off to php-fpm in the foreground.
"""

from kindle.config import KindleConfig
from kindle.core import BootstrapPlan
from kindle.probe import TcpTarget
from kindle.steps import (
    CreateUser,
    EnsureDirectory,
    InstallCore,
    ValidateCredentials,
    WpCli,
    create_config,
    download_core,
)

MARKER = "wordpress-installed"
SECRET_NAMES = ("db_password", "credentials")


def build_plan(config: KindleConfig) -> BootstrapPlan:
    settings = config.wordpress
    wp = WpCli(settings.webroot)

    return BootstrapPlan(
        service="wordpress",
        handoff=settings.handoff,
        prepare=[
            EnsureDirectory(settings.sessions_dir, owner=settings.user, group=settings.group),
            EnsureDirectory(
                settings.webroot,
                mode=0o755,
                owner=settings.user,
                group=settings.group,
                recursive=True,
            ),
        ],
        dependencies=[TcpTarget(config.db_host, config.db_port, on_timeout=settings.db_on_timeout)],
        marker=MARKER,
        steps=[
            ValidateCredentials(wp),
            download_core(wp),
            create_config(
                wp,
                database=config.db_name,
                user=config.db_user,
                host=f"{config.db_host}:{config.db_port}",
            ),
            InstallCore(wp, url=f"https://{config.domain_name}", title=settings.title),
            CreateUser(wp, role=settings.author_role),
            # Files written by the install belong to root until chowned
            EnsureDirectory(
                settings.webroot,
                mode=0o755,
                owner=settings.user,
                group=settings.group,
                recursive=True,
            ),
        ],
    )


def marker_directory(config: KindleConfig) -> str:
    return config.wordpress.webroot
