"""
Reusable bootstrap steps.
"""

from kindle.steps.command import CommandStep
from kindle.steps.database import InstallDataDirectory, ProvisionDatabase, TemporaryServer
from kindle.steps.directory import EnsureDirectory
from kindle.steps.nginx import ServerNameRewrite
from kindle.steps.tls import SelfSignedCertificate
from kindle.steps.wordpress import (
    CreateUser,
    InstallCore,
    ValidateCredentials,
    WpCli,
    create_config,
    download_core,
)

__all__ = [
    "CommandStep",
    "EnsureDirectory",
    "SelfSignedCertificate",
    "ServerNameRewrite",
    "InstallDataDirectory",
    "ProvisionDatabase",
    "TemporaryServer",
    "WpCli",
    "ValidateCredentials",
    "InstallCore",
    "CreateUser",
    "download_core",
    "create_config",
]
