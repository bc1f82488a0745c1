"""
Reverse proxy container bootstrap.

Everything here is idempotent, so there is no marker: on every start the
certificate is generated if missing, server_name is pointed at the domain,
the configuration is tested and nginx is exec'd in the foreground.
"""

from kindle.config import KindleConfig
from kindle.core import BootstrapPlan
from kindle.probe import TcpTarget
from kindle.steps import CommandStep, EnsureDirectory, SelfSignedCertificate, ServerNameRewrite

MARKER = None
SECRET_NAMES = ()


def build_plan(config: KindleConfig) -> BootstrapPlan:
    settings = config.nginx

    return BootstrapPlan(
        service="nginx",
        handoff=settings.handoff,
        dependencies=[
            TcpTarget(
                settings.upstream_host,
                settings.upstream_port,
                on_timeout=settings.upstream_on_timeout,
            ),
        ],
        steps=[
            EnsureDirectory(settings.ssl_dir, mode=0o755),
            SelfSignedCertificate(
                settings.key_path,
                settings.cert_path,
                subject=settings.cert_subject.format(domain=config.domain_name),
                days=settings.cert_days,
                bits=settings.key_bits,
            ),
            ServerNameRewrite(
                settings.site_conf,
                [config.domain_name, "localhost", "127.0.0.1"],
            ),
            CommandStep("config-test", ["nginx", "-t"]),
        ],
    )


def marker_directory(config: KindleConfig) -> None:
    return None
