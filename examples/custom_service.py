"""
Custom service example - bootstrap a Redis container with kindle.

Shows how to assemble a BootstrapPlan from the reusable steps and run it
through a BootstrapSequencer, the same way the built-in services do.

Run inside the container as its entrypoint:
    python examples/custom_service.py
"""

from kindle.config import KindleConfig
from kindle.core import BootstrapContext, BootstrapPlan, BootstrapSequencer
from kindle.errors import KindleError
from kindle.logging import setup_logging
from kindle.probe import TcpTarget
from kindle.secrets import SecretLoader
from kindle.state import FileMarkerStore, OnceGuard
from kindle.steps import CommandStep, EnsureDirectory
from kindle.transport import LocalTransport

DATA_DIR = "/data"

config = KindleConfig.from_env()
setup_logging(config.log_level)

plan = BootstrapPlan(
    service="redis",
    handoff=["redis-server", "/etc/redis/redis.conf"],
    prepare=[
        EnsureDirectory(DATA_DIR, mode=0o750, owner="redis", group="redis"),
    ],
    # Wait for the database before seeding the cache from it
    dependencies=[TcpTarget(config.db_host, config.db_port)],
    marker="redis-seeded",
    steps=[
        CommandStep(
            "write-acl",
            ["redis-acl-import", "--user=app", "--password-stdin"],
            stdin_secret="redis_password",
        ),
    ],
)

context = BootstrapContext(
    config=config,
    secrets=SecretLoader.from_directory(config.secrets_dir, ["redis_password"]),
    transport=LocalTransport(),
)

try:
    BootstrapSequencer(plan, context, OnceGuard(FileMarkerStore(DATA_DIR))).run()
except KindleError as e:
    raise SystemExit(e.exit_code) from e
