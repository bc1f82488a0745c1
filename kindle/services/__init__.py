"""
Per-service bootstrap plans and the glue that runs them.

Each service module exposes:
- build_plan(config) -> BootstrapPlan
- marker_directory(config) -> directory for sentinel markers (or None)
- SECRET_NAMES: secrets the service reads from the secret mount
"""

from types import ModuleType
from typing import Dict, Optional

from kindle.config import KindleConfig
from kindle.core import BootstrapContext, BootstrapSequencer
from kindle.secrets import SecretLoader
from kindle.services import mariadb, nginx, wordpress
from kindle.state import FileMarkerStore, MarkerStore, OnceGuard, SqliteMarkerStore
from kindle.transport import LocalTransport, Transport

SERVICES: Dict[str, ModuleType] = {
    "mariadb": mariadb,
    "wordpress": wordpress,
    "nginx": nginx,
}


def get_service(name: str) -> ModuleType:
    try:
        return SERVICES[name]
    except KeyError:
        raise ValueError(
            f"Unknown service {name!r} (expected one of: {', '.join(SERVICES)})"
        ) from None


def marker_store(
    name: str,
    config: KindleConfig,
    state_db: Optional[str] = None,
) -> Optional[MarkerStore]:
    """
    Marker store for a service.

    Args:
        state_db: Use this SQLite database instead of sentinel files
    """
    service = get_service(name)
    if service.MARKER is None:
        return None
    if state_db:
        return SqliteMarkerStore(state_db)
    return FileMarkerStore(service.marker_directory(config))


def build_sequencer(
    name: str,
    config: KindleConfig,
    transport: Optional[Transport] = None,
    state_db: Optional[str] = None,
) -> BootstrapSequencer:
    """
    Wire a service plan to its secrets, marker store and transport.

    Example:
        config = KindleConfig.from_env()
        build_sequencer("mariadb", config).run()
    """
    service = get_service(name)
    plan = service.build_plan(config)

    context = BootstrapContext(
        config=config,
        secrets=SecretLoader.from_directory(config.secrets_dir, service.SECRET_NAMES),
        transport=transport or LocalTransport(),
    )

    store = marker_store(name, config, state_db=state_db)
    guard = OnceGuard(store) if store is not None else None

    return BootstrapSequencer(plan, context, guard)


__all__ = ["SERVICES", "get_service", "marker_store", "build_sequencer"]
