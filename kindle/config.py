"""
Explicit configuration for kindle.

Non-secret values arrive through the container environment (Compose passes
them from srcs/.env). They are read exactly once, into a KindleConfig, and
that object is handed to every component. Secrets never live here; see
kindle.secrets.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from kindle.errors import ConfigError
from kindle.probe import ON_TIMEOUT_POLICIES

DEFAULT_SECRETS_DIR = "/run/secrets"


@dataclass
class MariaDBSettings:
    """Paths and identities of the database container."""
    datadir: str = "/var/lib/mysql"
    run_dir: str = "/run/mysqld"
    log_dir: str = "/var/log/mysql"
    socket: str = "/run/mysqld/mysqld.sock"
    user: str = "mysql"

    @property
    def handoff(self) -> List[str]:
        return ["mysqld", f"--user={self.user}", f"--datadir={self.datadir}"]


@dataclass
class WordPressSettings:
    """Paths and identities of the application container."""
    webroot: str = "/var/www/html"
    sessions_dir: str = "/var/lib/php81/sessions"
    user: str = "www-data"
    group: str = "www-data"
    title: str = "Inception WordPress"
    author_role: str = "author"
    php_fpm: str = "php-fpm81"
    db_on_timeout: str = "abort"

    @property
    def handoff(self) -> List[str]:
        return [self.php_fpm, "-F"]


@dataclass
class NginxSettings:
    """Paths and upstream of the reverse proxy container."""
    ssl_dir: str = "/etc/nginx/ssl"
    site_conf: str = "/etc/nginx/http.d/default.conf"
    upstream_host: str = "wordpress"
    upstream_port: int = 9000
    # The proxy starts even when the upstream is late; it answers 502 until then
    upstream_on_timeout: str = "proceed"
    cert_subject: str = "/C=FR/ST=Paris/L=Paris/O=42School/OU=Inception/CN={domain}"
    cert_days: int = 365
    key_bits: int = 2048

    @property
    def key_path(self) -> str:
        return os.path.join(self.ssl_dir, "nginx.key")

    @property
    def cert_path(self) -> str:
        return os.path.join(self.ssl_dir, "nginx.crt")

    @property
    def handoff(self) -> List[str]:
        return ["nginx", "-g", "daemon off;"]


@dataclass
class KindleConfig:
    """
    Top-level configuration object.

    Build it with KindleConfig.from_env() at process start and pass it
    down; nothing else in kindle reads the environment.
    """
    domain_name: str = "localhost"
    db_name: str = "wordpress"
    db_user: str = "wpuser"
    db_host: str = "mariadb"
    db_port: int = 3306
    data_path: str = "/home/login/data"
    secrets_dir: str = DEFAULT_SECRETS_DIR
    probe_timeout: float = 120.0
    probe_interval: float = 1.0
    command_timeout: float = 300.0
    log_level: str = "INFO"
    mariadb: MariaDBSettings = field(default_factory=MariaDBSettings)
    wordpress: WordPressSettings = field(default_factory=WordPressSettings)
    nginx: NginxSettings = field(default_factory=NginxSettings)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "KindleConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Raises:
            ConfigError: If a numeric value cannot be parsed
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        db_host, db_port = parse_host_port(
            env.get("WORDPRESS_DB_HOST", f"{defaults.db_host}:{defaults.db_port}"),
            default_port=defaults.db_port,
        )

        config = cls(
            domain_name=env.get("DOMAIN_NAME") or defaults.domain_name,
            db_name=env.get("MYSQL_DATABASE") or env.get("WORDPRESS_DB_NAME") or defaults.db_name,
            db_user=env.get("MYSQL_USER") or env.get("WORDPRESS_DB_USER") or defaults.db_user,
            db_host=db_host,
            db_port=db_port,
            data_path=env.get("DATA_PATH") or defaults.data_path,
            secrets_dir=env.get("KINDLE_SECRETS_DIR") or defaults.secrets_dir,
            probe_timeout=_float(env, "KINDLE_PROBE_TIMEOUT", defaults.probe_timeout),
            probe_interval=_float(env, "KINDLE_PROBE_INTERVAL", defaults.probe_interval),
            command_timeout=_float(env, "KINDLE_COMMAND_TIMEOUT", defaults.command_timeout),
            log_level=env.get("KINDLE_LOG_LEVEL") or defaults.log_level,
        )

        if env.get("KINDLE_DB_ON_TIMEOUT"):
            config.wordpress.db_on_timeout = env["KINDLE_DB_ON_TIMEOUT"].strip().lower()
        if env.get("NGINX_UPSTREAM_ON_TIMEOUT"):
            config.nginx.upstream_on_timeout = env["NGINX_UPSTREAM_ON_TIMEOUT"].strip().lower()

        if "NGINX_UPSTREAM" in env:
            host, port = parse_host_port(env["NGINX_UPSTREAM"], default_port=9000)
            config.nginx.upstream_host = host
            config.nginx.upstream_port = port

        config.validate()
        return config

    def validate(self) -> None:
        """Check value ranges."""
        if self.probe_timeout <= 0:
            raise ConfigError("probe timeout must be positive")
        if self.probe_interval <= 0:
            raise ConfigError("probe interval must be positive")
        if self.command_timeout <= 0:
            raise ConfigError("command timeout must be positive")
        for key, policy in (
            ("KINDLE_DB_ON_TIMEOUT", self.wordpress.db_on_timeout),
            ("NGINX_UPSTREAM_ON_TIMEOUT", self.nginx.upstream_on_timeout),
        ):
            if policy not in ON_TIMEOUT_POLICIES:
                raise ConfigError(f"{key} must be abort or proceed, got {policy!r}")

    def secret_path(self, name: str) -> Path:
        """Path of a mounted secret file."""
        return Path(self.secrets_dir) / name


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


def parse_host_port(value: str, default_port: int) -> Tuple[str, int]:
    """
    Split "host:port" into its parts.

    Example:
        parse_host_port("mariadb:3306", 3306) -> ("mariadb", 3306)
        parse_host_port("mariadb", 3306) -> ("mariadb", 3306)
    """
    value = value.strip()
    if not value:
        raise ConfigError("empty host")

    host, sep, port = value.rpartition(":")
    if not sep:
        return value, default_port
    if not host:
        raise ConfigError(f"missing host in {value!r}")
    try:
        port_number = int(port)
    except ValueError:
        raise ConfigError(f"invalid port in {value!r}") from None
    if not 0 < port_number < 65536:
        raise ConfigError(f"port out of range in {value!r}")
    return host, port_number


def load_env_file(path: str) -> Dict[str, str]:
    """
    Parse a docker-compose style .env file.

    Blank lines and comments are skipped; later keys win.
    """
    values: Dict[str, str] = {}
    env_path = Path(path)
    if not env_path.exists():
        return values

    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()

    return values
