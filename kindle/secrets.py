"""
SecretLoader - read sensitive values from mounted files.

Secrets come from files only (the container secret mount), one logical
secret per file. There is deliberately no way to hand a secret to kindle
through argv or the environment: both show up in process listings.

Example:
    loader = SecretLoader.from_directory("/run/secrets",
                                         ["db_root_password", "db_password"])
    root = loader.get("db_root_password").reveal()

    creds = loader.bundle("credentials", ["WP_ADMIN_USER", "WP_ADMIN_PASSWORD"])
"""

from pathlib import Path
from typing import Dict, Iterable, Mapping, Union

from kindle.errors import EmptySecretError, MissingSecretError
from kindle.logging import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]


class Secret:
    """
    A named sensitive value.

    repr() and str() are masked so a secret that ends up in a log line or
    an exception message never prints its value. Call reveal() at the
    single point where the value is handed to a tool.
    """

    __slots__ = ("name", "_value")

    def __init__(self, name: str, value: str):
        self.name = name
        self._value = value

    def reveal(self) -> str:
        return self._value

    def __eq__(self, other):
        if isinstance(other, Secret):
            return self.name == other.name and self._value == other._value
        return NotImplemented

    def __hash__(self):
        return hash((self.name, self._value))

    def __repr__(self):
        return f"Secret({self.name!r}, '******')"

    __str__ = __repr__


class SecretLoader:
    """
    Loads secrets from files, once per loader.

    Args:
        paths: Mapping of logical name to file path
    """

    def __init__(self, paths: Mapping[str, PathLike]):
        self.paths: Dict[str, Path] = {name: Path(p) for name, p in paths.items()}
        self._cache: Dict[str, Secret] = {}
        self._bundles: Dict[str, Dict[str, str]] = {}

    @classmethod
    def from_directory(cls, directory: PathLike, names: Iterable[str]) -> "SecretLoader":
        """Map each name to a file of the same name under directory."""
        base = Path(directory)
        return cls({name: base / name for name in names})

    def _read(self, name: str) -> str:
        if name not in self.paths:
            raise KeyError(f"Unknown secret: {name}")

        path = self.paths[name]
        if not path.is_file():
            raise MissingSecretError(name, path)

        logger.debug("Reading secret %s from %s", name, path)
        return path.read_text()

    def get(self, name: str) -> Secret:
        """
        Load one secret.

        Raises:
            MissingSecretError: The file does not exist
            EmptySecretError: The file is blank after trimming
            KeyError: name was never declared
        """
        if name in self._cache:
            return self._cache[name]

        value = self._read(name).strip()
        if not value:
            raise EmptySecretError(name, self.paths[name])

        secret = Secret(name, value)
        self._cache[name] = secret
        return secret

    def load(self) -> Dict[str, Secret]:
        """Load every declared secret; fails on the first bad one."""
        return {name: self.get(name) for name in self.paths}

    def bundle(self, name: str, required_keys: Iterable[str]) -> Dict[str, Secret]:
        """
        Load a structured credential bundle (KEY=VALUE lines).

        Args:
            name: Logical secret name of the bundle file
            required_keys: Keys that must be present and non-blank

        Returns:
            Mapping of key to Secret for every key in the file

        Raises:
            MissingSecretError: File or a required key is missing
            EmptySecretError: A required key has a blank value
        """
        if name not in self._bundles:
            self._bundles[name] = parse_bundle(self._read(name))

        values = self._bundles[name]
        path = self.paths[name]

        for key in required_keys:
            if key not in values:
                raise MissingSecretError(name, path, key=key)
            if not values[key]:
                raise EmptySecretError(name, path, key=key)

        return {key: Secret(f"{name}.{key}", value) for key, value in values.items()}


def parse_bundle(text: str) -> Dict[str, str]:
    """
    Parse KEY=VALUE lines.

    Blank lines and '#' comments are skipped, a leading 'export ' is
    accepted and one pair of matching quotes around the value is removed.
    The text is never evaluated as shell.
    """
    values: Dict[str, str] = {}

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        values[key] = value

    return values
