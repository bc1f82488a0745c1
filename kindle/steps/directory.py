"""
EnsureDirectory - create directories with the right mode and ownership.

Naturally idempotent: running it again on a correct directory does nothing.
"""

from typing import Any, Dict, Optional

from kindle.core import Plan, Step
from kindle.errors import CommandError


class EnsureDirectory(Step):
    """
    Directory step.

    Examples:
        EnsureDirectory("/run/mysqld", owner="mysql", group="mysql")
        EnsureDirectory("/var/lib/mysql", mode=0o750, owner="mysql")

        # Fix ownership of the whole tree (e.g. a webroot)
        EnsureDirectory("/var/www/html", owner="www-data", group="www-data",
                        recursive=True)
    """

    def __init__(
        self,
        path: str,
        mode: Optional[int] = None,
        owner: Optional[str] = None,
        group: Optional[str] = None,
        recursive: bool = False,
        **options,
    ):
        """
        Initialize directory step.

        Args:
            path: Directory path
            mode: Directory mode (e.g. 0o755)
            owner: Owner username
            group: Group name
            recursive: Apply ownership to everything below path, every run
        """
        super().__init__(path, **options)

        self.path = path
        self.mode = mode
        self.owner = owner
        self.group = group
        self.recursive = recursive

    def step_type(self) -> str:
        return "dir"

    def check(self) -> Dict[str, Any]:
        """Compare current directory state to the desired one."""
        current = self.transport.stat(self.path)

        state: Dict[str, Any] = {
            "done": False,
            "exists": current is not None,
            "mode": current["mode"] if current else None,
            "owner": current["owner"] if current else None,
            "group": current["group"] if current else None,
        }

        if current is None:
            state["reason"] = "missing"
            return state

        if current["type"] != "directory":
            state["reason"] = f"{self.path} exists and is not a directory"
            return state

        differences = []
        if self.mode is not None and current["mode"] != self.mode:
            differences.append(f"mode {oct(current['mode'])} → {oct(self.mode)}")
        if self.owner and current["owner"] != self.owner:
            differences.append(f"owner {current['owner']} → {self.owner}")
        if self.group and current["group"] != self.group:
            differences.append(f"group {current['group']} → {self.group}")

        # Nested files may have drifted even when the top directory is right
        if self.recursive and (self.owner or self.group):
            differences.append("recursive ownership")

        if differences:
            state["reason"] = ", ".join(differences)
        else:
            state["done"] = True
            state["reason"] = "up to date"
        return state

    def apply(self, plan: Plan) -> None:
        if self._actual_state.get("exists") and self.transport.stat(self.path)["type"] != "directory":
            raise NotADirectoryError(self.path)

        self.transport.make_dirs(self.path)

        if self.mode is not None:
            self.transport.set_mode(self.path, self.mode)

        if self.owner or self.group:
            spec = f"{self.owner or ''}:{self.group or ''}".rstrip(":")
            if spec.startswith(":"):
                argv = ["chgrp", self.group, self.path]
            else:
                argv = ["chown", spec, self.path]
            if self.recursive:
                argv.insert(1, "-R")

            output, code = self.transport.run_command(argv, timeout=self.context.command_timeout)
            if code != 0:
                raise CommandError(argv, code, output)
