"""
Reverse-proxy configuration steps.
"""

import re
from typing import Any, Dict, List, Optional

from kindle.core import Plan, Step

SERVER_NAME_PATTERN = re.compile(r"(^\s*server_name)\s+[^;]*;", re.MULTILINE)


class ServerNameRewrite(Step):
    """
    Point every `server_name` directive of a site file at the given names.

    A missing site file is not an error; the image may ship its own.

    Example:
        ServerNameRewrite("/etc/nginx/http.d/default.conf",
                          ["example.org", "localhost", "127.0.0.1"])
    """

    def __init__(self, conf_path: str, names: List[str], **options):
        super().__init__(conf_path, **options)

        if not names:
            raise ValueError("at least one server name is required")
        for name in names:
            if not re.match(r"^[A-Za-z0-9_.*-]+$", name):
                raise ValueError(f"invalid server name: {name!r}")

        self.conf_path = conf_path
        self.names = list(names)

    def step_type(self) -> str:
        return "server_name"

    def _render(self, content: str) -> str:
        line = " ".join(self.names)
        return SERVER_NAME_PATTERN.sub(lambda m: f"{m.group(1)} {line};", content)

    def _read(self) -> Optional[str]:
        if not self.transport.file_exists(self.conf_path):
            return None
        return self.transport.read_file(self.conf_path).decode("utf-8")

    def check(self) -> Dict[str, Any]:
        content = self._read()
        if content is None:
            return {"done": True, "reason": f"{self.conf_path} not present"}
        if self._render(content) == content:
            return {"done": True, "reason": "server_name up to date"}
        return {"done": False, "reason": "server_name differs"}

    def apply(self, plan: Plan) -> None:
        content = self._read()
        if content is None:
            return
        self.transport.write_file(self.conf_path, self._render(content).encode("utf-8"))
