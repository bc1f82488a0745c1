"""
SelfSignedCertificate - generate the proxy's TLS key and certificate.

Uses the openssl command line tool: key, CSR, then a self-signed
certificate. Existing material is kept; the step only warns.
"""

import os
from typing import Any, Dict

from kindle.core import Plan, Step
from kindle.errors import CommandError
from kindle.logging import get_kindle_logger

logger = get_kindle_logger(__name__)


class SelfSignedCertificate(Step):
    """
    Self-signed certificate step.

    Example:
        SelfSignedCertificate("/etc/nginx/ssl/nginx.key",
                              "/etc/nginx/ssl/nginx.crt",
                              subject="/CN=example.org")
    """

    def __init__(
        self,
        key_path: str,
        cert_path: str,
        subject: str,
        days: int = 365,
        bits: int = 2048,
        **options,
    ):
        super().__init__(cert_path, **options)

        if not subject.startswith("/"):
            raise ValueError(f"subject must be in /K=V/... form, got {subject!r}")

        self.key_path = key_path
        self.cert_path = cert_path
        self.subject = subject
        self.days = days
        self.bits = bits

    @property
    def csr_path(self) -> str:
        return os.path.splitext(self.cert_path)[0] + ".csr"

    def step_type(self) -> str:
        return "tls"

    def check(self) -> Dict[str, Any]:
        key_exists = self.transport.file_exists(self.key_path)
        cert_exists = self.transport.file_exists(self.cert_path)

        if key_exists and cert_exists:
            logger.warning("Certificate %s already exists, skipping generation", self.cert_path)
            return {"done": True, "reason": "certificate exists"}

        return {"done": False, "key_exists": key_exists, "cert_exists": cert_exists}

    def apply(self, plan: Plan) -> None:
        logger.info("Generating self-signed certificate (%s)", self.subject)

        # A lone key or certificate is unusable; regenerate both
        self._run(["openssl", "genrsa", "-out", self.key_path, str(self.bits)])
        self._run([
            "openssl", "req", "-new",
            "-key", self.key_path,
            "-out", self.csr_path,
            "-subj", self.subject,
        ])
        self._run([
            "openssl", "x509", "-req",
            "-days", str(self.days),
            "-in", self.csr_path,
            "-signkey", self.key_path,
            "-out", self.cert_path,
        ])

        self.transport.set_mode(self.key_path, 0o600)
        self.transport.set_mode(self.cert_path, 0o644)
        self.transport.remove_file(self.csr_path)

        logger.info("Certificate written to %s", self.cert_path)

    def _run(self, argv) -> None:
        output, code = self.transport.run_command(argv, timeout=self.context.command_timeout)
        if code != 0:
            raise CommandError(argv, code, output)
