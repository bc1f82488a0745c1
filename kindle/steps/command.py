"""
CommandStep - run an external tool as a bootstrap step.

Commands are argv lists, never shell strings, so configuration values
cannot be reinterpreted by a shell. A secret can be passed on standard
input; it is never placed on the command line where `ps` would show it.
"""

from typing import Any, Dict, List, Optional, Sequence

from kindle.core import Plan, Step
from kindle.errors import CommandError
from kindle.logging import get_kindle_logger

logger = get_kindle_logger(__name__)


class CommandStep(Step):
    """
    Run a command.

    Idempotency guards:
    - creates: Run only if this path doesn't exist
    - unless: Run only if this command exits non-zero
    - only_if: Run only if this command exits zero

    Examples:
        # Run once (creates guard)
        CommandStep("install-db",
                    ["mysql_install_db", "--user=mysql", "--datadir=/var/lib/mysql"],
                    creates="/var/lib/mysql/mysql")

        # Conditional execution
        CommandStep("create-user",
                    ["wp", "user", "create", "writer", "w@example.com", "--prompt=user_pass"],
                    unless=["wp", "user", "get", "writer"],
                    stdin_secret="credentials.WP_USER_PASSWORD")
    """

    def __init__(
        self,
        name: str,
        argv: Sequence[str],
        creates: Optional[str] = None,
        unless: Optional[Sequence[str]] = None,
        only_if: Optional[Sequence[str]] = None,
        stdin_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        **options,
    ):
        """
        Initialize command step.

        Args:
            name: Step name
            argv: Command and arguments
            creates: Only run if this path doesn't exist
            unless: Only run if this command fails
            only_if: Only run if this command succeeds
            stdin_secret: Secret name whose value is written to stdin
            timeout: Seconds before the command is killed
                (default: the context's command timeout)
        """
        super().__init__(name, **options)

        if not argv:
            raise ValueError(f"CommandStep {name!r} needs a command")

        self.argv: List[str] = [str(arg) for arg in argv]
        self.creates = creates
        self.unless = list(unless) if unless else None
        self.only_if = list(only_if) if only_if else None
        self.stdin_secret = stdin_secret
        self.timeout = timeout

    def step_type(self) -> str:
        return "exec"

    @property
    def effective_timeout(self) -> float:
        return self.timeout if self.timeout is not None else self.context.command_timeout

    def check(self) -> Dict[str, Any]:
        """Evaluate guards."""
        if self.creates and self.transport.file_exists(self.creates):
            return {"done": True, "reason": f"{self.creates} exists"}

        if self.unless:
            _, code = self.transport.run_command(self.unless, timeout=self.effective_timeout)
            if code == 0:
                return {"done": True, "reason": f"`{' '.join(self.unless)}` succeeded"}

        if self.only_if:
            _, code = self.transport.run_command(self.only_if, timeout=self.effective_timeout)
            if code != 0:
                return {"done": True, "reason": f"`{' '.join(self.only_if)}` failed"}

        return {"done": False}

    def apply(self, plan: Plan) -> None:
        """Execute command."""
        stdin = self._stdin()
        logger.debug("Running %s", " ".join(self.argv))

        output, code = self.transport.run_command(
            self.argv, input=stdin, timeout=self.effective_timeout
        )

        if code != 0:
            raise CommandError(self.argv, code, output)

    def _stdin(self) -> Optional[str]:
        if not self.stdin_secret:
            return None
        return resolve_secret(self.context.secrets, self.stdin_secret).reveal() + "\n"

    def preview(self) -> str:
        """The command line that would run (secrets are never part of it)."""
        return " ".join(self.argv)


def resolve_secret(secrets, reference: str):
    """
    Resolve "name" or "bundle.KEY" to a Secret.

    Example:
        resolve_secret(loader, "db_password")
        resolve_secret(loader, "credentials.WP_ADMIN_PASSWORD")
    """
    if "." in reference:
        bundle, _, key = reference.partition(".")
        return secrets.bundle(bundle, [key])[key]
    return secrets.get(reference)
