"""
WordPress bootstrap steps, driven through wp-cli.

Passwords reach wp-cli on standard input via its --prompt option, so no
password ever appears in a process listing.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from kindle.core import Plan, Step
from kindle.errors import CommandError
from kindle.logging import get_kindle_logger
from kindle.policy import validate_admin_identity
from kindle.steps.command import CommandStep

logger = get_kindle_logger(__name__)

CREDENTIALS_SECRET = "credentials"
CREDENTIAL_KEYS = (
    "WP_ADMIN_USER",
    "WP_ADMIN_PASSWORD",
    "WP_ADMIN_EMAIL",
    "WP_USER",
    "WP_USER_PASSWORD",
    "WP_USER_EMAIL",
)


class WpCli:
    """
    Builds wp-cli command lines for one installation.

    Example:
        wp = WpCli("/var/www/html")
        wp.argv("core", "is-installed")
        # ['wp', 'core', 'is-installed', '--path=/var/www/html', '--allow-root']
    """

    def __init__(self, webroot: str, binary: str = "wp"):
        self.webroot = webroot
        self.binary = binary

    def argv(self, *args: str) -> List[str]:
        return [self.binary, *args, f"--path={self.webroot}", "--allow-root"]


class WpCliStep(Step):
    """Base for steps that talk to wp-cli."""

    def __init__(self, name: str, wp: WpCli, **options):
        super().__init__(name, **options)
        self.wp = wp

    def step_type(self) -> str:
        return "wp"

    def _credentials(self):
        return self.context.secrets.bundle(CREDENTIALS_SECRET, CREDENTIAL_KEYS)

    def _run(self, args: Sequence[str], stdin: Optional[str] = None) -> Tuple[str, int]:
        return self.transport.run_command(
            self.wp.argv(*args), input=stdin, timeout=self.context.command_timeout
        )

    def _run_checked(self, args: Sequence[str], stdin: Optional[str] = None) -> str:
        output, code = self._run(args, stdin)
        if code != 0:
            raise CommandError(self.wp.argv(*args), code, output)
        return output


class ValidateCredentials(WpCliStep):
    """
    Load the credential bundle and check the administrator name.

    Runs before anything is installed, so a bad bundle fails the bootstrap
    with nothing half-done.
    """

    def __init__(self, wp: WpCli, **options):
        super().__init__("credentials", wp, **options)

    def check(self) -> Dict[str, Any]:
        return {"done": False, "reason": "validate credential bundle"}

    def apply(self, plan: Plan) -> None:
        creds = self._credentials()
        validate_admin_identity(creds["WP_ADMIN_USER"].reveal())
        if creds["WP_ADMIN_USER"].reveal() == creds["WP_USER"].reveal():
            raise ValueError("WP_ADMIN_USER and WP_USER must be different accounts")


def download_core(wp: WpCli) -> CommandStep:
    """Fetch WordPress core files unless they are already in the webroot."""
    return CommandStep(
        "download-core",
        wp.argv("core", "download"),
        creates=f"{wp.webroot.rstrip('/')}/wp-load.php",
    )


def create_config(wp: WpCli, database: str, user: str, host: str) -> CommandStep:
    """(Re)write wp-config.php; the db password is read from stdin."""
    return CommandStep(
        "create-config",
        wp.argv(
            "config", "create",
            f"--dbname={database}",
            f"--dbuser={user}",
            f"--dbhost={host}",
            "--prompt=dbpass",
            "--force",
        ),
        stdin_secret="db_password",
    )


class InstallCore(WpCliStep):
    """
    Run `wp core install` with the administrator from the credential bundle.
    """

    def __init__(self, wp: WpCli, url: str, title: str, **options):
        super().__init__("core-install", wp, **options)
        self.url = url
        self.title = title

    def check(self) -> Dict[str, Any]:
        _, code = self._run(["core", "is-installed"])
        if code == 0:
            return {"done": True, "reason": "WordPress already installed"}
        return {"done": False, "reason": "WordPress not installed"}

    def apply(self, plan: Plan) -> None:
        creds = self._credentials()
        admin = validate_admin_identity(creds["WP_ADMIN_USER"].reveal())

        self._run_checked(
            [
                "core", "install",
                f"--url={self.url}",
                f"--title={self.title}",
                f"--admin_user={admin}",
                f"--admin_email={creds['WP_ADMIN_EMAIL'].reveal()}",
                "--skip-email",
                "--prompt=admin_password",
            ],
            stdin=creds["WP_ADMIN_PASSWORD"].reveal() + "\n",
        )
        logger.info("WordPress installed at %s (administrator %s)", self.url, admin)


class CreateUser(WpCliStep):
    """
    Create the secondary account from the credential bundle.

    Not naturally idempotent, hence the `wp user get` guard.
    """

    def __init__(self, wp: WpCli, role: str = "author", **options):
        super().__init__("user-create", wp, **options)
        self.role = role

    def check(self) -> Dict[str, Any]:
        login = self._credentials()["WP_USER"].reveal()
        _, code = self._run(["user", "get", login, "--field=ID"])
        if code == 0:
            return {"done": True, "reason": f"user {login} exists"}
        return {"done": False, "reason": f"user {login} missing"}

    def apply(self, plan: Plan) -> None:
        creds = self._credentials()
        login = creds["WP_USER"].reveal()

        self._run_checked(
            [
                "user", "create",
                login,
                creds["WP_USER_EMAIL"].reveal(),
                f"--role={self.role}",
                "--prompt=user_pass",
            ],
            stdin=creds["WP_USER_PASSWORD"].reveal() + "\n",
        )
        logger.info("User %s created with role %s", login, self.role)
