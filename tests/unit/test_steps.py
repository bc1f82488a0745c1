"""
Unit tests for the generic bootstrap steps.

External tools are faked through FakeTransport; file operations are real.
"""

import pwd
import os

import pytest

from kindle.core import Action, BootstrapContext
from kindle.errors import CommandError
from kindle.secrets import SecretLoader
from kindle.steps import CommandStep, EnsureDirectory, SelfSignedCertificate, ServerNameRewrite
from kindle.steps.command import resolve_secret

CURRENT_USER = pwd.getpwuid(os.getuid()).pw_name


@pytest.fixture
def bind(config, transport, secrets_dir):
    loader = SecretLoader.from_directory(secrets_dir, ["db_password", "credentials"])
    context = BootstrapContext(config=config, secrets=loader, transport=transport)

    def _bind(step):
        return step.bind(context)

    return _bind


class TestCommandStep:
    """Tests for CommandStep."""

    def test_step_id(self):
        assert CommandStep("config-test", ["nginx", "-t"]).id == "exec:config-test"

    def test_requires_command(self):
        with pytest.raises(ValueError):
            CommandStep("empty", [])

    def test_runs_without_guards(self, bind, transport):
        step = bind(CommandStep("config-test", ["nginx", "-t"]))

        plan = step.plan()
        assert plan.action == Action.RUN
        step.apply(plan)

        assert transport.commands == [["nginx", "-t"]]
        assert transport.inputs == [None]

    def test_creates_guard(self, bind, tmp_path):
        marker = tmp_path / "wp-load.php"
        step = bind(CommandStep("download", ["wp", "core", "download"], creates=str(marker)))

        assert step.plan().has_changes()
        marker.write_text("<?php")
        assert not step.plan().has_changes()

    def test_unless_guard(self, bind, transport):
        step = bind(CommandStep("create", ["tool", "create"], unless=["tool", "exists"]))

        transport.respond(["tool", "exists"], code=1)
        assert step.plan().has_changes()

        transport.respond(["tool", "exists"], code=0)
        assert not step.plan().has_changes()

    def test_only_if_guard(self, bind, transport):
        step = bind(CommandStep("reload", ["tool", "reload"], only_if=["tool", "running"]))

        transport.respond(["tool", "running"], code=3)
        assert not step.plan().has_changes()

        transport.respond(["tool", "running"], code=0)
        assert step.plan().has_changes()

    def test_failure_raises_command_error(self, bind, transport):
        transport.respond(["nginx", "-t"], output="line 1\nemerg: bad directive\n", code=1)
        step = bind(CommandStep("config-test", ["nginx", "-t"]))

        with pytest.raises(CommandError) as exc_info:
            step.apply(step.plan())

        assert exc_info.value.code == 1
        assert "bad directive" in str(exc_info.value)

    def test_secret_goes_to_stdin_not_argv(self, bind, transport):
        step = bind(CommandStep(
            "config",
            ["wp", "config", "create", "--prompt=dbpass"],
            stdin_secret="db_password",
        ))

        step.apply(step.plan())

        assert transport.inputs == ["app-password-123\n"]
        assert all("app-password-123" not in arg for arg in transport.commands[0])
        assert "app-password-123" not in step.preview()

    def test_timeout_defaults_to_context(self, bind, config):
        assert bind(CommandStep("a", ["true"])).effective_timeout == config.command_timeout
        assert bind(CommandStep("a", ["true"], timeout=3)).effective_timeout == 3


class TestResolveSecret:
    """Tests for secret references."""

    def test_plain_and_bundle_references(self, secrets_dir):
        loader = SecretLoader.from_directory(secrets_dir, ["db_password", "credentials"])

        assert resolve_secret(loader, "db_password").reveal() == "app-password-123"
        assert resolve_secret(loader, "credentials.WP_USER").reveal() == "writer"


class TestEnsureDirectory:
    """Tests for EnsureDirectory."""

    def test_creates_missing_directory(self, bind, tmp_path):
        path = tmp_path / "run" / "mysqld"
        step = bind(EnsureDirectory(str(path), mode=0o750))

        plan = step.plan()
        assert plan.has_changes()
        assert plan.reason == "missing"

        step.apply(plan)

        assert path.is_dir()
        assert os.stat(path).st_mode & 0o777 == 0o750

    def test_correct_directory_is_left_alone(self, bind, tmp_path):
        path = tmp_path / "ok"
        path.mkdir()
        os.chmod(path, 0o755)

        step = bind(EnsureDirectory(str(path), mode=0o755, owner=CURRENT_USER))

        assert not step.plan().has_changes()

    def test_mode_drift(self, bind, tmp_path):
        path = tmp_path / "drift"
        path.mkdir()
        os.chmod(path, 0o700)
        step = bind(EnsureDirectory(str(path), mode=0o755))

        plan = step.plan()
        assert "mode" in plan.reason
        step.apply(plan)

        assert os.stat(path).st_mode & 0o777 == 0o755

    def test_ownership_uses_chown(self, bind, transport, tmp_path):
        path = tmp_path / "owned"
        step = bind(EnsureDirectory(str(path), owner="mysql", group="mysql"))

        step.apply(step.plan())

        assert transport.commands == [["chown", "mysql:mysql", str(path)]]

    def test_group_only_uses_chgrp(self, bind, transport, tmp_path):
        path = tmp_path / "grouped"
        step = bind(EnsureDirectory(str(path), group="www-data"))

        step.apply(step.plan())

        assert transport.commands == [["chgrp", "www-data", str(path)]]

    def test_recursive_ownership_always_applies(self, bind, transport, tmp_path):
        step = bind(EnsureDirectory(str(tmp_path), owner=CURRENT_USER, recursive=True))

        plan = step.plan()
        assert plan.has_changes()
        step.apply(plan)

        assert transport.commands == [["chown", "-R", CURRENT_USER, str(tmp_path)]]

    def test_chown_failure(self, bind, transport, tmp_path):
        transport.respond(["chown"], output="chown: invalid user", code=1)
        step = bind(EnsureDirectory(str(tmp_path / "x"), owner="nobody-here"))

        with pytest.raises(CommandError):
            step.apply(step.plan())

    def test_file_in_the_way(self, bind, tmp_path):
        path = tmp_path / "file"
        path.write_text("")
        step = bind(EnsureDirectory(str(path)))

        plan = step.plan()
        assert "not a directory" in plan.reason
        with pytest.raises(NotADirectoryError):
            step.apply(plan)


class TestSelfSignedCertificate:
    """Tests for certificate generation."""

    def make_step(self, bind, tmp_path):
        return bind(SelfSignedCertificate(
            str(tmp_path / "nginx.key"),
            str(tmp_path / "nginx.crt"),
            subject="/C=FR/O=42School/CN=example.org",
        ))

    def test_generates_key_csr_and_certificate(self, bind, transport, tmp_path):
        def write(path):
            return lambda argv: (tmp_path / path).write_text("pem")

        transport.respond(["openssl", "genrsa"], effect=write("nginx.key"))
        transport.respond(["openssl", "req"], effect=write("nginx.csr"))
        transport.respond(["openssl", "x509"], effect=write("nginx.crt"))
        step = self.make_step(bind, tmp_path)

        step.apply(step.plan())

        assert [argv[:2] for argv in transport.commands] == [
            ["openssl", "genrsa"], ["openssl", "req"], ["openssl", "x509"],
        ]
        req = transport.ran("openssl", "req")[0]
        assert req[req.index("-subj") + 1] == "/C=FR/O=42School/CN=example.org"
        assert os.stat(tmp_path / "nginx.key").st_mode & 0o777 == 0o600
        assert os.stat(tmp_path / "nginx.crt").st_mode & 0o777 == 0o644
        assert not (tmp_path / "nginx.csr").exists()

    def test_existing_material_is_kept(self, bind, transport, tmp_path):
        (tmp_path / "nginx.key").write_text("key")
        (tmp_path / "nginx.crt").write_text("crt")
        step = self.make_step(bind, tmp_path)

        assert not step.plan().has_changes()
        assert transport.commands == []

    def test_lone_key_is_regenerated(self, bind, tmp_path):
        (tmp_path / "nginx.key").write_text("key")
        assert self.make_step(bind, tmp_path).plan().has_changes()

    def test_openssl_failure(self, bind, transport, tmp_path):
        transport.respond(["openssl", "genrsa"], code=1)
        step = self.make_step(bind, tmp_path)

        with pytest.raises(CommandError):
            step.apply(step.plan())

    def test_subject_format(self, tmp_path):
        with pytest.raises(ValueError):
            SelfSignedCertificate("k", "c", subject="CN=example.org")


class TestServerNameRewrite:
    """Tests for server_name rewriting."""

    CONF = (
        "server {\n"
        "    listen 443 ssl;\n"
        "    server_name localhost;\n"
        "    root /var/www/html;\n"
        "}\n"
    )

    def test_rewrites_server_name(self, bind, tmp_path):
        conf = tmp_path / "default.conf"
        conf.write_text(self.CONF)
        step = bind(ServerNameRewrite(str(conf), ["example.org", "localhost", "127.0.0.1"]))

        step.apply(step.plan())

        content = conf.read_text()
        assert "    server_name example.org localhost 127.0.0.1;\n" in content
        assert "root /var/www/html;" in content

    def test_second_run_changes_nothing(self, bind, tmp_path):
        conf = tmp_path / "default.conf"
        conf.write_text(self.CONF)
        step = bind(ServerNameRewrite(str(conf), ["example.org"]))

        step.apply(step.plan())

        assert not step.plan().has_changes()

    def test_missing_file_is_not_an_error(self, bind, tmp_path):
        step = bind(ServerNameRewrite(str(tmp_path / "absent.conf"), ["example.org"]))
        assert not step.plan().has_changes()

    @pytest.mark.parametrize("names", [[], ["bad name"], ["x;rm -rf /"]])
    def test_invalid_names(self, names):
        with pytest.raises(ValueError):
            ServerNameRewrite("/etc/nginx/http.d/default.conf", names)
