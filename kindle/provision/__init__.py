"""
Operator tooling run on the host before `docker compose up`.
"""

from kindle.provision.credentials import SecretsReport, ensure_secrets
from kindle.provision.environment import ensure_env_file, prepare_data_dirs

__all__ = ["SecretsReport", "ensure_secrets", "ensure_env_file", "prepare_data_dirs"]
