import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

from src.rules.models import Rules

logger = logging.getLogger(__name__)


def required_env_vars(rules: Rules) -> list[str]:
    """Environment variables the configured deployment cannot start without."""
    required = list(rules.ops.required_env)
    if rules.email.transport == "smtp":
        for name in (rules.email.smtp_username_env, rules.email.smtp_password_env):
            if name and name not in required:
                required.append(name)
    return required


def validate_ops_rules(
    rules: Rules, base_dir: Path, environ: Mapping[str, str] | None = None
) -> None:
    """
    Validate operational requirements before startup.
    Exits the process when something required is missing.
    """
    env = os.environ if environ is None else environ

    # 1. Migrations must be present
    migrations_dir = base_dir / rules.ops.migrations_dir
    if not migrations_dir.is_dir():
        print(f"CRITICAL: Migrations directory not found: {migrations_dir}", file=sys.stderr)
        sys.exit(1)

    # 2. Check Required Env
    missing = [name for name in required_env_vars(rules) if not env.get(name)]
    if missing:
        print(
            f"CRITICAL: Missing required environment variables: {', '.join(missing)}",
            file=sys.stderr,
        )
        sys.exit(1)

    logger.info("Configuration validated (email transport: %s)", rules.email.transport)
