"""Environment variable loading and validation."""

import os
import re
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_GUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


@dataclass(frozen=True)
class GraphCredentials:
    """App registration used for the client-credentials token request."""

    tenant_id: str
    client_id: str
    client_secret: str

    def __repr__(self) -> str:
        return f"GraphCredentials(tenant_id={self.tenant_id!r}, client_id={self.client_id!r}, client_secret='***')"


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        credentials: Optional[GraphCredentials] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
        environment: Optional[str] = None,
    ):
        self.credentials = credentials
        self.log_level = log_level
        self.database_url = database_url or "sqlite:///./data/forward_ledger.db"
        self.environment = environment or "local"


def load_environment_config(require_credentials: bool = True) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Credential variables (required for live runs):
    - GRAPH_TENANT_ID: Directory (tenant) id of the app registration
    - GRAPH_CLIENT_ID: Application (client) id
    - GRAPH_CLIENT_SECRET: Client secret

    Optional environment variables:
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - DATABASE_URL: Forward ledger database (default: sqlite:///./data/forward_ledger.db)
    - ENVIRONMENT: Environment label attached to log records (default: local)

    Args:
        require_credentials: Fail when credential variables are missing.
            Test-mode runs never contact the platform and pass False.

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    tenant_id = os.getenv("GRAPH_TENANT_ID")
    client_id = os.getenv("GRAPH_CLIENT_ID")
    client_secret = os.getenv("GRAPH_CLIENT_SECRET")
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")
    environment = os.getenv("ENVIRONMENT")

    credential_vars = {
        "GRAPH_TENANT_ID": tenant_id,
        "GRAPH_CLIENT_ID": client_id,
        "GRAPH_CLIENT_SECRET": client_secret,
    }
    if require_credentials:
        for name, value in credential_vars.items():
            if not value:
                errors.append(f"Missing required environment variable: {name}")

    for name in ("GRAPH_TENANT_ID", "GRAPH_CLIENT_ID"):
        value = credential_vars[name]
        if value and not _GUID_PATTERN.match(value.strip()):
            errors.append(f"Invalid {name}: '{value}'. Expected a GUID.")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in the app registration values",
                "Use --test-mode to simulate a run without credentials",
            ],
        )

    credentials = None
    if tenant_id and client_id and client_secret:
        credentials = GraphCredentials(
            tenant_id=tenant_id.strip(),
            client_id=client_id.strip(),
            client_secret=client_secret,
        )

    return EnvironmentConfig(
        credentials=credentials,
        log_level=log_level.upper() if log_level else None,
        database_url=database_url,
        environment=environment,
    )
