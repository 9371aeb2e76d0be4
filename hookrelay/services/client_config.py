"""
Client configuration service - loaded once from YAML at startup and passed
by reference to intake, the worker and the dispatcher. Never reloaded;
configuration changes require a restart.
"""
import logging
from pathlib import Path
from typing import Iterable, Optional

import yaml
from pydantic import ValidationError

from hookrelay.exceptions import ConfigurationError
from hookrelay.schemas.client_config import ClientConfig, ClientsFile

logger = logging.getLogger(__name__)


class ClientConfigService:
    """Immutable client_id -> ClientConfig lookup."""

    def __init__(self, clients: Iterable[ClientConfig] = ()):
        by_id: dict[str, ClientConfig] = {}
        for client in clients:
            if client.id in by_id:
                raise ConfigurationError(f"Duplicate client id in configuration: {client.id}")
            by_id[client.id] = client
        self._clients = by_id

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ClientConfigService":
        try:
            parsed = ClientsFile.model_validate(data or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid client configuration: {e}") from e
        return cls(parsed.clients)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ClientConfigService":
        """
        Load clients from a YAML file with a top-level `clients:` list.
        A missing file yields an empty service (every lookup is "not found");
        an unreadable or invalid file raises ConfigurationError.
        """
        config_path = Path(path)
        if not config_path.exists():
            logger.error("Client config file not found: %s - no clients configured", config_path)
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read client config {config_path}: {e}") from e

        service = cls.from_dict(data)
        logger.info("Loaded %d client configurations from %s", len(service), config_path)
        return service

    def get(self, client_id: str) -> Optional[ClientConfig]:
        """Return the client's config, or None for an unknown client."""
        return self._clients.get(client_id)

    def __len__(self) -> int:
        return len(self._clients)
