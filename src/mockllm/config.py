"""
Mock LLM Configuration

Loads the list of expected request/response pairs for each provider family,
plus server options, from a JSON or YAML document.

Example document:

    {
      "openai": [
        {
          "name": "ping",
          "match": {
            "match_type": "exact",
            "message": {"role": "user", "content": [{"type": "text", "text": "ping"}]}
          },
          "response": {"id": "chatcmpl-1", "object": "chat.completion", ...}
        }
      ],
      "anthropic": []
    }
"""

import json
from pathlib import Path
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import RequestMatch

DEFAULT_HOST = "0.0.0.0"
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


@dataclass(frozen=True)
class MockExpectation:
    """One configured request pattern and its canned response."""

    name: str
    match: RequestMatch
    response: Any

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MockExpectation':
        """
        Create an expectation from a configuration entry.

        Raises:
            ConfigError: If the entry is not a mapping or its match block is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mock entry object, got {type(data).__name__}")

        name = data.get('name', '')
        try:
            match = RequestMatch.model_validate(data.get('match') or {})
        except ValidationError as e:
            raise ConfigError(f"Invalid match for mock '{name}': {e}") from e

        return cls(name=name, match=match, response=data.get('response'))


@dataclass
class Config:
    """Server configuration and expectations for both provider families."""

    # Listener address as "host:port"; empty means all interfaces, ephemeral port
    listen_addr: str = ""

    openai: List[MockExpectation] = field(default_factory=list)
    anthropic: List[MockExpectation] = field(default_factory=list)

    # Logging
    log_level: str = "info"
    access_log: bool = False

    # Require an Authorization header on OpenAI-style requests
    require_openai_auth: bool = False

    # Readiness polling (seconds)
    health_attempts: int = 5
    health_base_delay: float = 0.5
    health_max_delay: float = 5.0

    # Graceful shutdown deadline (seconds)
    shutdown_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create configuration from a parsed document, preserving mock order."""
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a configuration object, got {type(data).__name__}")

        defaults = cls()
        log_level = str(data.get('log_level') or defaults.log_level).lower()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log_level '{log_level}', expected one of: {', '.join(LOG_LEVELS)}")

        return cls(
            listen_addr=data.get('listen_addr', defaults.listen_addr) or "",
            openai=[MockExpectation.from_dict(m) for m in data.get('openai') or []],
            anthropic=[MockExpectation.from_dict(m) for m in data.get('anthropic') or []],
            log_level=log_level,
            access_log=bool(data.get('access_log', defaults.access_log)),
            require_openai_auth=bool(data.get('require_openai_auth', defaults.require_openai_auth)),
            health_attempts=int(data.get('health_attempts', defaults.health_attempts)),
            health_base_delay=float(data.get('health_base_delay', defaults.health_base_delay)),
            health_max_delay=float(data.get('health_max_delay', defaults.health_max_delay)),
            shutdown_timeout=float(data.get('shutdown_timeout', defaults.shutdown_timeout))
        )


class ConfigLoader:
    """
    Loader for mock configuration files.

    ``.yaml`` and ``.yml`` files are parsed as YAML, everything else as JSON.

    Example:
        config = ConfigLoader("mocks.json").load()
        print(len(config.openai))
    """

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)

    def load(self) -> Config:
        """
        Load configuration from the file.

        Returns:
            Parsed Config

        Raises:
            FileNotFoundError: If the file doesn't exist
            ConfigError: If the file can't be read or parsed
        """
        if not self.file_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.file_path}")

        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                text = f.read()
        except OSError as e:
            raise ConfigError(f"failed to read config file {self.file_path}: {e}") from e

        try:
            if self.file_path.suffix.lower() in ('.yaml', '.yml'):
                data = yaml.safe_load(text)
            else:
                data = json.loads(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(f"failed to parse config {self.file_path}: {e}") from e

        try:
            return Config.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"failed to parse config {self.file_path}: {e}") from e


def load_config_from_file(file_path: str) -> Config:
    """Convenience wrapper around ConfigLoader."""
    return ConfigLoader(file_path).load()


def parse_listen_addr(listen_addr: Optional[str]) -> Tuple[str, int]:
    """
    Split a "host:port" listen address.

    An empty address, host or port falls back to all interfaces and an
    ephemeral port.

    Raises:
        ConfigError: If the port is not a number
    """
    if not listen_addr:
        return DEFAULT_HOST, 0

    # Bare IPv6 literal such as "::" or "::1"; a port needs the bracketed form
    if listen_addr.count(':') > 1 and not listen_addr.startswith('['):
        return listen_addr, 0

    host, sep, port = listen_addr.rpartition(':')
    if not sep:
        host, port = listen_addr, ""

    host = host.strip('[]') or DEFAULT_HOST
    try:
        return host, int(port) if port else 0
    except ValueError as e:
        raise ConfigError(f"Invalid listen address '{listen_addr}': {e}") from e
