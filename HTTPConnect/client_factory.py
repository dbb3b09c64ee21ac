""" Client Factory with environment-driven configuration """

import os
from dataclasses import dataclass, asdict, replace
from typing import Any, Dict, Mapping, Optional

from .base import DEFAULT_TIMEOUT, DEFAULT_MAX_REDIRECTS
from .top import Client, AsyncClient

ENV_PREFIX = "HTTPCONNECT_"
_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"Invalid boolean for {name}: {raw!r}")


@dataclass
class ClientConfig:
    """Transport configuration for a client.

    TLS verification is strict unless ``insecure_skip_verify`` is set explicitly.
    """
    timeout: Optional[float] = DEFAULT_TIMEOUT
    insecure_skip_verify: bool = False
    debug: bool = False
    follow_redirects: bool = True
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    user_agent: Optional[str] = None

    def __post_init__(self):
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")
        if self.max_redirects < 0:
            raise ValueError(f"max_redirects must be >= 0, got {self.max_redirects}")

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Read configuration from environment variables, e.g. HTTPCONNECT_TIMEOUT."""
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        def get(name: str) -> Optional[str]:
            return env.get(prefix + name)

        if get("TIMEOUT") is not None:
            try:
                values["timeout"] = float(get("TIMEOUT"))
            except ValueError:
                raise ValueError(f"Invalid number for {prefix}TIMEOUT: {get('TIMEOUT')!r}")
        if get("MAX_REDIRECTS") is not None:
            try:
                values["max_redirects"] = int(get("MAX_REDIRECTS"))
            except ValueError:
                raise ValueError(f"Invalid integer for {prefix}MAX_REDIRECTS: {get('MAX_REDIRECTS')!r}")
        for name in ("INSECURE_SKIP_VERIFY", "DEBUG", "FOLLOW_REDIRECTS"):
            if get(name) is not None:
                values[name.lower()] = _parse_bool(prefix + name, get(name))
        if get("USER_AGENT"):
            values["user_agent"] = get("USER_AGENT")

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def create_client(config: Optional[ClientConfig] = None, **overrides) -> Client:
    """Create a synchronous client; keyword overrides win over ``config``."""
    return Client(**_client_kwargs(config, overrides))


def create_async_client(config: Optional[ClientConfig] = None, **overrides) -> AsyncClient:
    """Create an asynchronous client; keyword overrides win over ``config``."""
    return AsyncClient(**_client_kwargs(config, overrides))


def _client_kwargs(config: Optional[ClientConfig], overrides: Dict[str, Any]) -> Dict[str, Any]:
    config = config or ClientConfig()
    config_fields = {k: overrides.pop(k) for k in list(overrides) if k in config.to_dict()}
    if config_fields:
        config = replace(config, **config_fields)
    kwargs = config.to_dict()
    # remaining overrides (context, cookies, middleware) go straight to the client
    kwargs.update(overrides)
    return kwargs
