# bzzdb/config.py
"""
Configuration for connecting a store to a node.

Settings come from an optional YAML file, then environment overrides:

    NODE_ADDRESS   node URL without port, e.g. http://localhost
    PRIVATE_KEY    hex encoded secp256k1 private key

Example file:

    node_url: http://localhost
    api_port: 1633
    debug_api_port: 1635
    private_key_file: ~/.bzzdb/key.pem
    ticket_depth: 22
"""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .client import MAX_DEPTH, MIN_DEPTH
from .signing import Signer

ENV_NODE_ADDRESS = "NODE_ADDRESS"
ENV_PRIVATE_KEY = "PRIVATE_KEY"


@dataclass
class BzzConfig:
    node_url: str = "http://localhost"
    api_port: int = 1633
    debug_api_port: int = 1635
    timeout: float = 60.0
    private_key: Optional[str] = None
    private_key_file: Optional[str] = None
    ticket_amount: int = 10_000_000
    ticket_depth: int = 22
    ticket_immutable: bool = True
    max_workers: int = 8

    def validate(self):
        """Raise ValueError on settings that cannot work."""
        for name in ("api_port", "debug_api_port"):
            port = getattr(self, name)
            if not 0 < port < 65536:
                raise ValueError(f"{name} out of range: {port}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")
        if self.ticket_amount <= 0:
            raise ValueError(f"ticket_amount must be positive: {self.ticket_amount}")
        if not MIN_DEPTH <= self.ticket_depth <= MAX_DEPTH:
            raise ValueError(
                f"ticket_depth must be in [{MIN_DEPTH}, {MAX_DEPTH}]: {self.ticket_depth}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1: {self.max_workers}")

    def signer(self) -> Signer:
        """Build the signing identity from the configured key material."""
        if self.private_key:
            return Signer.from_hex(self.private_key)
        if self.private_key_file:
            return Signer.from_file(Path(self.private_key_file).expanduser())
        raise ValueError("no private key configured (private_key or private_key_file)")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BzzConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**data)


def load_config(
    path: Path | str = None,
    env: Optional[Mapping[str, str]] = None,
) -> BzzConfig:
    """
    Load configuration from a YAML file and the environment.

    Args:
        path: Optional YAML file
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated BzzConfig
    """
    env = os.environ if env is None else env

    data: Dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"config file {path} must contain a mapping")

    config = BzzConfig.from_dict(data)

    if env.get(ENV_NODE_ADDRESS):
        config.node_url = env[ENV_NODE_ADDRESS]
    if env.get(ENV_PRIVATE_KEY):
        config.private_key = env[ENV_PRIVATE_KEY]

    config.validate()
    return config
