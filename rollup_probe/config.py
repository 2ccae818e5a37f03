"""
Configuration for the rollup-probe package.

The configuration is an explicit value: load it once with ``load_config`` and
pass the resulting ``AppConfig`` to whatever needs chain endpoints, keys or
contract addresses.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from web3 import Web3

from .exceptions import ConfigError
from .rollup import MAX_CHAIN_ID, Rollup

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV_VAR = "CONFIG_PATH"

CHAIN_NAME_ROLLUP_A = "rollup-a"
CHAIN_NAME_ROLLUP_B = "rollup-b"
CHAIN_NAMES = (CHAIN_NAME_ROLLUP_A, CHAIN_NAME_ROLLUP_B)

CONTRACT_NAME_BRIDGE = "bridge"
CONTRACT_NAME_PINGPONG = "pingpong"
CONTRACT_NAME_TOKEN = "bridgeabletoken"
CONTRACT_NAMES = (CONTRACT_NAME_BRIDGE, CONTRACT_NAME_PINGPONG, CONTRACT_NAME_TOKEN)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _strip_hex_prefix(value: str) -> str:
    if value[:2] in ("0x", "0X"):
        return value[2:]
    return value


class ChainConfig(BaseModel):
    """Endpoint, id and funded key of one rollup"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: int = 0
    rpc_url: str = Field("", alias="rpc-url")
    pk: str = ""

    @field_validator("pk", mode="before")
    @classmethod
    def _normalize_pk(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, int) and not isinstance(value, bool):
            return f"{value:064x}"
        return _strip_hex_prefix(str(value).strip())


class ContractConfig(BaseModel):
    """Deployed contract address and its ABI (JSON text)"""
    model_config = ConfigDict(frozen=True)

    address: str = ZERO_ADDRESS
    abi: str = ""

    @field_validator("abi", mode="before")
    @classmethod
    def _abi_to_text(cls, value: Any) -> str:
        # YAML may carry the ABI inline as a list instead of a JSON string
        if isinstance(value, list):
            return json.dumps(value)
        return value or ""

    @property
    def checksum_address(self) -> str:
        return Web3.to_checksum_address(self.address)

    @property
    def parsed_abi(self) -> List[Dict[str, Any]]:
        try:
            return json.loads(self.abi)
        except ValueError as e:
            raise ConfigError(f"invalid ABI JSON for contract at {self.address}: {e}")


class L2Config(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    chain_configs: Dict[str, ChainConfig] = Field(default_factory=dict, alias="chain-configs")
    contracts: Dict[str, ContractConfig] = Field(default_factory=dict)


class AppConfig(BaseModel):
    """Validated harness configuration"""
    model_config = ConfigDict(frozen=True)

    l2: L2Config = Field(default_factory=L2Config)

    def problems(self) -> List[str]:
        """
        Collect every validation problem in the configuration.

        Returns:
            List of human readable problems, empty when the config is valid
        """
        problems = []
        chains = self.l2.chain_configs

        if len(chains) != 2:
            problems.append("exactly two chain configs must be provided")
        for name in CHAIN_NAMES:
            if name not in chains:
                problems.append(f"chain config for '{name}' must be provided")

        for name, cfg in chains.items():
            if cfg.id == 0:
                problems.append(f"field: 'id', chain: '{name}', must be set and non-zero")
            elif not 0 < cfg.id < MAX_CHAIN_ID:
                problems.append(f"field: 'id', chain: '{name}', must fit in uint64, got {cfg.id}")
            if not cfg.rpc_url:
                problems.append(f"field: 'rpc-url', chain: '{name}', must be set and non-zero")
            if not cfg.pk:
                problems.append(f"field: 'pk', chain: '{name}', must be set and non-zero")

        for name, cfg in self.l2.contracts.items():
            if name not in CONTRACT_NAMES:
                problems.append(f"unknown contract '{name}', expected one of: {', '.join(CONTRACT_NAMES)}")
            if not Web3.is_address(cfg.address) or int(cfg.address, 16) == 0:
                problems.append(f"field: 'address', contract: '{name}', must be set and non-zero")
            if not cfg.abi:
                problems.append(f"field: 'abi', contract: '{name}', must be set and non-empty")

        return problems

    def rollup(self, name: str) -> Rollup:
        """
        Build the chain handle for a configured rollup.

        Args:
            name: Chain name, e.g. "rollup-a"

        Returns:
            Rollup handle

        Raises:
            ConfigError: If the chain is not configured
        """
        cfg = self.l2.chain_configs.get(name)
        if cfg is None:
            raise ConfigError(
                f"Chain '{name}' not configured. Available chains: {', '.join(self.l2.chain_configs)}"
            )
        return Rollup(rpc_url=cfg.rpc_url, chain_id=cfg.id, name=name)

    def rollups(self) -> Tuple[Rollup, Rollup]:
        """Return the (rollup-a, rollup-b) handles."""
        return self.rollup(CHAIN_NAME_ROLLUP_A), self.rollup(CHAIN_NAME_ROLLUP_B)

    def private_key(self, name: str) -> str:
        cfg = self.l2.chain_configs.get(name)
        if cfg is None:
            raise ConfigError(f"Chain '{name}' not configured")
        return cfg.pk

    def contract(self, name: str) -> ContractConfig:
        """
        Get a contract entry.

        Raises:
            ConfigError: If the contract is not configured
        """
        cfg = self.l2.contracts.get(name)
        if cfg is None:
            raise ConfigError(
                f"Contract '{name}' not configured. Available contracts: {', '.join(self.l2.contracts) or 'none'}"
            )
        return cfg


def parse_config(data: Union[str, bytes, Dict[str, Any]]) -> AppConfig:
    """
    Parse and validate configuration from YAML text or an already-loaded dict.

    Args:
        data: YAML document or mapping

    Returns:
        Validated AppConfig

    Raises:
        ConfigError: If the document cannot be parsed or is invalid
    """
    if isinstance(data, (str, bytes)):
        try:
            # every scalar stays text, unquoted hex keys included
            data = yaml.load(data, Loader=yaml.BaseLoader)
        except yaml.YAMLError as e:
            raise ConfigError(f"failed to unmarshal config: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("failed to unmarshal config: top level must be a mapping")

    try:
        config = AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config: {e}") from e

    problems = config.problems()
    if problems:
        raise ConfigError("invalid config: " + "; ".join(problems))

    return config


def load_config(config_path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load and validate the harness configuration from a YAML file.

    Args:
        config_path: Path to the YAML file; defaults to $CONFIG_PATH

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If no path is available, the file is unreadable or invalid
    """
    if config_path is None:
        config_path = os.environ.get(CONFIG_PATH_ENV_VAR)
        if not config_path:
            raise ConfigError(f"{CONFIG_PATH_ENV_VAR} was not set and no config path was given")
        logger.info(f"{CONFIG_PATH_ENV_VAR} environment variable set to: {config_path}. Loading configuration")

    path = Path(config_path)
    try:
        data = path.read_text()
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e

    config = parse_config(data)

    summary = ", ".join(
        f"{name}: id={cfg.id} rpc={cfg.rpc_url}" for name, cfg in config.l2.chain_configs.items()
    )
    contracts = ", ".join(
        f"{name}: {cfg.address} (ABI: {len(cfg.abi)} bytes)" for name, cfg in config.l2.contracts.items()
    )
    logger.info(f"configuration loaded successfully. {summary}. Contracts: {contracts or 'none'}")
    return config
