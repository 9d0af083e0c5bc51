"""Settings for the proof anchoring tools.

Settings are read once at start-up from a .env file (python-dotenv)
layered over the process environment, then passed explicitly to
whatever needs them. Values in the .env file win over the environment
so a checked-out project behaves the same in every shell.

Variables:
    HEDERA_RPC_URL            JSON-RPC relay (default testnet hashio)
    MIRROR_NODE_URL           mirror node REST base URL
    HEDERA_CHAIN_ID           EVM chain id (default 296, testnet)
    OPERATOR_ID               operator account, e.g. 0.0.1234
    OPERATOR_HEX_KEY          operator ECDSA private key (hex)
    OPERATOR_EVM_ADDR         operator EVM address (the proof signer)
    REASONING_CONTRACT_ADDR   reasoning contract address
    HCS_TOPIC_ID              proof topic, e.g. 0.0.7204585
    MAX_MESSAGE_BYTES         per-message cap (default 1024)
    RULE_VERSION              rule version recorded in proofs
    PROOF_VERSION             proof schema version (wire key "v")
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values, find_dotenv

from ontologic.crypto.proof_builder import DEFAULT_MAX_MESSAGE_BYTES, DEFAULT_PROOF_VERSION
from ontologic.errors import ConfigError
from ontologic.network.mirror import DEFAULT_MIRROR_NODE_URL


DEFAULT_RPC_URL = "https://testnet.hashio.io/api"
DEFAULT_CHAIN_ID = 296
DEFAULT_RULE_VERSION = "v0.6.3"


@dataclass(frozen=True)
class NetworkConfig:
    rpc_url: str = DEFAULT_RPC_URL
    mirror_node_url: str = DEFAULT_MIRROR_NODE_URL
    chain_id: int = DEFAULT_CHAIN_ID


@dataclass(frozen=True)
class OperatorConfig:
    """The account that signs proofs and pays for calls."""
    account_id: Optional[str] = None
    private_key: Optional[str] = None
    evm_address: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    """All runtime settings. Construct once, pass explicitly."""
    network: NetworkConfig = NetworkConfig()
    operator: OperatorConfig = OperatorConfig()
    contract_address: Optional[str] = None
    topic_id: Optional[str] = None
    max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES
    rule_version: str = DEFAULT_RULE_VERSION
    proof_version: str = DEFAULT_PROOF_VERSION

    @staticmethod
    def from_env(
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Settings:
        """Load settings from a .env file over the environment.

        With no env_file, a .env in the working directory (or a parent)
        is used if present. Raises ConfigError on malformed values.
        """
        if env_file is not None and not Path(env_file).exists():
            raise ConfigError(f"Env file not found: {env_file}", path=str(env_file))

        values: dict[str, Optional[str]] = dict(os.environ if environ is None else environ)
        path = str(env_file) if env_file is not None else find_dotenv(usecwd=True)
        if path:
            values.update(dotenv_values(path))

        def get(name: str) -> Optional[str]:
            value = values.get(name)
            return value.strip() if value and value.strip() else None

        return Settings(
            network=NetworkConfig(
                rpc_url=get("HEDERA_RPC_URL") or DEFAULT_RPC_URL,
                mirror_node_url=get("MIRROR_NODE_URL") or DEFAULT_MIRROR_NODE_URL,
                chain_id=_int_setting("HEDERA_CHAIN_ID", get("HEDERA_CHAIN_ID"), DEFAULT_CHAIN_ID),
            ),
            operator=OperatorConfig(
                account_id=get("OPERATOR_ID"),
                private_key=get("OPERATOR_HEX_KEY"),
                evm_address=get("OPERATOR_EVM_ADDR"),
            ),
            contract_address=get("REASONING_CONTRACT_ADDR"),
            topic_id=get("HCS_TOPIC_ID"),
            max_message_bytes=_int_setting(
                "MAX_MESSAGE_BYTES", get("MAX_MESSAGE_BYTES"), DEFAULT_MAX_MESSAGE_BYTES,
            ),
            rule_version=get("RULE_VERSION") or DEFAULT_RULE_VERSION,
            proof_version=get("PROOF_VERSION") or DEFAULT_PROOF_VERSION,
        )

    def require_operator(self) -> OperatorConfig:
        """The operator config, or ConfigError naming what is missing."""
        missing = [
            name for name, value in (
                ("OPERATOR_HEX_KEY", self.operator.private_key),
                ("OPERATOR_EVM_ADDR", self.operator.evm_address),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}", missing=missing)
        return self.operator

    def require_signer(self) -> str:
        """The operator EVM address recorded as the proof signer."""
        if not self.operator.evm_address:
            raise ConfigError(
                "Missing required settings: OPERATOR_EVM_ADDR",
                missing=["OPERATOR_EVM_ADDR"],
            )
        return self.operator.evm_address

    def require_contract(self) -> str:
        if not self.contract_address:
            raise ConfigError(
                "Missing required settings: REASONING_CONTRACT_ADDR",
                missing=["REASONING_CONTRACT_ADDR"],
            )
        return self.contract_address

    def require_topic(self) -> str:
        if not self.topic_id:
            raise ConfigError("Missing required settings: HCS_TOPIC_ID", missing=["HCS_TOPIC_ID"])
        return self.topic_id


def _int_setting(name: str, raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", name=name) from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}", name=name)
    return value
