"""Ledger adapter: contract calls over the network's JSON-RPC relay.

Transactions are built from the reasoning contract ABI, signed locally
with eth_account, sent raw, and awaited for one receipt. Receipts are
decoded into LedgerEvents so the core never touches web3 types.

Prior bindings are found by querying ProofAdd logs on the indexed
proofHash topic, which is what makes replay detection possible without
any extra contract state.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Optional

from eth_account import Account
from eth_utils import event_abi_to_log_topic
from web3 import HTTPProvider, Web3
from web3.exceptions import TransactionNotFound

from ontologic.models.ledger import LedgerEvent, LedgerReceipt


logger = logging.getLogger(__name__)

HEDERA_TESTNET_CHAIN_ID = 296

_PROOF_DATA = {
    "name": "p",
    "type": "tuple",
    "components": [
        {"name": "inputsHash", "type": "bytes32"},
        {"name": "proofHash", "type": "bytes32"},
        {"name": "factHash", "type": "bytes32"},
        {"name": "ruleHash", "type": "bytes32"},
        {"name": "canonicalUri", "type": "string"},
    ],
}

REASONING_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "reasonAdd",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "A", "type": "address"},
            {"name": "B", "type": "address"},
            {"name": "domainHash", "type": "bytes32"},
            _PROOF_DATA,
        ],
        "outputs": [
            {"name": "outToken", "type": "address"},
            {"name": "amount", "type": "uint64"},
        ],
    },
    {
        "type": "function",
        "name": "publishEntity",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "token", "type": "address"},
            {"name": "manifestHash", "type": "bytes32"},
            {"name": "manifestUri", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "ProofAdd",
        "anonymous": False,
        "inputs": [
            {"name": "proofHash", "type": "bytes32", "indexed": True},
            {"name": "domainHash", "type": "bytes32", "indexed": True},
            {"name": "A", "type": "address", "indexed": False},
            {"name": "B", "type": "address", "indexed": False},
            {"name": "outputToken", "type": "address", "indexed": False},
            {"name": "outputAmount", "type": "uint256", "indexed": False},
            {"name": "inputsHash", "type": "bytes32", "indexed": False},
            {"name": "factHash", "type": "bytes32", "indexed": False},
            {"name": "ruleHash", "type": "bytes32", "indexed": False},
            {"name": "canonicalUri", "type": "string", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "ProofEntity",
        "anonymous": False,
        "inputs": [
            {"name": "token", "type": "address", "indexed": True},
            {"name": "manifestHash", "type": "bytes32", "indexed": True},
            {"name": "manifestUri", "type": "string", "indexed": False},
        ],
    },
]


class Web3Ledger:
    """Ledger implementation backed by web3 and a local signing key.

    Usage:
        ledger = Web3Ledger(
            rpc_url="https://testnet.hashio.io/api",
            private_key=operator_hex_key,
            contract_address=contract_addr,
        )
        receipt = ledger.call(contract_addr, "reasonAdd", args)
        prior = ledger.find_binding(proof_hash)

    A ledger built without a private key is read-only: call() raises.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: Optional[str] = None,
        chain_id: int = HEDERA_TESTNET_CHAIN_ID,
        gas: int = 300_000,
        receipt_timeout: int = 300,
        from_block: int | str = 0,
        abi: Optional[list[dict[str, Any]]] = None,
        w3: Optional[Web3] = None,
    ) -> None:
        self._w3 = w3 or Web3(HTTPProvider(rpc_url))
        self._account = Account.from_key(private_key) if private_key else None
        self._chain_id = chain_id
        self._gas = gas
        self._receipt_timeout = receipt_timeout
        self._from_block = from_block
        self._abi = abi or REASONING_ABI
        self._contract = self._contract_at(contract_address)
        self._event_topics = {
            Web3.to_hex(event_abi_to_log_topic(entry)): entry["name"]
            for entry in self._abi
            if entry["type"] == "event"
        }

    @property
    def address(self) -> Optional[str]:
        """Address of the signing account, if any."""
        return self._account.address if self._account else None

    def call(self, contract_ref: str, function: str, args: Sequence[Any]) -> LedgerReceipt:
        """Sign, send and await a state-changing contract call."""
        if self._account is None:
            raise RuntimeError("Ledger has no signing key; cannot send transactions")

        contract = self._contract_at(contract_ref)
        bound = contract.get_function_by_name(function)(*args)
        tx = bound.build_transaction({
            "from": self._account.address,
            "nonce": self._w3.eth.get_transaction_count(self._account.address),
            "gas": self._gas,
            "gasPrice": self._w3.eth.gas_price,
            "chainId": self._chain_id,
        })

        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Sent %s: %s", function, Web3.to_hex(tx_hash))

        receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        logger.info("Confirmed in block %s", receipt["blockNumber"])
        return self.decode_receipt(receipt, contract)

    def get_receipt(self, tx_reference: str) -> Optional[LedgerReceipt]:
        """Look up a mined transaction by hash. None if unknown."""
        try:
            receipt = self._w3.eth.get_transaction_receipt(tx_reference)
        except TransactionNotFound:
            return None
        return self.decode_receipt(receipt, self._contract)

    def find_binding(self, proof_hash: str) -> Optional[LedgerReceipt]:
        """Receipt of the transaction that first bound proof_hash, if any."""
        logs = self._contract.events.ProofAdd().get_logs(
            argument_filters={"proofHash": Web3.to_bytes(hexstr=proof_hash)},
            from_block=self._from_block,
        )
        if not logs:
            return None
        return self.get_receipt(Web3.to_hex(logs[0]["transactionHash"]))

    def decode_receipt(self, receipt: Any, contract: Any = None) -> LedgerReceipt:
        """Convert a web3 receipt into a LedgerReceipt with decoded events.

        Logs emitted by other contracts, or with topics not in the ABI,
        are not proof events and are left out.
        """
        contract = contract or self._contract
        events: list[LedgerEvent] = []
        for log in receipt["logs"]:
            if str(log["address"]).lower() != contract.address.lower():
                continue
            topics = log["topics"]
            if not topics:
                continue
            name = self._event_topics.get(Web3.to_hex(topics[0]))
            if name is None:
                continue
            decoded = contract.events[name]().process_log(log)
            events.append(LedgerEvent(name=name, args=_plain_args(decoded["args"])))

        return LedgerReceipt(
            tx_reference=Web3.to_hex(receipt["transactionHash"]),
            status="SUCCESS" if receipt["status"] == 1 else "REVERTED",
            events=tuple(events),
            block_number=receipt.get("blockNumber"),
        )

    def _contract_at(self, address: str) -> Any:
        return self._w3.eth.contract(address=Web3.to_checksum_address(address), abi=self._abi)


def _plain_args(args: Any) -> dict[str, Any]:
    """Event args with bytes rendered as 0x hex."""
    plain: dict[str, Any] = {}
    for key, value in dict(args).items():
        plain[key] = Web3.to_hex(value) if isinstance(value, (bytes, bytearray)) else value
    return plain
