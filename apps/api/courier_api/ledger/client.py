"""Read-only ledger queries for thread confirmation state."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from web3 import Web3
from web3.exceptions import ContractLogicError

from courier_api.errors import LedgerUnavailable
from courier_api.settings import get_settings

logger = logging.getLogger(__name__)

# Only the view we need from the message contract
MESSAGE_CONTRACT_ABI = [
    {
        "type": "function",
        "name": "getReadStatus",
        "stateMutability": "view",
        "inputs": [
            {"name": "threadId", "type": "bytes32"},
            {"name": "participant", "type": "address"},
        ],
        "outputs": [
            {"name": "lastReadIndex", "type": "uint256"},
            {"name": "totalMessages", "type": "uint256"},
            {"name": "unreadCount", "type": "uint256"},
            {"name": "joinedAtIndex", "type": "uint256"},
        ],
    }
]


class LedgerClient(ABC):
    """Abstract ledger query interface."""

    @abstractmethod
    def confirmed_count(self, thread_id: str, participant: str) -> int:
        """Number of confirmed messages in ``thread_id``; 0 if unknown on-chain."""
        pass


class ContractLedgerClient(LedgerClient):
    """Queries the message contract over JSON-RPC."""

    def __init__(self, rpc_url: str, contract_address: str, timeout_seconds: int = 10):
        """Initialize contract client."""
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=MESSAGE_CONTRACT_ABI,
        )

    def confirmed_count(self, thread_id: str, participant: str) -> int:
        try:
            _, total_messages, _, _ = self.contract.functions.getReadStatus(
                Web3.to_bytes(hexstr=thread_id),
                Web3.to_checksum_address(participant),
            ).call()
        except ContractLogicError as e:
            # Reverts when the thread was never recorded on-chain
            logger.debug(f"Thread {thread_id} not known on-chain: {e}")
            return 0
        except Exception as e:
            logger.warning(f"Ledger query failed for thread {thread_id}: {e}")
            raise LedgerUnavailable(f"Ledger query failed: {e}", thread_id=thread_id) from e
        return int(total_messages)


class StaticLedgerClient(LedgerClient):
    """In-process ledger for local development and tests."""

    def __init__(self, counts: Optional[dict[str, int]] = None):
        self.counts = {k.lower(): v for k, v in (counts or {}).items()}

    def set_count(self, thread_id: str, count: int) -> None:
        self.counts[thread_id.lower()] = count

    def confirmed_count(self, thread_id: str, participant: str) -> int:
        return self.counts.get(thread_id.lower(), 0)


_ledger_client: Optional[LedgerClient] = None


def get_ledger_client() -> LedgerClient:
    """Get ledger client instance based on settings."""
    global _ledger_client
    if _ledger_client is not None:
        return _ledger_client

    settings = get_settings()
    provider = settings.ledger_provider.lower()
    if provider == "contract":
        if not settings.rpc_url:
            raise ValueError("RPC_URL required for contract ledger")
        if not settings.message_contract_address:
            raise ValueError("MESSAGE_CONTRACT_ADDRESS required for contract ledger")
        _ledger_client = ContractLedgerClient(
            settings.rpc_url,
            settings.message_contract_address,
            timeout_seconds=settings.ledger_timeout_seconds,
        )
    elif provider == "static":
        logger.warning("Using static ledger client - confirmed counts are not on-chain")
        _ledger_client = StaticLedgerClient()
    else:
        raise ValueError(f"Unknown ledger provider: {provider}")
    return _ledger_client
