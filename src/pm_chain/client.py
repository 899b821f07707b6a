"""Custody contract client: on-chain market settlement and bet logs.

Markets are keyed on-chain by keccak256 of the UTF-8 market id. The oracle
account signs locally; the RPC node only relays raw transactions. Reading
BetPlaced logs needs only the custody address.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from src.pm_common.errors import ExternalServiceDegradedError

logger = logging.getLogger("pm.chain")

_SERVICE = "chain"

CUSTODY_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "settleMarket",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "marketId", "type": "bytes32"},
            {"name": "resolvedYes", "type": "bool"},
        ],
        "outputs": [],
    },
    {
        "type": "event",
        "name": "BetPlaced",
        "anonymous": False,
        "inputs": [
            {"name": "marketId", "type": "bytes32", "indexed": True},
            {"name": "user", "type": "address", "indexed": True},
            {"name": "side", "type": "bool", "indexed": False},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
]

BET_PLACED_TOPIC = "0x" + bytes(Web3.keccak(text="BetPlaced(bytes32,address,bool,uint256)")).hex()


def market_key(market_id: str) -> bytes:
    return bytes(Web3.keccak(text=market_id))


@dataclass(frozen=True)
class ChainBet:
    """A BetPlaced log; (tx_hash, log_index) identifies it."""

    market_id: str
    user_address: str
    side: bool
    amount: int  # wei
    tx_hash: str
    log_index: int
    block_number: int


class ChainService:
    def __init__(
        self,
        rpc_url: str,
        custody_address: str,
        oracle_private_key: str,
        receipt_timeout: float = 120.0,
        events_from_block: int = 0,
    ) -> None:
        self._w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._receipt_timeout = receipt_timeout
        self._events_from_block = events_from_block
        self._custody = (
            Web3.to_checksum_address(custody_address) if Web3.is_address(custody_address) else None
        )
        self._account = Account.from_key(oracle_private_key) if oracle_private_key else None
        if not self.enabled:
            logger.warning("On-chain settlement disabled: CUSTODY_ADDRESS/ORACLE_PRIVATE_KEY not set")

    @property
    def enabled(self) -> bool:
        return self._custody is not None and self._account is not None

    @property
    def reads_enabled(self) -> bool:
        return self._custody is not None

    async def close(self) -> None:
        await self._w3.provider.disconnect()

    async def settle_market(self, market_id: str, resolved_yes: bool) -> str:
        """Send custody.settleMarket and wait for the receipt. Returns the tx hash."""
        if self._custody is None or self._account is None:
            raise ExternalServiceDegradedError(_SERVICE, "settlement not configured")

        contract = self._w3.eth.contract(address=self._custody, abi=CUSTODY_ABI)
        sender = self._account.address
        try:
            tx = await contract.functions.settleMarket(
                market_key(market_id), resolved_yes
            ).build_transaction(
                {
                    "from": sender,
                    "nonce": await self._w3.eth.get_transaction_count(sender, "pending"),
                }
            )
            signed = self._account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except (Web3Exception, OSError, asyncio.TimeoutError, ValueError) as exc:
            raise ExternalServiceDegradedError(
                _SERVICE, f"settleMarket({market_id}) failed: {exc}"
            ) from exc

        hex_hash = "0x" + bytes(tx_hash).hex()
        if receipt["status"] != 1:
            raise ExternalServiceDegradedError(_SERVICE, f"settleMarket reverted in {hex_hash}")
        logger.info("Settled market %s on-chain: %s", market_id, hex_hash)
        return hex_hash

    async def get_bet_events(self, market_id: str) -> list[ChainBet]:
        """All custody BetPlaced logs for one market, oldest first."""
        if self._custody is None:
            raise ExternalServiceDegradedError(_SERVICE, "custody address not configured")

        event = self._w3.eth.contract(address=self._custody, abi=CUSTODY_ABI).events.BetPlaced()
        try:
            logs = await self._w3.eth.get_logs(
                {
                    "address": self._custody,
                    "topics": [BET_PLACED_TOPIC, "0x" + market_key(market_id).hex()],
                    "fromBlock": self._events_from_block,
                    "toBlock": "latest",
                }
            )
            decoded = [event.process_log(log) for log in logs]
        except (Web3Exception, OSError, asyncio.TimeoutError, ValueError) as exc:
            raise ExternalServiceDegradedError(
                _SERVICE, f"BetPlaced logs for {market_id} failed: {exc}"
            ) from exc

        bets = [
            ChainBet(
                market_id=market_id,
                user_address=Web3.to_checksum_address(entry["args"]["user"]),
                side=bool(entry["args"]["side"]),
                amount=int(entry["args"]["amount"]),
                tx_hash="0x" + bytes(entry["transactionHash"]).hex(),
                log_index=int(entry["logIndex"]),
                block_number=int(entry["blockNumber"]),
            )
            for entry in decoded
        ]
        logger.info("Found %d on-chain bets for market %s", len(bets), market_id)
        return bets
