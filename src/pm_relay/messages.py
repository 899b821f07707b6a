"""Relay wire messages."""

import secrets
import time
from dataclasses import dataclass
from typing import Any

BET_MESSAGE_TYPE = "prediction_bet"
BET_MESSAGE_VERSION = "1.0"


@dataclass(frozen=True)
class BetEvent:
    market_id: str
    side: bool
    amount_wei: int
    user_address: str

    def to_message(self) -> dict[str, Any]:
        return {
            "type": BET_MESSAGE_TYPE,
            "version": BET_MESSAGE_VERSION,
            "marketId": self.market_id,
            "side": self.side,
            "amount": str(self.amount_wei),
            "user": self.user_address,
            "timestamp": int(time.time() * 1000),
            "nonce": secrets.token_hex(8),
        }


def request_message(request_id: str, method: str, params: dict[str, Any]) -> dict[str, Any]:
    return {"id": request_id, "type": method, "params": params}
