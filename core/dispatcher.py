from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from chains.evm import lookup_key_evm
from chains.registry import ChainFamily, get_chain, ticker_for_provider_chain
from chains.solana import lookup_key_solana
from core.errors import BadSignature
from core.models import Alert, DispatchOutcome, TrackedWallet
from core.store import SubscriptionStore
from formatters import format_native_alert, format_token_alert

logger = logging.getLogger(__name__)


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _lower(s: Any) -> str:
    return str(s or "").lower()


class AlertDispatcher:
    """
    Turns one provider webhook into per-subscriber alerts.

    received -> signature-verified -> parsed -> resolved -> dispatched,
    or rejected on a bad signature / malformed body. Subscriber sets are
    read from the store for every event.

    `sender` needs an async `deliver(chat_id, text)`.
    """

    def __init__(self, store: SubscriptionStore, sender, webhook_secret: str, delivery_timeout: float = 30.0):
        self.store = store
        self.sender = sender
        self.secret = webhook_secret or ""
        self.delivery_timeout = delivery_timeout

    def verify_signature(self, body: bytes, signature: str) -> bool:
        expected = compute_signature(body, self.secret).encode("ascii")
        got = (signature or "").strip().lower().encode("utf-8", "replace")
        return hmac.compare_digest(expected, got)

    def check_signature(self, body: bytes, signature: str) -> None:
        if not self.verify_signature(body, signature):
            raise BadSignature("x-signature does not match body")

    async def handle(self, body: bytes, signature: Optional[str]) -> DispatchOutcome:
        if not signature:
            # the provider probes the endpoint without a signature when a stream is created
            return DispatchOutcome(status="probe")

        try:
            self.check_signature(body, signature)
        except BadSignature as e:
            logger.warning("Rejected webhook: %s", e)
            return DispatchOutcome(status="rejected", reason="signature")

        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("Rejected webhook: body is not JSON")
            return DispatchOutcome(status="rejected", reason="malformed")

        if not isinstance(payload, dict) or not isinstance(payload.get("txs") or [], list):
            logger.warning("Rejected webhook: unexpected payload shape")
            return DispatchOutcome(status="rejected", reason="malformed")

        txs = [tx for tx in (payload.get("txs") or []) if isinstance(tx, dict)]
        logger.info("Webhook received: %s (%d txs)", payload.get("tag") or "unknown", len(txs))

        chain_ticker = ticker_for_provider_chain(str(payload.get("chainId") or ""))
        if chain_ticker is None:
            logger.warning("Unknown chain id in webhook: %r", payload.get("chainId"))
            return DispatchOutcome(status="ignored", processed=len(txs), reason="unknown_chain")
        if not txs:
            return DispatchOutcome(status="ignored", reason="no_transactions")

        transfers = [t for t in (payload.get("erc20Transfers") or []) if isinstance(t, dict)]
        per_tx = await asyncio.gather(*(self._alerts_for_tx(tx, transfers, chain_ticker) for tx in txs))

        # a transfer without transactionHash matches every tx; alert it once per wallet
        pending: List[Tuple[TrackedWallet, Alert]] = []
        seen = set()
        for items in per_tx:
            for key, wallet, alert in items:
                if key is not None:
                    if key in seen:
                        continue
                    seen.add(key)
                pending.append((wallet, alert))

        results = await asyncio.gather(*(self._fan_out(wallet, alert) for wallet, alert in pending))
        delivered = sum(ok for ok, _ in results)
        failed = sum(bad for _, bad in results)
        return DispatchOutcome(
            status="dispatched",
            processed=len(txs),
            alerts=len(pending),
            deliveries=delivered,
            failures=failed,
        )

    # -----------------------------
    # resolution
    # -----------------------------
    @staticmethod
    def _lookup_key(family: ChainFamily, address: str) -> Optional[str]:
        if not address:
            return None
        if family is ChainFamily.EVM:
            return lookup_key_evm(_lower(address))
        return lookup_key_solana(address)

    async def _alerts_for_tx(
        self,
        tx: Dict[str, Any],
        transfers: List[Dict[str, Any]],
        chain_ticker: str,
    ) -> List[Tuple[Optional[tuple], TrackedWallet, Alert]]:
        """(dedupe key, wallet, alert) per alert; token alerts are keyed by (address, transfer index)."""
        family = get_chain(chain_ticker).family
        tx_hash = str(tx.get("hash") or "")
        tx_transfers = [
            (i, t) for i, t in enumerate(transfers)
            if not t.get("transactionHash") or _lower(t.get("transactionHash")) == _lower(tx_hash)
        ]

        parties = [tx.get("fromAddress"), tx.get("toAddress")]
        for _, t in tx_transfers:
            parties += [t.get("from"), t.get("to")]

        keys: List[str] = []
        for addr in parties:
            key = self._lookup_key(family, str(addr or ""))
            if key and key not in keys:
                keys.append(key)

        wallets = await asyncio.gather(*(self.store.find_by_chain_and_address(chain_ticker, k) for k in keys))
        tx_parties = {_lower(tx.get("fromAddress")), _lower(tx.get("toAddress"))}

        out: List[Tuple[Optional[tuple], TrackedWallet, Alert]] = []
        for wallet in wallets:
            if wallet is None or not wallet.subscribers:
                continue
            me = _lower(wallet.address)

            if tx_transfers:
                for i, t in tx_transfers:
                    if me not in tx_parties and me not in (_lower(t.get("from")), _lower(t.get("to"))):
                        continue
                    incoming = _lower(t.get("to")) == me
                    msg = format_token_alert(t, chain_ticker, incoming, tx_hash=tx_hash)
                    out.append(((wallet.address, i), wallet, Alert(chain_ticker, wallet.address, tx_hash, incoming, msg)))
            else:
                incoming = _lower(tx.get("toAddress")) == me
                msg = format_native_alert(tx, chain_ticker, incoming)
                out.append((None, wallet, Alert(chain_ticker, wallet.address, tx_hash, incoming, msg)))
        return out

    # -----------------------------
    # fan-out
    # -----------------------------
    async def _deliver_one(self, user_id: int, alert: Alert) -> bool:
        try:
            await asyncio.wait_for(self.sender.deliver(user_id, alert.message), timeout=self.delivery_timeout)
            return True
        except Exception as e:
            # one subscriber failing must not stop the others
            logger.warning("Alert to user %s failed (%s %s): %r", user_id, alert.chain_ticker, alert.tx_hash, e)
            return False

    async def _fan_out(self, wallet: TrackedWallet, alert: Alert) -> Tuple[int, int]:
        results = await asyncio.gather(*(self._deliver_one(uid, alert) for uid in sorted(wallet.subscribers)))
        ok = sum(1 for r in results if r)
        if ok:
            logger.info("Alert %s %s sent to %d user(s)", alert.chain_ticker, alert.tx_hash, ok)
        return ok, len(results) - ok
