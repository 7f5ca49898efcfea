from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from chains.registry import CHAINS, family_for
from core.errors import StreamProvisionFailed, UnsupportedChain
from core.models import TrackedWallet, User
from core.registrar import StreamRegistrar
from core.store import SubscriptionStore
from core.validator import validate, validate_alias

logger = logging.getLogger(__name__)

STARTED = "started"                 # first tracker of this wallet
JOINED = "joined"                   # wallet was already tracked by someone else
ALREADY_TRACKING = "already_tracking"
STOPPED = "stopped"
NOT_TRACKING = "not_tracking"


@dataclass(frozen=True)
class TrackOutcome:
    status: str
    wallet: TrackedWallet


@dataclass(frozen=True)
class UntrackOutcome:
    status: str
    chain_ticker: str
    address: str
    stream_released: Optional[bool] = None  # None: no release was needed


class TrackingService:
    """What the chat commands call: validate, mutate the store, keep streams in sync."""

    def __init__(
        self,
        store: SubscriptionStore,
        registrar: StreamRegistrar,
        webhook_url: str,
        supported_chains: Optional[Iterable[str]] = None,
    ):
        self.store = store
        self.registrar = registrar
        self.webhook_url = webhook_url
        self.supported = {c.upper() for c in (supported_chains or CHAINS)}

    def _check_chain(self, chain_ticker: str) -> str:
        chain = (chain_ticker or "").strip().upper()
        if chain not in self.supported:
            raise UnsupportedChain(
                f"chain {chain!r} not enabled",
                user_message=f"Unsupported chain: {chain}\n\nSupported chains: {', '.join(sorted(self.supported))}",
            )
        return chain

    async def track(
        self,
        user_id: int,
        username: Optional[str],
        chain_ticker: str,
        raw_address: str,
        alias: Optional[str] = None,
    ) -> TrackOutcome:
        chain = self._check_chain(chain_ticker)
        alias = validate_alias(alias)
        address = validate(raw_address, chain)

        await self.store.upsert_user(user_id, username)
        result = await self.store.subscribe(user_id, chain, address, alias)
        wallet = result.wallet

        # Only the creator, or a tracker retrying after a failure, provisions.
        # Joiners of a pending wallet leave it to the creator or reconcile_pending.
        if wallet.pending_stream and (result.created or result.already_subscribed):
            try:
                stream_id = await self.registrar.ensure_stream(wallet, self.webhook_url)
            except StreamProvisionFailed:
                logger.warning("User %s: stream pending for %s %s", user_id, chain, address)
                raise
            wallet = await self.store.find_by_chain_and_address(chain, address) or wallet
            if stream_id is None:
                logger.info("User %s: %s %s was untracked during setup", user_id, chain, address)

        if result.already_subscribed:
            status = ALREADY_TRACKING
        elif result.created:
            status = STARTED
            logger.info("User %s tracking %s on %s (new wallet)", user_id, address, chain)
        else:
            status = JOINED
            logger.info("User %s tracking %s on %s", user_id, address, chain)
        return TrackOutcome(status=status, wallet=wallet)

    async def untrack(self, user_id: int, chain_ticker: str, raw_address: str) -> UntrackOutcome:
        chain = self._check_chain(chain_ticker)
        address = validate(raw_address, chain)

        result = await self.store.unsubscribe(user_id, chain, address)
        if not result.removed:
            return UntrackOutcome(status=NOT_TRACKING, chain_ticker=chain, address=address)

        released = None
        if result.deleted and result.stream_id:
            released = await self.registrar.release_stream(result.stream_id, family_for(chain))
            if not released:
                # local state is already clean; the provider stream needs out-of-band cleanup
                logger.error("Orphaned stream %s for %s %s", result.stream_id, chain, address)

        logger.info("User %s untracked %s on %s", user_id, address, chain)
        return UntrackOutcome(status=STOPPED, chain_ticker=chain, address=address, stream_released=released)

    async def list_wallets(self, user_id: int, chain_ticker: Optional[str] = None) -> List[TrackedWallet]:
        chain = self._check_chain(chain_ticker) if chain_ticker else None
        return await self.store.list_for_user(user_id, chain)

    async def stats(self, user_id: int) -> Optional[tuple]:
        user = await self.store.get_user(user_id)
        if user is None:
            return None
        return user, await self.store.list_for_user(user_id)

    async def register_user(self, user_id: int, username: Optional[str]) -> User:
        return await self.store.upsert_user(user_id, username)
