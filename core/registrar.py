from __future__ import annotations

import asyncio
import logging
from typing import Optional

from chains.registry import ChainFamily, get_chain
from core.errors import StorageUnavailable, StreamProviderError, StreamProvisionFailed
from core.models import AttachResult, TrackedWallet
from core.store import SubscriptionStore
from providers.moralis_streams import MoralisStreamsClient

logger = logging.getLogger(__name__)


class StreamRegistrar:
    """
    Keeps exactly one provider stream per existing TrackedWallet.

    Provider calls are blocking (requests), so they run in a worker thread;
    each carries the client's timeout. A timeout is a failure, never a
    success.
    """

    def __init__(self, store: SubscriptionStore, client: MoralisStreamsClient):
        self.store = store
        self.client = client

    async def ensure_stream(self, wallet: TrackedWallet, webhook_url: str) -> Optional[str]:
        """
        Return the wallet's stream id, creating the stream if needed.

        Returns None when the wallet record disappeared while the stream was
        being created (its stream is released here). Raises
        StreamProvisionFailed on provider errors; the wallet stays pending.
        """
        if wallet.stream_id:
            return wallet.stream_id

        info = get_chain(wallet.chain_ticker)
        try:
            data = await asyncio.to_thread(
                self.client.create_stream,
                info.family,
                wallet.address,
                info.provider_chain,
                webhook_url,
                f"Track {wallet.address[:8]}... on {info.name}",
                f"{info.ticker}_{wallet.address[:8]}",
            )
        except StreamProviderError as e:
            logger.warning("Stream creation failed for %s %s: %s", wallet.chain_ticker, wallet.address, e)
            raise StreamProvisionFailed(str(e)) from e

        stream_id = str(data["id"])
        try:
            attached = await self.store.attach_stream_id(wallet.chain_ticker, wallet.address, stream_id)
        except StorageUnavailable:
            await self.release_stream(stream_id, info.family)
            raise

        if attached is AttachResult.ATTACHED:
            logger.info("Stream %s attached to %s %s", stream_id, wallet.chain_ticker, wallet.address)
            return stream_id

        await self.release_stream(stream_id, info.family)
        if attached is AttachResult.MISSING:
            logger.info("Wallet %s %s untracked before its stream was ready", wallet.chain_ticker, wallet.address)
            return None

        current = await self.store.find_by_chain_and_address(wallet.chain_ticker, wallet.address)
        return current.stream_id if current else None

    async def release_stream(self, stream_id: str, family: ChainFamily) -> bool:
        """Delete a provider stream. Already-absent counts as released; errors return False."""
        try:
            return await asyncio.to_thread(self.client.delete_stream, stream_id, family)
        except StreamProviderError as e:
            logger.warning("Stream %s (%s) not released: %s", stream_id, family.value, e)
            return False

    async def update_stream(self, wallet: TrackedWallet, webhook_url: str) -> bool:
        if not wallet.stream_id:
            return False
        info = get_chain(wallet.chain_ticker)
        try:
            await asyncio.to_thread(
                self.client.update_stream,
                wallet.stream_id,
                info.family,
                wallet.address,
                info.provider_chain,
                webhook_url,
            )
        except StreamProviderError as e:
            logger.warning("Stream %s update failed: %s", wallet.stream_id, e)
            return False
        return True

    async def reconcile_pending(self, webhook_url: str) -> int:
        """Provision streams for wallets left pending by earlier failures."""
        try:
            pending = await self.store.list_pending_streams()
        except StorageUnavailable as e:
            logger.error("Cannot list pending streams: %s", e)
            return 0

        provisioned = 0
        for wallet in pending:
            try:
                if await self.ensure_stream(wallet, webhook_url):
                    provisioned += 1
            except StreamProvisionFailed:
                continue
            except StorageUnavailable as e:
                logger.error("Pending stream for %s %s not recorded: %s", wallet.chain_ticker, wallet.address, e)
                continue
        if provisioned:
            logger.info("Provisioned %d pending stream(s)", provisioned)
        return provisioned
