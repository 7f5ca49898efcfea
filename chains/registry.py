from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class ChainFamily(Enum):
    """Address shape + provider sub-API shared by a group of chains."""
    EVM = "evm"
    SINGLE_LEDGER = "solana"


@dataclass(frozen=True)
class ChainInfo:
    ticker: str
    name: str
    family: ChainFamily
    provider_chain: str         # chain selector used by the stream provider ("0x1", "solana", ...)
    explorer: str
    native_symbol: str
    decimals: int
    icon: str


CHAINS: Dict[str, ChainInfo] = {
    info.ticker: info
    for info in (
        ChainInfo("ETH", "Ethereum", ChainFamily.EVM, "0x1", "https://etherscan.io", "ETH", 18, "⟠"),
        ChainInfo("BSC", "BNB Smart Chain", ChainFamily.EVM, "0x38", "https://bscscan.com", "BNB", 18, "🟡"),
        ChainInfo("POLYGON", "Polygon", ChainFamily.EVM, "0x89", "https://polygonscan.com", "MATIC", 18, "🟣"),
        ChainInfo("AVALANCHE", "Avalanche", ChainFamily.EVM, "0xa86a", "https://snowtrace.io", "AVAX", 18, "🔺"),
        ChainInfo("ARBITRUM", "Arbitrum", ChainFamily.EVM, "0xa4b1", "https://arbiscan.io", "ETH", 18, "🔵"),
        ChainInfo("OPTIMISM", "Optimism", ChainFamily.EVM, "0xa", "https://optimistic.etherscan.io", "ETH", 18, "🔴"),
        ChainInfo("BASE", "Base", ChainFamily.EVM, "0x2105", "https://basescan.org", "ETH", 18, "🔷"),
        ChainInfo("SOL", "Solana", ChainFamily.SINGLE_LEDGER, "solana", "https://solscan.io", "SOL", 9, "◎"),
    )
}

_BY_PROVIDER_CHAIN: Dict[str, str] = {info.provider_chain: info.ticker for info in CHAINS.values()}


def get_chain(ticker: str) -> Optional[ChainInfo]:
    return CHAINS.get((ticker or "").strip().upper())


def family_for(ticker: str) -> ChainFamily:
    """Family of a supported ticker. Unknown tickers are a programming error here."""
    info = get_chain(ticker)
    if info is None:
        raise KeyError(f"unknown chain ticker: {ticker!r}")
    return info.family


def ticker_for_provider_chain(provider_chain: str) -> Optional[str]:
    """Map the provider's chain id ("0x1", "0x2105", "solana") back to our ticker."""
    return _BY_PROVIDER_CHAIN.get((provider_chain or "").strip().lower())
