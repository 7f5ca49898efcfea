from __future__ import annotations

import re
from typing import Optional

from chains.evm import to_canonical_evm
from chains.registry import ChainFamily, get_chain
from chains.solana import to_canonical_solana
from core.errors import InvalidAlias, InvalidFormat, UnsupportedChain

ALIAS_MAX_LEN = 32
_ALIAS_CHARS = re.compile(r"^[a-zA-Z0-9_\-\s]+$")


def validate(raw_address: str, chain_ticker: str) -> str:
    """
    Return the canonical address for `chain_ticker`.

    Raises UnsupportedChain for tickers outside the chain table (checked
    before the address is looked at) and InvalidFormat for bad syntax.
    """
    info = get_chain(chain_ticker)
    if info is None:
        raise UnsupportedChain(
            f"unsupported chain {chain_ticker!r}",
            user_message=f"Unsupported chain: {(chain_ticker or '').upper()}",
        )

    if info.family is ChainFamily.EVM:
        canonical = to_canonical_evm(raw_address)
        if canonical is None:
            raise InvalidFormat(
                f"bad EVM address {raw_address!r}",
                user_message=f"Invalid {info.ticker} address format. Expected 0x... format.",
            )
        return canonical

    canonical = to_canonical_solana(raw_address)
    if canonical is None:
        raise InvalidFormat(
            f"bad base58 address {raw_address!r}",
            user_message="Invalid Solana address format. Expected Base58 encoded address.",
        )
    return canonical


def validate_alias(alias: Optional[str]) -> Optional[str]:
    alias = (alias or "").strip()
    if not alias:
        return None
    if len(alias) > ALIAS_MAX_LEN:
        raise InvalidAlias(user_message=f"Alias must be {ALIAS_MAX_LEN} characters or less")
    if not _ALIAS_CHARS.match(alias):
        raise InvalidAlias()
    return alias
