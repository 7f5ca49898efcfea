from __future__ import annotations

import re
from typing import Optional

import base58

_BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
PUBKEY_BYTES = 32


def to_canonical_solana(address: str) -> Optional[str]:
    """
    Base58 public keys are already canonical; return the input when it is a
    32-byte key, else None.
    """
    address = (address or "").strip()
    if not _BASE58_ADDRESS.match(address):
        return None
    try:
        raw = base58.b58decode(address)
    except ValueError:
        return None
    if len(raw) != PUBKEY_BYTES:
        return None
    return address


def lookup_key_solana(address: str) -> Optional[str]:
    # base58 is case-sensitive, so payload addresses are used as given
    return to_canonical_solana(address)
