from __future__ import annotations

import re
from typing import Optional

from web3 import Web3

_HEX_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


def to_canonical_evm(address: str) -> Optional[str]:
    """
    Return the EIP-55 checksummed form of a 20-byte hex address, or None.

    The checksum is computed from the lowercase hex, so any input casing
    yields the same canonical string. Mixed-case input is not rejected on a
    bad checksum: users paste addresses in every casing.
    """
    address = (address or "").strip()
    if not _HEX_ADDRESS.match(address):
        return None
    return Web3.to_checksum_address(address.lower())


def lookup_key_evm(address: str) -> Optional[str]:
    """Canonical form for an address seen in a provider payload (usually lowercase)."""
    return to_canonical_evm(address)
