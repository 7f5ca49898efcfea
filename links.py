from __future__ import annotations

from chains.registry import get_chain


def _explorer(chain_ticker: str) -> str:
    info = get_chain(chain_ticker)
    return info.explorer if info else ""


def explorer_tx_link(chain_ticker: str, tx_hash: str) -> str:
    base = _explorer(chain_ticker)
    if not base or not tx_hash:
        return ""
    return f"{base}/tx/{tx_hash}"


def explorer_token_link(chain_ticker: str, token_address: str) -> str:
    base = _explorer(chain_ticker)
    if not base or not token_address:
        return ""
    return f"{base}/token/{token_address}"


def explorer_address_link(chain_ticker: str, address: str) -> str:
    base = _explorer(chain_ticker)
    if not base or not address:
        return ""
    return f"{base}/address/{address}"


def short_address(address: str, short: bool = True) -> str:
    if not address:
        return ""
    if short and len(address) > 12:
        return f"{address[:6]}...{address[-4:]}"
    return address
