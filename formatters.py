from __future__ import annotations

import html
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from chains.registry import CHAINS, get_chain
from core.models import TrackedWallet, User
from links import explorer_address_link, explorer_token_link, explorer_tx_link, short_address


def format_value(value: Any, decimals: int = 18) -> str:
    """
    Render a raw integer amount in whole units using integer math only.

    "1500000000000000000", 18 -> "1.5"; "1000000000000000000", 18 -> "1".
    Unparseable values render as "0".
    """
    try:
        raw = int(str(value).strip())
        decimals = int(decimals)
    except (TypeError, ValueError):
        return "0"

    sign = "-" if raw < 0 else ""
    raw = abs(raw)
    if decimals <= 0:
        return f"{sign}{raw}"

    whole, frac = divmod(raw, 10 ** decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    if frac_str:
        return f"{sign}{whole}.{frac_str}"
    return f"{sign}{whole}"


def direction_emoji(incoming: bool) -> str:
    return "📥" if incoming else "📤"


def _e(s: Any) -> str:
    return html.escape(str(s or ""), quote=True)


def format_native_alert(tx: Dict[str, Any], chain_ticker: str, incoming: bool) -> str:
    info = get_chain(chain_ticker)
    name = info.name if info else chain_ticker
    symbol = info.native_symbol if info else chain_ticker
    decimals = info.decimals if info else 18
    icon = info.icon if info else "🔗"

    tx_hash = tx.get("hash") or ""
    from_addr = (tx.get("fromAddress") or "").lower()
    to_addr = (tx.get("toAddress") or "").lower()
    amount = format_value(tx.get("value") or "0", decimals)

    try:
        fee_raw = int(str(tx.get("gasPrice") or "0")) * int(str(tx.get("gas") or "0"))
        fee = f"{format_value(fee_raw, decimals)} {symbol}"
    except ValueError:
        fee = "Unknown"

    lines = [
        f"{icon} <b>{_e(name)} Transaction</b>",
        "",
        f"{direction_emoji(incoming)} <b>{'Received' if incoming else 'Sent'}</b>",
        f"💰 Amount: <code>{amount} {_e(symbol)}</code>",
        "",
        f"📍 From: <code>{_e(short_address(from_addr))}</code>",
        f"📍 To: <code>{_e(short_address(to_addr))}</code>",
        "",
        f"⛽ Gas Fee: <code>{_e(fee)}</code>",
    ]
    link = explorer_tx_link(chain_ticker, tx_hash)
    if link:
        lines.append(f'🔗 <a href="{_e(link)}">View on Explorer</a>')
    return "\n".join(lines)


def format_token_alert(transfer: Dict[str, Any], chain_ticker: str, incoming: bool, tx_hash: str = "") -> str:
    info = get_chain(chain_ticker)
    name = info.name if info else chain_ticker
    icon = info.icon if info else "🔗"

    tx_hash = transfer.get("transactionHash") or tx_hash
    from_addr = (transfer.get("from") or "").lower()
    to_addr = (transfer.get("to") or "").lower()
    token_address = transfer.get("address") or ""
    token_name = transfer.get("tokenName") or "Unknown Token"
    token_symbol = transfer.get("tokenSymbol") or "???"
    decimals = transfer.get("tokenDecimals")
    amount = format_value(transfer.get("value") or "0", 18 if decimals in (None, "") else decimals)

    lines = [
        f"{icon} <b>{_e(name)} Token Transaction</b>",
        "",
        f"{direction_emoji(incoming)} <b>{'Received' if incoming else 'Sent'}</b>",
        f"🪙 Token: <b>{_e(token_name)} ({_e(token_symbol)})</b>",
        f"💰 Amount: <code>{amount} {_e(token_symbol)}</code>",
        "",
        f"📍 From: <code>{_e(short_address(from_addr))}</code>",
        f"📍 To: <code>{_e(short_address(to_addr))}</code>",
        "",
    ]
    tx_link = explorer_tx_link(chain_ticker, tx_hash)
    if tx_link:
        lines.append(f'🔗 <a href="{_e(tx_link)}">View on Explorer</a>')
    token_link = explorer_token_link(chain_ticker, token_address)
    if token_link:
        lines.append(f'📄 <a href="{_e(token_link)}">Token Contract</a>')
    return "\n".join(lines).strip()


def format_wallet_list(wallets: Iterable[TrackedWallet], chain_filter: Optional[str] = None) -> str:
    wallets = list(wallets)
    if not wallets:
        if chain_filter:
            return f"You're not tracking any wallets on {_e(chain_filter.upper())}."
        return "You're not tracking any wallets yet.\n\nUse /track to start monitoring a wallet!"

    by_chain: Dict[str, List[TrackedWallet]] = defaultdict(list)
    for w in wallets:
        by_chain[w.chain_ticker].append(w)

    lines = ["<b>📊 Your Tracked Wallets</b>", ""]
    for chain in sorted(by_chain):
        info = get_chain(chain)
        lines.append(f"{info.icon if info else '🔗'} <b>{_e(info.name if info else chain)}</b>")
        for w in by_chain[chain]:
            lines.append(f"  • <code>{_e(w.alias or short_address(w.address))}</code>")
            if w.alias:
                lines.append(f'    <i><a href="{_e(explorer_address_link(chain, w.address))}">{_e(short_address(w.address))}</a></i>')
        lines.append("")
    lines.append("Use /untrack to stop monitoring a wallet")
    return "\n".join(lines)


def format_help(supported: Optional[Iterable[str]] = None) -> str:
    tickers = list(supported) if supported is not None else list(CHAINS)
    chains = "\n".join(f"{CHAINS[t].icon} {t} - {CHAINS[t].name}" for t in tickers if t in CHAINS)
    return (
        "<b>🤖 Wallet Tracker Bot - Help</b>\n"
        "\n"
        "<b>📝 Commands:</b>\n"
        "\n"
        "/start - Start the bot and see welcome message\n"
        "/help - Show this help message\n"
        "\n"
        "/track &lt;CHAIN&gt; &lt;ADDRESS&gt; [ALIAS] - Start tracking a wallet\n"
        "  Example: <code>/track ETH 0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb MyWallet</code>\n"
        "\n"
        "/list [CHAIN] - Show all tracked wallets\n"
        "  Example: <code>/list</code> or <code>/list ETH</code>\n"
        "\n"
        "/untrack &lt;CHAIN&gt; &lt;ADDRESS&gt; - Stop tracking a wallet\n"
        "  Example: <code>/untrack ETH 0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb</code>\n"
        "\n"
        "/stats - Show your tracking statistics\n"
        "\n"
        "<b>🔗 Supported Chains:</b>\n"
        f"{chains}\n"
        "\n"
        "<b>💡 Tips:</b>\n"
        "• Add an alias to easily identify wallets\n"
        "• You can track the same wallet as other users\n"
        "• Alerts are sent in real-time as transactions occur"
    )


def format_stats(user: User, wallets: Iterable[TrackedWallet]) -> str:
    wallets = list(wallets)
    counts: Dict[str, int] = defaultdict(int)
    for w in wallets:
        counts[w.chain_ticker] += 1

    lines = [
        "<b>📊 Your Statistics</b>",
        "",
        f"👤 User ID: <code>{user.telegram_id}</code>",
        f"📱 Username: @{_e(user.username or 'N/A')}",
        f"💼 Tracked Wallets: <b>{len(wallets)}</b>",
    ]
    if counts:
        lines += ["", "<b>By Chain:</b>"]
        for chain in sorted(counts):
            info = get_chain(chain)
            lines.append(f"  {info.icon if info else '🔗'} {chain}: {counts[chain]}")
    return "\n".join(lines)
