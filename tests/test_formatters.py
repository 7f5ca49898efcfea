from conftest import ETH_ADDR, SOL_ADDR
from core.models import TrackedWallet, User
from formatters import (
    format_help,
    format_native_alert,
    format_stats,
    format_token_alert,
    format_value,
    format_wallet_list,
)
from links import explorer_tx_link, short_address


class TestFormatValue:
    def test_fraction(self):
        assert format_value("1500000000000000000", 18) == "1.5"

    def test_whole_number_has_no_decimal_point(self):
        assert format_value("1000000000000000000", 18) == "1"

    def test_zero(self):
        assert format_value("0", 18) == "0"

    def test_small_amount(self):
        assert format_value("1", 18) == "0.000000000000000001"

    def test_large_amount_keeps_every_digit(self):
        raw = "123456789012345678901234567890123456789"
        assert format_value(raw, 18) == "123456789012345678901.234567890123456789"

    def test_other_decimals(self):
        assert format_value("2500000", 6) == "2.5"
        assert format_value(1_000_000_000, 9) == "1"
        assert format_value("42", 0) == "42"

    def test_unparseable_is_zero(self):
        assert format_value("abc", 18) == "0"
        assert format_value(None, 18) == "0"


class TestAlerts:
    def test_native_alert_contents(self):
        tx = {
            "hash": "0xabc",
            "fromAddress": "0x1111111111111111111111111111111111111111",
            "toAddress": ETH_ADDR.lower(),
            "value": "1500000000000000000",
            "gasPrice": "20000000000",
            "gas": "21000",
        }
        msg = format_native_alert(tx, "ETH", incoming=True)
        assert "Ethereum Transaction" in msg
        assert "Received" in msg
        assert "1.5 ETH" in msg
        assert "0.00042 ETH" in msg
        assert "https://etherscan.io/tx/0xabc" in msg

    def test_outgoing_native_alert(self):
        msg = format_native_alert({"hash": "0x1", "value": "1"}, "BSC", incoming=False)
        assert "Sent" in msg
        assert "BNB" in msg

    def test_token_alert_escapes_provider_strings(self):
        transfer = {
            "transactionHash": "0xdef",
            "from": ETH_ADDR,
            "to": "0x2222222222222222222222222222222222222222",
            "value": "2500000",
            "address": "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
            "tokenName": "<script>",
            "tokenSymbol": "USDC",
            "tokenDecimals": "6",
        }
        msg = format_token_alert(transfer, "ETH", incoming=False)
        assert "2.5 USDC" in msg
        assert "&lt;script&gt;" in msg
        assert "<script>" not in msg
        assert "/token/0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48" in msg


class TestListsAndStats:
    def test_empty_list(self):
        assert "not tracking any wallets yet" in format_wallet_list([])
        assert "on SOL" in format_wallet_list([], "sol")

    def test_grouped_by_chain_with_alias(self):
        wallets = [
            TrackedWallet("SOL", SOL_ADDR, frozenset({1})),
            TrackedWallet("ETH", ETH_ADDR, frozenset({1}), alias="Treasury"),
        ]
        msg = format_wallet_list(wallets)
        assert msg.index("Ethereum") < msg.index("Solana")
        assert "Treasury" in msg
        assert short_address(SOL_ADDR) in msg

    def test_stats(self):
        wallets = [
            TrackedWallet("ETH", ETH_ADDR, frozenset({7})),
            TrackedWallet("SOL", SOL_ADDR, frozenset({7})),
        ]
        msg = format_stats(User(7, "alice"), wallets)
        assert "<b>2</b>" in msg
        assert "ETH: 1" in msg
        assert "@alice" in msg

    def test_help_lists_only_enabled_chains(self):
        msg = format_help(["ETH", "SOL"])
        assert "ETH - Ethereum" in msg
        assert "BSC" not in msg


def test_links():
    assert explorer_tx_link("SOL", "sig") == "https://solscan.io/tx/sig"
    assert explorer_tx_link("BTC", "x") == ""
    assert short_address(ETH_ADDR) == "0xde0B...7BAe"


def test_token_alert_with_zero_decimals():
    transfer = {"from": ETH_ADDR, "to": ETH_ADDR, "value": "5", "tokenSymbol": "NFT", "tokenDecimals": 0}
    assert "5 NFT" in format_token_alert(transfer, "ETH", incoming=True)
    transfer["tokenDecimals"] = None
    assert "0.000000000000000005 NFT" in format_token_alert(transfer, "ETH", incoming=True)
