import pytest

from chains.registry import CHAINS, ChainFamily, family_for, ticker_for_provider_chain
from conftest import ETH_ADDR, ETH_ADDR_2, SOL_ADDR
from core.errors import InvalidAlias, InvalidFormat, UnsupportedChain
from core.validator import validate, validate_alias


class TestEvmAddresses:
    def test_canonical_form_is_checksummed(self):
        assert validate(ETH_ADDR.lower(), "ETH") == ETH_ADDR

    def test_case_variants_give_identical_canonical_form(self):
        variants = [ETH_ADDR_2, ETH_ADDR_2.lower(), "0x" + ETH_ADDR_2[2:].upper()]
        assert {validate(v, "ETH") for v in variants} == {ETH_ADDR_2}

    def test_every_evm_chain_uses_the_same_rules(self):
        for ticker, info in CHAINS.items():
            if info.family is ChainFamily.EVM:
                assert validate(ETH_ADDR.lower(), ticker) == ETH_ADDR

    def test_ticker_is_case_insensitive(self):
        assert validate(ETH_ADDR, "eth") == ETH_ADDR

    @pytest.mark.parametrize("bad", [
        "",
        "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb",     # 39 hex chars
        ETH_ADDR + "00",
        ETH_ADDR[2:],                                    # missing 0x
        "0x" + "g" * 40,
        SOL_ADDR,
    ])
    def test_rejects_bad_syntax(self, bad):
        with pytest.raises(InvalidFormat):
            validate(bad, "ETH")


class TestSolanaAddresses:
    def test_valid_key_is_returned_unchanged(self):
        assert validate(SOL_ADDR, "SOL") == SOL_ADDR

    def test_all_ones_is_the_zero_key(self):
        assert validate("1" * 32, "SOL") == "1" * 32

    @pytest.mark.parametrize("bad", [
        "",
        "1" * 31,                   # too short
        "1" * 33,                   # decodes to 33 bytes
        "z" * 44,                   # decodes to more than 32 bytes
        "0OIl" + SOL_ADDR[4:],      # outside the base58 alphabet
        ETH_ADDR,
    ])
    def test_rejects_bad_syntax(self, bad):
        with pytest.raises(InvalidFormat):
            validate(bad, "SOL")


class TestUnsupportedChain:
    @pytest.mark.parametrize("ticker", ["BTC", "DOGE", "", "ETHX"])
    def test_unknown_ticker_is_unsupported_not_invalid(self, ticker):
        with pytest.raises(UnsupportedChain):
            validate("definitely not an address", ticker)
        with pytest.raises(UnsupportedChain):
            validate(ETH_ADDR, ticker)

    def test_unsupported_is_not_a_format_error(self):
        assert not issubclass(UnsupportedChain, InvalidFormat)


class TestChainTable:
    def test_provider_chain_ids_round_trip(self):
        for ticker, info in CHAINS.items():
            assert ticker_for_provider_chain(info.provider_chain) == ticker

    def test_unknown_provider_chain(self):
        assert ticker_for_provider_chain("0x999999") is None

    def test_family_routing(self):
        assert family_for("SOL") is ChainFamily.SINGLE_LEDGER
        assert family_for("BASE") is ChainFamily.EVM
        with pytest.raises(KeyError):
            family_for("BTC")


class TestAlias:
    def test_empty_alias_is_none(self):
        assert validate_alias(None) is None
        assert validate_alias("   ") is None

    def test_valid_alias(self):
        assert validate_alias("My Wallet_1-a") == "My Wallet_1-a"

    def test_too_long(self):
        with pytest.raises(InvalidAlias):
            validate_alias("x" * 33)

    def test_bad_characters(self):
        with pytest.raises(InvalidAlias):
            validate_alias("<b>whale</b>")
