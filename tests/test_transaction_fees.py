"""
Tests for the transaction fee tables, rounding and the fee quote endpoint
"""

from decimal import Decimal

import pytest

from keepon.domain.fees.transaction_fees import (
    AmountOutOfRangeError,
    CountryNotSupportedError,
    CurrencyNotSupportedError,
    InvalidFeeConfigurationError,
    TransactionFee,
    calculate_charge,
    calculate_pass_on,
    check_amount_in_range,
    format_decimal,
    get_transaction_fee,
    parse_amount,
    require_currency_limits,
    round_to_currency,
    to_minor_units,
)


class TestFeeSelection:
    """Which rate applies to a card"""

    def test_domestic_card(self):
        fee = get_transaction_fee("AU", "AU", "AUD")
        assert fee.fee_type == "domestic"
        assert fee.percentage_fee == Decimal("0.024")
        assert fee.fixed_fee == Decimal("0.4")

    def test_international_card(self):
        fee = get_transaction_fee("US", "au", "aud")
        assert fee.fee_type == "international"
        assert fee.percentage_fee == Decimal("0.039")

    def test_european_card_in_european_country(self):
        fee = get_transaction_fee("FR", "GB", "GBP")
        assert fee.fee_type == "european"
        assert fee.percentage_fee == Decimal("0.0195")

    def test_non_european_card_in_european_country(self):
        fee = get_transaction_fee("US", "IE", "EUR")
        assert fee.fee_type == "nonEuropean"
        assert fee.percentage_fee == Decimal("0.035")

    def test_unknown_charge_country(self):
        with pytest.raises(CountryNotSupportedError):
            get_transaction_fee("AU", "ZZ", "AUD")

    def test_currency_must_match_country(self):
        with pytest.raises(CurrencyNotSupportedError):
            get_transaction_fee("AU", "AU", "USD")


class TestRounding:
    """Half-up rounding into the currency's decimals"""

    def test_round_half_up(self):
        assert round_to_currency(Decimal("2.345"), 2) == Decimal("2.35")
        assert round_to_currency(Decimal("2.344"), 2) == Decimal("2.34")

    def test_zero_decimal_currency(self):
        assert round_to_currency(Decimal("100.5"), 0) == Decimal("101")
        assert to_minor_units(Decimal("500"), 0) == 500

    def test_minor_units(self):
        assert to_minor_units(Decimal("102.87"), 2) == 10287
        assert to_minor_units(Decimal("0.005"), 2) == 1

    def test_format_decimal(self):
        assert format_decimal(Decimal("100.00")) == "100"
        assert format_decimal(Decimal("0.0240")) == "0.024"
        assert format_decimal(Decimal("2.80")) == "2.8"


class TestCharges:
    """What the card is charged and what the platform keeps"""

    def test_fee_absorbed_by_trainer(self):
        fee = get_transaction_fee("AU", "AU", "AUD")
        breakdown = calculate_charge(Decimal("100"), fee, require_currency_limits("AUD"), pass_on_fee=False)

        assert breakdown.transaction_fee == Decimal("2.80")
        assert breakdown.charge_amount == Decimal("100.00")
        assert breakdown.charge_amount_minor == 10000
        assert breakdown.application_fee_minor == 280

    def test_fee_passed_on_to_client(self):
        fee = get_transaction_fee("AU", "AU", "AUD")
        breakdown = calculate_charge(Decimal("100"), fee, require_currency_limits("AUD"), pass_on_fee=True)

        # (100 + 0.40) / (1 - 0.024) = 102.8688...
        assert breakdown.charge_amount == Decimal("102.87")
        assert breakdown.transaction_fee == Decimal("2.87")
        assert breakdown.charge_amount_minor == 10287
        assert breakdown.application_fee_minor == 287
        assert breakdown.fee_passed_on is True

    def test_pass_on_quote(self):
        fee = get_transaction_fee("AU", "AU", "AUD")
        total, surcharge = calculate_pass_on(Decimal("100"), fee, 2)
        assert total == Decimal("102.87")
        assert surcharge == Decimal("2.87")

    def test_pass_on_with_full_percentage_fee(self):
        fee = TransactionFee(Decimal("1"), Decimal("0"), Decimal("0"), Decimal("0"), "domestic")
        with pytest.raises(InvalidFeeConfigurationError):
            calculate_pass_on(Decimal("10"), fee, 2)

    def test_amount_range(self):
        limits = require_currency_limits("AUD")
        check_amount_in_range(Decimal("0.50"), limits)
        with pytest.raises(AmountOutOfRangeError):
            check_amount_in_range(Decimal("0.49"), limits)
        with pytest.raises(AmountOutOfRangeError):
            check_amount_in_range(Decimal("1000000"), limits)

    def test_unsupported_currency_limits(self):
        with pytest.raises(CurrencyNotSupportedError):
            require_currency_limits("XYZ")


class TestParseAmount:
    @pytest.mark.parametrize("value", ["-1", "NaN", "Infinity", "abc", ""])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)

    def test_accepts_zero_and_decimals(self):
        assert parse_amount("0") == Decimal("0")
        assert parse_amount(" 12.5 ") == Decimal("12.5")


class TestTransactionFeeEndpoint:
    """GET /transactionFee"""

    def test_domestic_quote(self, api, trainer):
        response = api.get(
            "/transactionFee", params={"amount": "100", "currency": "AUD"}, headers=trainer["headers"]
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["amount"] == "100"
        assert data["passOnTotalAmount"] == "102.87"
        assert data["passOnSurcharge"] == "2.87"
        assert data["fixedFee"] == "0.4"
        assert data["percentFee"] == "0.024"
        assert data["transactionFee"] == "2.80"
        assert data["cardCountry"] == "AU"
        assert data["chargeCountry"] == "AU"
        assert data["feeType"] == "domestic"

    def test_international_card_country(self, api, trainer):
        response = api.get(
            "/transactionFee",
            params={"amount": "100", "currency": "AUD", "cardCountry": "us"},
            headers=trainer["headers"],
        )
        assert response.status_code == 200
        assert response.json()["feeType"] == "international"
        assert response.json()["transactionFee"] == "4.30"

    def test_negative_amount(self, api, trainer):
        response = api.get(
            "/transactionFee", params={"amount": "-5", "currency": "AUD"}, headers=trainer["headers"]
        )
        assert response.status_code == 400
        assert response.json()["type"] == "/invalid-query"

    def test_unsupported_currency(self, api, trainer):
        response = api.get(
            "/transactionFee", params={"amount": "10", "currency": "XYZ"}, headers=trainer["headers"]
        )
        assert response.status_code == 409

    def test_requires_trainer(self, api):
        response = api.get("/transactionFee", params={"amount": "10", "currency": "AUD"})
        assert response.status_code == 401
        assert response.json()["type"] == "/no-access-token"
