import pytest

from inventory_intake.domain.normalize import coerce_amount, find_price, normalize_price


@pytest.mark.parametrize("raw", ["¥12,345", "12345円", "12,345¥", "JPY 12,345", "12345"])
def test_price_forms_normalize_to_digits(raw: str) -> None:
    assert normalize_price(raw) == "12345"


def test_full_width_yen_and_digits() -> None:
    assert normalize_price("￥１２，３４５") == "12345"


def test_numbers_without_currency_are_not_prices_inside_a_line() -> None:
    assert find_price("YAMAHA FG830 在庫 2") == ""
    assert find_price("価格: 45,000") == "45000"


def test_first_matching_pattern_wins() -> None:
    # yen-prefixed beats the later 円 suffix
    assert find_price("¥30,000 (定価 40,000円)") == "30000"


def test_coerce_amount_drops_non_numeric_and_negative() -> None:
    assert coerce_amount("要問合せ") is None
    assert coerce_amount("-500") is None
    assert coerce_amount("") is None
    assert coerce_amount(None) is None
    assert coerce_amount(12000) == "12000"
    assert coerce_amount(12000.0) == "12000"
    assert coerce_amount("0") == "0"


def test_fractional_amounts_are_absent_not_rounded() -> None:
    assert coerce_amount("12.7") is None
    assert coerce_amount(12.7) is None
    assert coerce_amount("12.0") == "12"
    assert find_price("Strings 12.5円") == ""


def test_overlong_digit_runs_are_absent() -> None:
    barcode = "4" * 30
    assert coerce_amount(barcode) is None
    assert normalize_price(barcode + "円") == ""
    assert find_price("JAN " + barcode + "円") == ""
    assert coerce_amount(1e30) is None
    assert coerce_amount(float("inf")) is None
    assert coerce_amount("999999999999") == "999999999999"
