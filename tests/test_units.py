import pytest

from mixion_sdk.errors import InvalidInput
from mixion_sdk.units import format_address, format_balance, parse_balance

ETH = 10**18


@pytest.mark.parametrize(
    "raw, decimals, expected",
    [
        (0, 18, "0"),
        (5 * 10**13, 18, "< 0.0001"),
        (10**14, 18, "0.000100"),
        (123456789 * 10**9, 18, "0.123457"),
        (123456189 * 10**9, 18, "0.123456"),
        (ETH // 2, 18, "0.500000"),
        (ETH, 18, "1.0000"),
        (1234567 * 10**14, 18, "123.4567"),
        (12345678 * 10**13, 18, "123.4568"),
        (1234567890 * 10**12, 18, "1,234.57"),
        (12345 * 10**17, 18, "1,234.5"),
        (10**6 * ETH, 18, "1,000,000"),
        (1_500_000, 6, "1.5000"),
        ("0x0de0b6b3a7640000", 18, "1.0000"),
    ],
)
def test_format_balance(raw, decimals, expected):
    assert format_balance(raw, decimals) == expected


@pytest.mark.parametrize(
    "text, decimals, expected",
    [
        ("1", 18, ETH),
        ("1.5", 6, 1_500_000),
        ("0.000001", 6, 1),
        ("1,000", 0, 1000),
        (" 2 ", 18, 2 * ETH),
    ],
)
def test_parse_balance(text, decimals, expected):
    assert parse_balance(text, decimals) == expected


@pytest.mark.parametrize("text", ["", "abc", "-1", "0.0000001", "NaN", "inf"])
def test_parse_balance_rejects(text):
    with pytest.raises(InvalidInput):
        parse_balance(text, 6)


def test_format_address():
    addr = "0x1234567890abcdef1234567890abcdef12345678"
    assert format_address(addr) == "0x123...5678"
    assert format_address(addr, 14) == "0x12345...345678"
    assert format_address("0x1234") == "0x1234"
    assert format_address("") == ""
