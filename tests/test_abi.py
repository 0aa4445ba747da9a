import pytest

from mixion_sdk.errors import InvalidInput
from mixion_sdk.utils import abi
from mixion_sdk.utils.hash import function_selector, keccak256, keccak256_hex

ADDR = "0x" + "ab" * 20


def test_keccak_known_values():
    assert keccak256_hex(b"") == "0xc5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
    assert keccak256_hex(b"abc") == "0x4e03657aea45a94fc7d47ba826c8d667c0d1e6e33a64a036ec44f58fa12d6c45"
    with pytest.raises(TypeError):
        keccak256("abc")  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "signature, selector",
    [
        ("lockNative(bytes32)", "f67689c7"),
        ("lockERC20(bytes32,address,uint256)", "53ecf12a"),
        ("withdraw(bytes32)", "8e19899e"),
        ("getLockedDetails(bytes32)", "c31a7406"),
        ("isNullifierUsed(bytes32)", "22dc7b4c"),
        ("balanceOf(address)", "70a08231"),
        ("allowance(address,address)", "dd62ed3e"),
        ("approve(address,uint256)", "095ea7b3"),
        ("decimals()", "313ce567"),
    ],
)
def test_function_selectors(signature, selector):
    assert function_selector(signature).hex() == selector


def test_static_layout():
    enc = abi.encode(["uint256", "address", "bool"], [1, ADDR, True])
    assert len(enc) == 96
    assert enc[31] == 1
    assert enc[32:44] == b"\x00" * 12 and enc[44:64] == bytes.fromhex("ab" * 20)
    assert enc[95] == 1


def test_dynamic_string_head_tail_layout():
    enc = abi.encode(["string", "uint256"], ["secret", 5])
    # head: offset word, then the uint
    assert int.from_bytes(enc[0:32], "big") == 64
    assert int.from_bytes(enc[32:64], "big") == 5
    # tail: length word, then right-padded data
    assert int.from_bytes(enc[64:96], "big") == 6
    assert enc[96:102] == b"secret" and enc[102:128] == b"\x00" * 26
    assert len(enc) == 128


def test_two_strings_offsets():
    enc = abi.encode(["string", "string", "uint256"], ["secret", "x" * 40, 1])
    assert int.from_bytes(enc[0:32], "big") == 96
    # first tail is 32 (length) + 32 (padded "secret")
    assert int.from_bytes(enc[32:64], "big") == 96 + 64
    assert len(enc) == 96 + 64 + 32 + 64


def test_encode_call_prefixes_selector():
    data = abi.encode_call("balanceOf(address)", [ADDR])
    assert data[:4].hex() == "70a08231"
    assert len(data) == 4 + 32


def test_decode_mixed():
    data = abi.encode(["uint256", "address", "uint256", "uint256"], [100, ADDR, 3, 97])
    assert abi.decode(["uint256", "address", "uint256", "uint256"], data) == (100, ADDR, 3, 97)
    s = abi.encode(["string"], ["USD Coin"])
    assert abi.decode(["string"], s) == ("USD Coin",)


@pytest.mark.parametrize(
    "types, values",
    [
        (["uint256"], [-1]),
        (["uint8"], [256]),
        (["uint256"], [True]),
        (["address"], ["0x1234"]),
        (["bytes32"], [b"\x00" * 31]),
        (["bool"], [1]),
        (["uint256", "uint256"], [1]),
        (["tuple"], [1]),
    ],
)
def test_encode_rejects_bad_input(types, values):
    with pytest.raises(InvalidInput):
        abi.encode(types, values)


def test_canonical_type():
    assert abi.canonical_type("uint") == "uint256"
    assert abi.canonical_type(" bytes32 ") == "bytes32"
    assert abi.is_dynamic("string") and not abi.is_dynamic("bytes32")
    with pytest.raises(InvalidInput):
        abi.canonical_type("uint7")


def test_decode_short_data():
    with pytest.raises(InvalidInput):
        abi.decode(["uint256"], b"\x00" * 31)
