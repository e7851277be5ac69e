import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from threshold_randomness.constants import FIELD_MODULUS
from threshold_randomness.crypto.bn254 import map_to_g1
from threshold_randomness.crypto.field import P, Fp
from threshold_randomness.crypto.hash import (
    abi_address,
    abi_word,
    expand_message_xmd,
    hash_to_field,
    keccak256,
)
from threshold_randomness.errors import PointDecodeError, ValidationError

field_ints = st.integers(min_value=0, max_value=FIELD_MODULUS - 1)


def test_keccak256_is_not_sha3() -> None:
    # Ethereum's Keccak-256 of the empty string
    assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"


def test_expand_message_lengths_and_domain_separation() -> None:
    a = expand_message_xmd(b"msg", b"DST-A", 96)
    b = expand_message_xmd(b"msg", b"DST-B", 96)
    assert len(a) == 96 and len(b) == 96
    assert a != b
    assert expand_message_xmd(b"msg", b"DST-A", 96) == a
    # output is not a prefix-extension of a shorter request
    assert expand_message_xmd(b"msg", b"DST-A", 32) != a[:32]


@pytest.mark.parametrize("n", [0, 255 * 32 + 1])
def test_expand_message_rejects_bad_lengths(n: int) -> None:
    with pytest.raises(ValidationError):
        expand_message_xmd(b"m", b"D", n)


def test_expand_message_rejects_long_dst() -> None:
    with pytest.raises(ValidationError):
        expand_message_xmd(b"m", b"D" * 256, 32)


def test_hash_to_field_gives_reduced_elements() -> None:
    us = hash_to_field(b"abc", b"DST", 2)
    assert len(us) == 2
    assert all(0 <= u < FIELD_MODULUS for u in us)
    assert us[0] != us[1]


def test_abi_words() -> None:
    assert abi_word(1) == bytes(31) + b"\x01"
    assert abi_address("0x" + "11" * 20) == bytes(12) + b"\x11" * 20
    with pytest.raises(ValidationError):
        abi_word(-1)
    with pytest.raises(ValidationError):
        abi_word(1 << 256)
    with pytest.raises(ValidationError):
        abi_address("0x1234")
    with pytest.raises(ValidationError):
        abi_address("0x" + "zz" * 20)


def test_field_decode_is_strict() -> None:
    assert Fp.from_bytes((P - 1).to_bytes(32, "big")).n == P - 1
    with pytest.raises(PointDecodeError):
        Fp.from_bytes(P.to_bytes(32, "big"))
    with pytest.raises(PointDecodeError):
        Fp.from_bytes(b"\x01" * 31)


def test_field_helpers() -> None:
    assert Fp(0).inv0() == 0
    assert Fp(7) * Fp(7).inv0() == 1
    assert Fp(4).sqrt() in (Fp(2), -Fp(2))
    assert Fp(0).is_square()
    assert (-Fp(1)).sqrt() is None  # p = 3 mod 4
    assert Fp(3).sgn0() == 1 and Fp(4).sgn0() == 0


@settings(max_examples=50, deadline=None)
@given(field_ints)
def test_square_roots_square_back(v: int) -> None:
    sq = Fp(v) * Fp(v)
    r = sq.sqrt()
    assert r is not None
    assert r * r == sq


@settings(max_examples=25, deadline=None)
@given(field_ints)
def test_svdw_map_lands_on_curve_with_matching_sign(u: int) -> None:
    x, y = map_to_g1(u)
    assert (y * y - x * x * x - 3) % FIELD_MODULUS == 0
    assert (y & 1) == (u & 1)
