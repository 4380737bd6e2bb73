"""
房间码与地址测试
"""

import random

from roomlink.room_code import (
    AMBIGUOUS_GLYPHS,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    client_address,
    generate_room_code,
    host_address,
    is_valid_room_code,
    normalize_room_code,
)


class TestAlphabet:
    def test_no_ambiguous_glyphs(self):
        assert not AMBIGUOUS_GLYPHS & set(ROOM_CODE_ALPHABET)

    def test_no_duplicates(self):
        assert len(set(ROOM_CODE_ALPHABET)) == len(ROOM_CODE_ALPHABET)

    def test_uppercase_and_digits_only(self):
        assert all(ch.isupper() or ch.isdigit() for ch in ROOM_CODE_ALPHABET)


class TestGenerate:
    def test_length(self):
        for _ in range(200):
            assert len(generate_room_code()) == ROOM_CODE_LENGTH

    def test_characters_from_alphabet(self):
        for _ in range(200):
            assert all(ch in ROOM_CODE_ALPHABET for ch in generate_room_code())

    def test_seeded_rng_is_deterministic(self):
        a = generate_room_code(rng=random.Random(7))
        b = generate_room_code(rng=random.Random(7))
        assert a == b

    def test_custom_length(self):
        assert len(generate_room_code(length=8)) == 8


class TestNormalize:
    def test_uppercases_and_strips(self):
        assert normalize_room_code("  abcde ") == "ABCDE"

    def test_none_safe(self):
        assert normalize_room_code("") == ""

    def test_valid(self):
        assert is_valid_room_code("AB2CD")

    def test_wrong_length(self):
        assert not is_valid_room_code("AB2C")
        assert not is_valid_room_code("AB2CDE")

    def test_ambiguous_characters_rejected(self):
        assert not is_valid_room_code("AB0CD")
        assert not is_valid_room_code("ABICD")

    def test_lowercase_rejected_before_normalizing(self):
        assert not is_valid_room_code("ab2cd")
        assert is_valid_room_code(normalize_room_code("ab2cd"))


class TestAddresses:
    def test_host_address_is_deterministic(self):
        assert host_address("XY7QZ", "room-") == "room-XY7QZ"
        assert host_address("XY7QZ", "room-") == host_address("XY7QZ", "room-")

    def test_client_address_shape(self):
        addr = client_address("XY7QZ", "room-")
        assert addr.startswith("room-XY7QZ-")
        suffix = addr.rsplit("-", 1)[1]
        assert len(suffix) == 6
        assert suffix.isalnum() and suffix == suffix.lower()

    def test_client_addresses_differ(self):
        rng = random.Random(1)
        addrs = {client_address("XY7QZ", "room-", rng=rng) for _ in range(50)}
        assert len(addrs) == 50

    def test_client_address_never_equals_host(self):
        assert client_address("XY7QZ", "room-") != host_address("XY7QZ", "room-")
