"""Tests for the base32 secret codec."""

from __future__ import annotations

import base64
import os

import pytest

from mfa_core.exceptions import FormatError
from mfa_core.otp import base32


class TestEncode:
    def test_rfc4648_vectors(self) -> None:
        assert base32.encode(b"") == ""
        assert base32.encode(b"f") == "MY"
        assert base32.encode(b"fo") == "MZXQ"
        assert base32.encode(b"foo") == "MZXW6"
        assert base32.encode(b"foob") == "MZXW6YQ"
        assert base32.encode(b"fooba") == "MZXW6YTB"
        assert base32.encode(b"foobar") == "MZXW6YTBOI"

    def test_output_uses_alphabet_only(self) -> None:
        encoded = base32.encode(os.urandom(37))
        assert "=" not in encoded
        assert set(encoded) <= set(base32.ALPHABET)

    def test_rfc_secret(self) -> None:
        assert (
            base32.encode(b"12345678901234567890") == "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
        )


class TestDecode:
    @pytest.mark.parametrize("length", [1, 2, 3, 4, 5, 10, 16, 20, 32, 33])
    def test_round_trip(self, length: int) -> None:
        data = os.urandom(length)
        assert base32.decode(base32.encode(data)) == data

    def test_round_trip_every_byte_value(self) -> None:
        data = bytes(range(256))
        assert base32.decode(base32.encode(data)) == data

    def test_case_insensitive(self) -> None:
        assert base32.decode("mzxw6ytboi") == b"foobar"

    def test_strips_characters_outside_alphabet(self) -> None:
        assert base32.decode("MZXW 6YTB-OI") == b"foobar"
        assert base32.decode("MZXW6YTBOI======") == b"foobar"

    def test_accepts_padded_stdlib_output(self) -> None:
        data = b"\x00\xffsecret"
        assert base32.decode(base64.b32encode(data).decode()) == data

    def test_empty_input_is_empty(self) -> None:
        assert base32.decode("") == b""

    def test_input_without_alphabet_characters_raises(self) -> None:
        with pytest.raises(FormatError):
            base32.decode("0189!!")

    def test_single_character_decodes_to_nothing(self) -> None:
        # One base32 character carries 5 bits, less than a byte
        with pytest.raises(FormatError):
            base32.decode("A")

    def test_impossible_length_raises(self) -> None:
        with pytest.raises(FormatError):
            base32.decode("MZX")
