"""
Tests for checksum generation.
Values were produced by the checksum function used to fill existing
products tables, so stored checksums keep matching.
"""
import pytest

from drink_sync import generate_checksum, CHECKSUM_PREFIX


class TestGenerateChecksum:
    """Test the general purpose checksum."""

    @pytest.mark.parametrize("text,seed,expected", [
        ("", 0, "C3338908027751811"),
        ("a", 0, "C7929297801672961"),
        ("hello", 0, "C4625896200565286"),
        ("hello", 1, "C6922249475667011"),
        ("hello", -1, "C4992902853281711"),
        ("/a;10;x.png", 0, "C1204316120089518"),
        ("/a;10.5;x.png", 0, "C8927603740287194"),
        ("https://www.alko.fi/tuotteet/000706/;14.49;https://images.alko.fi/000706.jpg", 0,
         "C7050225546251423"),
    ])
    def test_known_values(self, text, seed, expected):
        """Checksums match previously stored values."""
        assert generate_checksum(text, seed) == expected

    def test_non_bmp_characters_hash_as_utf16(self):
        """Emoji are hashed as two UTF-16 code units."""
        assert generate_checksum("olut 🍺") == "C7098186368210118"

    def test_non_ascii(self):
        assert generate_checksum("ä") == "C3372673510823671"

    def test_deterministic(self):
        """Same input and seed always gives the same checksum."""
        text = "/a;10;x.png"
        assert generate_checksum(text) == generate_checksum(text)
        assert generate_checksum(text, 7) == generate_checksum(text, 7)

    def test_default_seed_is_zero(self):
        assert generate_checksum("hello") == generate_checksum("hello", 0)

    def test_seed_wraps_to_32_bits(self):
        """Seeds are reduced to 32 bits (2**32 + 1 behaves like 1)."""
        assert generate_checksum("abc", 4294967297) == generate_checksum("abc", 1)
        assert generate_checksum("abc", 1) == "C4486759430526946"

    def test_different_seeds_differ(self):
        """1000 seeds give 1000 different checksums."""
        checksums = {generate_checksum("hello", seed) for seed in range(1000)}
        assert len(checksums) == 1000

    def test_one_character_change_differs(self):
        """Changing any single character changes the checksum."""
        base = "https://www.alko.fi/tuotteet/000706/;14.49;https://images.alko.fi/000706.jpg"
        seen = {generate_checksum(base)}
        expected = 1
        for i in range(len(base)):
            for ch in "xZ0":
                if base[i] == ch:
                    continue
                seen.add(generate_checksum(base[:i] + ch + base[i + 1:]))
                expected += 1
        assert len(seen) == expected

    def test_bytes_are_decoded_as_utf8(self):
        assert generate_checksum("olut 🍺".encode('utf-8')) == generate_checksum("olut 🍺")

    def test_format_prefix_and_digits(self):
        """Output is the prefix followed by decimal digits."""
        for text in ["", "a", "hello world", "x" * 1000]:
            checksum = generate_checksum(text)
            assert checksum.startswith(CHECKSUM_PREFIX)
            assert checksum[1:].isdigit()

    def test_fits_in_53_bits(self):
        """Numeric part is safe to store as a double or bigint."""
        for seed in range(200):
            value = int(generate_checksum("drink", seed)[1:])
            assert 0 <= value < 2 ** 53
