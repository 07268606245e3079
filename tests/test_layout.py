"""Tests for account sizing and instruction encoding."""

import hashlib

import pytest

from case_deploy.gateway import layout
from case_deploy.gateway.base import Creator, HiddenSettings, ProgramSettings


def fake_pubkey(address: str) -> bytes:
    return address.encode().ljust(32, b"\x00")[:32]


class TestAccountSize:
    def test_constants(self):
        assert layout.CONFIG_ARRAY_START == 713
        assert layout.CONFIG_LINE_SIZE == 240

    def test_size_formula(self):
        assert layout.account_size(10, hidden=False) == 713 + 4 + 10 * 240 + 8 + 2 * (10 // 8 + 1)
        assert layout.account_size(0, hidden=False) == 713 + 4 + 8 + 2

    def test_hidden_uses_header_only(self):
        assert layout.account_size(10_000, hidden=True) == 713

    def test_line_offset(self):
        assert layout.config_line_offset(0) == 717
        assert layout.config_line_offset(3) == 717 + 720


class TestEncoding:
    def test_discriminator_is_anchor_style(self):
        assert layout.discriminator("add_config_lines") == hashlib.sha256(b"global:add_config_lines").digest()[:8]

    def test_add_config_lines_data(self):
        data = layout.add_config_lines_data(5, [("Item #5", "https://m/5")])
        body = data[8:]
        assert body[:4] == (5).to_bytes(4, "little")
        assert body[4:8] == (1).to_bytes(4, "little")
        assert body[8:12] == (7).to_bytes(4, "little")
        assert body[12:19] == b"Item #5"

    def test_hidden_hash_must_be_32_bytes(self):
        with pytest.raises(ValueError):
            layout.encode_hidden_settings(HiddenSettings(name="n", uri="u", hash="short"))

    def test_initialize_data_prefix(self):
        settings = ProgramSettings(
            uuid="abcdef",
            price_lamports=1,
            symbol="T",
            seller_fee_basis_points=5,
            items_available=3,
            creators=(Creator(address="C1", share=100),),
        )
        data = layout.initialize_data(settings, fake_pubkey)
        assert data[:8] == layout.discriminator("initialize_candy_machine")
        assert data[8:12] == (6).to_bytes(4, "little")
        assert data[12:18] == b"abcdef"

    def test_update_data_reuses_program_encoding(self):
        settings = ProgramSettings(
            uuid="abcdef",
            price_lamports=1,
            symbol="T",
            seller_fee_basis_points=5,
            items_available=3,
            creators=(Creator(address="C1", share=100),),
        )
        data = layout.update_data(settings, fake_pubkey)
        assert data[:8] == layout.discriminator("update_candy_machine")
        assert data[8:] == layout.initialize_data(settings, fake_pubkey)[8:]

    def test_update_authority_data(self):
        new = fake_pubkey("NewAuth")
        data = layout.update_authority_data(new)
        assert data[:8] == layout.discriminator("update_authority")
        assert data[8:] == b"\x01" + new
        assert layout.update_authority_data(None)[8:] == b"\x00"

    def test_mint_nft_data(self):
        data = layout.mint_nft_data(254)
        assert data[:8] == layout.discriminator("mint_nft")
        assert data[8:] == bytes([254])


class TestDecoding:
    def slot(self, name: str, uri: str) -> bytes:
        n = name.encode()
        u = uri.encode()
        return (
            len(n).to_bytes(4, "little") + n.ljust(layout.MAX_NAME_LENGTH, b"\x00")
            + len(u).to_bytes(4, "little") + u.ljust(layout.MAX_URI_LENGTH, b"\x00")
        )

    def test_decode_written_slot(self):
        assert layout.decode_config_line(self.slot("Item #1", "https://m/1")) == ("Item #1", "https://m/1")

    def test_decode_empty_slot(self):
        assert layout.decode_config_line(b"\x00" * layout.CONFIG_LINE_SIZE) is None

    def test_decode_short_data(self):
        assert layout.decode_config_line(b"\x00" * 10) is None
