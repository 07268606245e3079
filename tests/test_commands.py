"""Tests for show / withdraw / collection / update / mint / validate commands."""

import pytest

from case_deploy.cache import AtomicCacheStore, load_cache, persist_cache
from case_deploy.cache.models import COLLECTION_INDEX
from case_deploy.commands import (
    list_accounts,
    mint,
    remove_collection,
    resolve_program_address,
    set_collection,
    show,
    update,
    validate,
    withdraw,
)
from case_deploy.core.errors import (
    AccountNotFound,
    AuthorityMismatch,
    CollectionLocked,
    InvalidProgramAddress,
    NotEnoughItems,
    RejectedError,
)
from case_deploy.monitoring.progress import NullReporter

from fake_gateway import FakeGateway
from helpers import make_cache, make_deploy_config


class TestResolveAddress:
    def test_override_wins(self):
        assert resolve_program_address("Override", make_cache(1, tars="FromCache")) == "Override"

    def test_cache_address(self):
        assert resolve_program_address(None, make_cache(1, tars="FromCache")) == "FromCache"

    def test_no_address(self):
        with pytest.raises(InvalidProgramAddress):
            resolve_program_address(None, make_cache(1))
        with pytest.raises(InvalidProgramAddress):
            resolve_program_address(None, None)


class TestShow:
    @pytest.mark.asyncio
    async def test_show_summarises_cache(self, gateway):
        gateway.add_account("TarsA", items_redeemed=2, items_available=3)
        cache = make_cache(3, collection=True, on_chain=[0, 2], tars="TarsA")

        report = await show(gateway, cache, reporter=NullReporter())

        assert report.address == "TarsA"
        assert report.state.items_redeemed == 2
        assert (report.cache_confirmed, report.cache_items) == (2, 3)
        assert report.collection_on_chain is False

    @pytest.mark.asyncio
    async def test_show_override_ignores_cache(self, gateway):
        gateway.add_account("Other")
        report = await show(gateway, make_cache(2, tars="TarsA"), override="Other")
        assert report.address == "Other"
        assert report.cache_items == 0

    @pytest.mark.asyncio
    async def test_show_missing_account(self, gateway):
        with pytest.raises(AccountNotFound):
            await show(gateway, make_cache(1, tars="Gone"))


class TestWithdraw:
    @pytest.mark.asyncio
    async def test_withdraw_drains_cache_account(self, gateway):
        gateway.add_account("TarsA")
        balance = gateway.balance

        address = await withdraw(gateway, make_cache(1, tars="TarsA"))

        assert address == "TarsA"
        assert gateway.drained == ["TarsA"]
        assert gateway.balance > balance

    @pytest.mark.asyncio
    async def test_list_does_not_drain(self, gateway):
        gateway.add_account("TarsA")
        gateway.add_account("TarsB")

        accounts = await list_accounts(gateway)

        assert [a for a, _ in accounts] == ["TarsA", "TarsB"]
        assert gateway.drained == []


class TestCollection:
    @pytest.mark.asyncio
    async def test_set_updates_cache(self, gateway, cache_path):
        gateway.add_account("TarsA")
        persist_cache(make_cache(2, collection=True, tars="TarsA"), cache_path)
        store = AtomicCacheStore.open(cache_path)

        mint = await set_collection(gateway, store, "MintX")

        assert mint == "MintX"
        on_disk = load_cache(cache_path)
        assert on_disk.program.collection_mint == "MintX"
        assert COLLECTION_INDEX not in on_disk.items
        assert gateway.accounts["TarsA"].collection_mint == "MintX"

    @pytest.mark.asyncio
    async def test_set_with_override_leaves_cache(self, gateway, cache_path):
        gateway.add_account("Other")
        persist_cache(make_cache(1, collection=True, tars="TarsA"), cache_path)
        store = AtomicCacheStore.open(cache_path)

        await set_collection(gateway, store, "MintX", override="Other")

        on_disk = load_cache(cache_path)
        assert on_disk.program.collection_mint == ""
        assert on_disk.has_collection

    @pytest.mark.asyncio
    async def test_set_after_mint_is_locked(self, gateway):
        gateway.add_account("TarsA", items_redeemed=5)
        with pytest.raises(CollectionLocked):
            await set_collection(gateway, None, "MintX", override="TarsA")
        assert gateway.attach_calls == []

    @pytest.mark.asyncio
    async def test_remove_clears_cache_mint(self, gateway, cache_path):
        acct = gateway.add_account("TarsA")
        acct.collection_mint = "MintX"
        cache = make_cache(1, tars="TarsA")
        cache.program.collection_mint = "MintX"
        persist_cache(cache, cache_path)

        await remove_collection(gateway, AtomicCacheStore.open(cache_path))

        assert gateway.detach_calls == 1
        assert load_cache(cache_path).program.collection_mint == ""


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_pushes_config_and_keeps_uuid(self, gateway):
        gateway.add_account("TarsA", items_available=3)
        config = make_deploy_config(5, symbol="NEW", price=2.5)

        address = await update(gateway, config, make_cache(3, tars="TarsA"), reporter=NullReporter())

        assert address == "TarsA"
        [(target, settings, new_authority)] = gateway.update_calls
        assert target == "TarsA"
        assert settings.uuid == "TarsA"[:6]
        assert settings.symbol == "NEW"
        assert settings.price_lamports == 2_500_000_000
        assert settings.items_available == 5
        assert new_authority is None
        state = await gateway.fetch_program_state("TarsA")
        assert state.items_available == 5

    @pytest.mark.asyncio
    async def test_update_transfers_authority(self, gateway):
        gateway.add_account("TarsA", items_available=3)

        await update(gateway, make_deploy_config(3), None, override="TarsA", new_authority="NewAuth111")

        assert gateway.update_calls[0][2] == "NewAuth111"
        state = await gateway.fetch_program_state("TarsA")
        assert state.authority == "NewAuth111"

    @pytest.mark.asyncio
    async def test_update_requires_authority(self, gateway):
        acct = gateway.add_account("TarsA", items_available=3)
        acct.authority = "SomeoneElse"

        with pytest.raises(AuthorityMismatch):
            await update(gateway, make_deploy_config(3), None, override="TarsA")
        assert gateway.update_calls == []

    @pytest.mark.asyncio
    async def test_update_without_address(self, gateway):
        with pytest.raises(InvalidProgramAddress):
            await update(gateway, make_deploy_config(3), make_cache(3))


class TestMint:
    @pytest.mark.asyncio
    async def test_mint_one(self, gateway):
        gateway.add_account("TarsA", items_available=3)

        minted = await mint(gateway, make_cache(3, tars="TarsA"), reporter=NullReporter())

        assert minted == gateway.minted
        assert len(minted) == 1
        state = await gateway.fetch_program_state("TarsA")
        assert state.items_redeemed == 1

    @pytest.mark.asyncio
    async def test_mint_several(self, gateway):
        gateway.add_account("TarsA", items_redeemed=1, items_available=4)

        minted = await mint(gateway, None, override="TarsA", number=3)

        assert len(minted) == 3
        assert gateway.accounts["TarsA"].items_redeemed == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("number", [0, 3])
    async def test_mint_more_than_available(self, gateway, number):
        gateway.add_account("TarsA", items_redeemed=2, items_available=4)

        with pytest.raises(NotEnoughItems) as info:
            await mint(gateway, None, override="TarsA", number=number)
        assert info.value.available == 2
        assert gateway.minted == []

    @pytest.mark.asyncio
    async def test_mint_locks_collection(self, gateway):
        gateway.add_account("TarsA", items_available=2)
        await mint(gateway, None, override="TarsA")

        with pytest.raises(CollectionLocked):
            await set_collection(gateway, None, "MintX", override="TarsA")

    @pytest.mark.asyncio
    async def test_mint_rejected_by_program(self):
        class NotLive(FakeGateway):
            async def mint_one(self, program_address):
                raise RejectedError("Tars is not live")

        gateway = NotLive()
        gateway.add_account("TarsA", items_available=2)

        with pytest.raises(RejectedError):
            await mint(gateway, None, override="TarsA", number=2)
        assert gateway.accounts["TarsA"].items_redeemed == 0


class TestValidate:
    def test_valid(self):
        result = validate(make_deploy_config(3), make_cache(3, collection=True))
        assert result.valid

    def test_cache_issues_reported(self):
        cache = make_cache(3)
        cache.items["1"].name = "n" * 40
        cache.items["2"].metadata_link = ""
        result = validate(make_deploy_config(4), cache)

        fields = [i.field for i in result.get_errors()]
        assert "items.1.name" in fields
        assert "items.2.metadata_link" in fields
        assert "number" in fields
        assert not result.valid

    def test_config_only(self):
        result = validate(make_deploy_config(3, seller_fee_basis_points=20_000))
        assert not result.valid
