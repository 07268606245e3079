"""
Tests for DeployOrchestrator - full deploy runs against FakeGateway.

Tests cover:
- Fresh deploy converges (account, lines, collection)
- Second run is a no-op
- Resume after interruption never rewrites a confirmed line
- Crash after persist: cache on disk reflects every confirmation
- Count mismatch and field validation fail before any remote call
- Hidden-settings mode skips line writes
- Collection no-op / locked
- Balance and missing-account failures
- Step numbering
"""

import pytest

from case_deploy.cache import AtomicCacheStore, load_cache, persist_cache
from case_deploy.cache.models import COLLECTION_INDEX, CacheItem
from case_deploy.core.errors import (
    AccountNotFound,
    AddItemsFailed,
    BalanceTooLow,
    CacheNotFound,
    CollectionLocked,
    CountMismatch,
    RejectedError,
    ValidationError,
)
from case_deploy.deploy.cancel import CancelToken
from case_deploy.gateway.base import HiddenSettings
from case_deploy.gateway.layout import account_size
from case_deploy.monitoring.progress import NullReporter
from case_deploy.orchestrator import (
    VALID_TRANSITIONS,
    DeployOrchestrator,
    DeployState,
    OrchestratorConfig,
)

from fake_gateway import FakeGateway
from helpers import fast_uploader_config, make_cache, make_deploy_config


def build(gateway, cache_path, deploy_config, cancel=None, workers=4):
    store = AtomicCacheStore.open(cache_path)
    reporter = NullReporter()
    orch = DeployOrchestrator(
        gateway,
        store,
        deploy_config,
        cancel=cancel,
        config=OrchestratorConfig(uploader=fast_uploader_config(workers=workers)),
        reporter=reporter,
    )
    return orch, store, reporter


class TestDeployConvergence:
    @pytest.mark.asyncio
    async def test_fresh_deploy(self, gateway, cache_path):
        persist_cache(make_cache(3, collection=True), cache_path)
        orch, store, reporter = build(gateway, cache_path, make_deploy_config(3))

        result = await orch.run()

        assert result.success
        assert result.state is DeployState.DONE
        assert result.created_account
        assert result.upload.confirmed == [0, 1, 2]

        on_disk = load_cache(cache_path)
        assert on_disk.program.tars == result.program_address
        assert on_disk.confirmed_indices() == [0, 1, 2]
        assert on_disk.collection_item.on_chain
        assert on_disk.program.collection_mint == result.collection_mint != ""

        acct = gateway.accounts[result.program_address]
        assert acct.size == account_size(3, hidden=False)
        assert set(acct.slots) == {0, 1, 2}
        assert [s[:2] for s in reporter.steps] == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, gateway, cache_path):
        persist_cache(make_cache(5, collection=True), cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(5))
        first = await orch.run()

        writes_before = len(gateway.write_calls)
        orch2, _, _ = build(gateway, cache_path, make_deploy_config(5))
        second = await orch2.run()

        assert second.success
        assert not second.created_account
        assert second.program_address == first.program_address
        assert second.upload.confirmed == []
        assert len(gateway.write_calls) == writes_before
        assert gateway.create_calls == 1
        assert len(gateway.attach_calls) == 1

    @pytest.mark.asyncio
    async def test_resume_after_interrupt_writes_each_index_once(self, gateway, cache_path):
        persist_cache(make_cache(50), cache_path)
        cancel = CancelToken()
        gateway.cancel_after = (10, cancel)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(50), cancel=cancel, workers=1)

        first = await orch.run()

        assert first.interrupted
        assert not first.success
        assert first.state is DeployState.WRITE_ITEMS
        assert load_cache(cache_path).confirmed_indices() == list(range(10))

        gateway.cancel_after = None
        orch2, _, _ = build(gateway, cache_path, make_deploy_config(50), cancel=cancel, workers=1)
        second = await orch2.run()

        assert second.success
        assert second.upload.confirmed == list(range(10, 50))
        assert sorted(gateway.write_calls) == list(range(50))
        assert load_cache(cache_path).confirmed_indices() == list(range(50))

    @pytest.mark.asyncio
    async def test_crash_mid_upload_loses_no_confirmation(self, gateway, cache_path):
        persist_cache(make_cache(6), cache_path)
        # Item 4 keeps getting rejected; everything else lands
        gateway.failures[4] = [RejectedError("custom program error: 0x1")]
        orch, _, _ = build(gateway, cache_path, make_deploy_config(6))

        with pytest.raises(AddItemsFailed) as exc_info:
            await orch.run()

        assert orch.state is DeployState.FAILED
        assert "1 error(s) occurred" in str(exc_info.value)
        assert exc_info.value.unique == ["custom program error: 0x1"]
        # A fresh process sees every confirmed write
        assert load_cache(cache_path).confirmed_indices() == [0, 1, 2, 3, 5]

        orch2, _, _ = build(gateway, cache_path, make_deploy_config(6))
        result = await orch2.run()
        assert result.upload.confirmed == [4]
        assert gateway.write_calls.count(0) == 1

    @pytest.mark.asyncio
    async def test_existing_account_is_loaded(self, gateway, cache_path):
        gateway.add_account("TarsExisting")
        persist_cache(make_cache(2, tars="TarsExisting", on_chain=[0]), cache_path)
        orch, _, reporter = build(gateway, cache_path, make_deploy_config(2))

        result = await orch.run()

        assert result.success
        assert gateway.create_calls == 0
        assert gateway.write_calls == [1]
        assert reporter.steps[0][2] == "Loading tars"


class TestPreflight:
    @pytest.mark.asyncio
    async def test_count_mismatch_before_remote_calls(self, gateway, cache_path):
        persist_cache(make_cache(95, collection=True), cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(100))

        with pytest.raises(CountMismatch):
            await orch.run()
        assert gateway.create_calls == 0
        assert gateway.write_calls == []

    @pytest.mark.asyncio
    async def test_empty_cache(self, gateway, cache_path):
        persist_cache(make_cache(0), cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(0))
        with pytest.raises(CacheNotFound):
            await orch.run()

    @pytest.mark.asyncio
    async def test_name_too_long(self, gateway, cache_path):
        cache = make_cache(2)
        cache.items["1"] = CacheItem(name="x" * 33, metadata_link="https://meta/1")
        persist_cache(cache, cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(2))
        with pytest.raises(ValidationError):
            await orch.run()
        assert gateway.create_calls == 0

    @pytest.mark.asyncio
    async def test_balance_too_low(self, cache_path):
        gw = FakeGateway(balance=1000)
        persist_cache(make_cache(10), cache_path)
        orch, _, _ = build(gw, cache_path, make_deploy_config(10))

        with pytest.raises(BalanceTooLow) as exc_info:
            await orch.run()
        assert exc_info.value.have == 1000
        assert gw.create_calls == 0
        assert load_cache(cache_path).program.tars == ""

    @pytest.mark.asyncio
    async def test_cached_account_missing_on_chain(self, gateway, cache_path):
        persist_cache(make_cache(2, tars="TarsGone"), cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(2))

        with pytest.raises(AccountNotFound):
            await orch.run()
        assert orch.state is DeployState.FAILED
        assert gateway.write_calls == []


class TestHiddenAndCollection:
    @pytest.mark.asyncio
    async def test_hidden_settings_skip_writes(self, gateway, cache_path):
        persist_cache(make_cache(4), cache_path)
        hidden = HiddenSettings(name="Mystery", uri="https://meta/hidden", hash="a" * 32)
        orch, _, reporter = build(gateway, cache_path, make_deploy_config(4, hidden_settings=hidden))

        result = await orch.run()

        assert result.success
        assert gateway.write_calls == []
        assert gateway.accounts[result.program_address].size == account_size(4, hidden=True)
        assert result.steps == 1
        assert len(reporter.steps) == 1

    @pytest.mark.asyncio
    async def test_collection_already_on_chain_is_noop(self, gateway, cache_path):
        gateway.add_account("TarsX", items_redeemed=3)
        cache = make_cache(2, collection=True, on_chain=[0, 1], tars="TarsX")
        cache.items[COLLECTION_INDEX].on_chain = True
        persist_cache(cache, cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(2))

        result = await orch.run()

        assert result.success
        assert gateway.attach_calls == []

    @pytest.mark.asyncio
    async def test_collection_locked_after_mint(self, gateway, cache_path):
        gateway.add_account("TarsX", items_redeemed=1)
        persist_cache(make_cache(2, collection=True, on_chain=[0, 1], tars="TarsX"), cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(2))

        with pytest.raises(CollectionLocked) as exc_info:
            await orch.run()
        assert exc_info.value.items_redeemed == 1
        assert gateway.attach_calls == []

    @pytest.mark.asyncio
    async def test_collection_uses_configured_mint(self, gateway, cache_path):
        persist_cache(make_cache(1, collection=True), cache_path)
        orch, _, _ = build(gateway, cache_path, make_deploy_config(1, collection_mint="MintFromConfig"))

        result = await orch.run()

        assert result.collection_mint == "MintFromConfig"
        assert gateway.attach_calls[0].mint == "MintFromConfig"
        assert gateway.attach_calls[0].name == "The Collection"


def test_state_transitions_terminal():
    assert VALID_TRANSITIONS[DeployState.DONE] == []
    assert VALID_TRANSITIONS[DeployState.FAILED] == []
    assert DeployState.DONE in VALID_TRANSITIONS[DeployState.ENSURE_ACCOUNT]
