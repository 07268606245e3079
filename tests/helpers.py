"""Builders shared across test modules."""

from case_deploy.cache.models import COLLECTION_INDEX, Cache, CacheItem
from case_deploy.config.deploy_config import DeployConfig
from case_deploy.deploy.uploader import RetryPolicy, UploaderConfig
from case_deploy.gateway.base import Creator


def make_cache(n: int, collection: bool = False, on_chain=(), tars: str = "") -> Cache:
    confirmed = set(on_chain)
    cache = Cache()
    cache.program.tars = tars
    for i in range(n):
        cache.items[str(i)] = CacheItem(
            name=f"Item #{i}",
            metadata_link=f"https://arweave.net/meta-{i}",
            on_chain=i in confirmed,
            image_link=f"https://arweave.net/img-{i}",
        )
    if collection:
        cache.items[COLLECTION_INDEX] = CacheItem(
            name="The Collection",
            metadata_link="https://arweave.net/collection",
        )
    return cache


def make_deploy_config(n: int, **overrides) -> DeployConfig:
    params = dict(
        number=n,
        symbol="TARS",
        seller_fee_basis_points=500,
        price=1.0,
        creators=[Creator(address="Creator1111111111111111111111111111111111111", share=100)],
    )
    params.update(overrides)
    return DeployConfig(**params)


def fast_uploader_config(workers: int = 4, max_attempts: int = 3, verify_before_retry: bool = True) -> UploaderConfig:
    return UploaderConfig(
        workers=workers,
        retry=RetryPolicy(max_attempts=max_attempts, base_delay_sec=0.0),
        verify_before_retry=verify_before_retry,
    )
