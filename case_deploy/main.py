"""
Entry point wiring all components.

    case deploy [--config config.json] [--cache cache.json]
    case show [--tars ADDRESS]
    case withdraw [--tars ADDRESS | --list]
    case update [--config config.json] [--tars ADDRESS] [--new-authority KEY]
    case mint [--tars ADDRESS] [--number N]
    case collection set MINT [--tars ADDRESS]
    case collection remove [--tars ADDRESS]
    case validate

Exit codes: 0 success, 1 failure, 2 interrupted (rerun to resume).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from case_deploy.cache.atomic import AtomicCacheStore
from case_deploy.cache.store import load_cache
from case_deploy.commands import (
    list_accounts,
    mint,
    remove_collection,
    set_collection,
    show,
    update,
    validate,
    withdraw,
)
from case_deploy.config.config import Settings
from case_deploy.config.config_validator import validate_and_log
from case_deploy.config.deploy_config import load_deploy_config
from case_deploy.core.errors import CaseError, ConfigError, unique_messages
from case_deploy.deploy.cancel import CancelToken
from case_deploy.deploy.uploader import RetryPolicy, UploaderConfig
from case_deploy.infra.logging_cfg import build_logger, flush_logger, log_event, parse_level
from case_deploy.monitoring.metrics_rich import DeployMetrics
from case_deploy.monitoring.progress import StepReporter
from case_deploy.orchestrator.deploy_orchestrator import DeployOrchestrator, OrchestratorConfig

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INTERRUPTED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="case", description="Deploy and manage tars accounts")
    parser.add_argument("--keypair", help="Path to the payer keypair file")
    parser.add_argument("--rpc-url", dest="rpc_url", help="RPC endpoint")
    parser.add_argument("--cache", dest="cache_path", help="Path to the cache file")
    parser.add_argument("--log-level", dest="log_level", help="debug, info, warning, error or off")
    sub = parser.add_subparsers(dest="command", required=True)

    p_deploy = sub.add_parser("deploy", help="Create the tars account and write all config lines")
    p_deploy.add_argument("--config", dest="config_path", help="Path to the deploy config file")
    p_deploy.add_argument("--workers", type=int, help="Concurrent write workers (0 = 2 per CPU)")

    p_show = sub.add_parser("show", help="Show the on-chain state of a tars")
    p_show.add_argument("--tars", help="Address of the tars (overrides the cache)")

    p_withdraw = sub.add_parser("withdraw", help="Withdraw rent from a tars account")
    p_withdraw.add_argument("--tars", help="Address of the tars (overrides the cache)")
    p_withdraw.add_argument("--list", action="store_true", help="List tars accounts and balances instead")

    p_update = sub.add_parser("update", help="Apply the deploy config to an existing tars")
    p_update.add_argument("--config", dest="config_path", help="Path to the deploy config file")
    p_update.add_argument("--tars", help="Address of the tars (overrides the cache)")
    p_update.add_argument("--new-authority", dest="new_authority", help="Transfer authority to this key")

    p_mint = sub.add_parser("mint", help="Mint items from a tars to the payer")
    p_mint.add_argument("--tars", help="Address of the tars (overrides the cache)")
    p_mint.add_argument("--number", type=int, default=1, help="How many items to mint (default 1)")

    p_validate = sub.add_parser("validate", help="Check the deploy config and cache locally")
    p_validate.add_argument("--config", dest="config_path", help="Path to the deploy config file")

    p_coll = sub.add_parser("collection", help="Manage the collection of a tars")
    coll_sub = p_coll.add_subparsers(dest="collection_command", required=True)
    p_set = coll_sub.add_parser("set", help="Attach an existing collection mint")
    p_set.add_argument("mint", help="Collection mint address")
    p_set.add_argument("--tars", help="Address of the tars (overrides the cache)")
    p_remove = coll_sub.add_parser("remove", help="Detach the collection")
    p_remove.add_argument("--tars", help="Address of the tars (overrides the cache)")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    return Settings.load().with_overrides(
        keypair_path=args.keypair,
        rpc_url=args.rpc_url,
        cache_path=args.cache_path,
        config_path=getattr(args, "config_path", None),
        log_level=args.log_level,
        upload_workers=getattr(args, "workers", None),
    )


def _build_gateway(cfg: Settings):
    from case_deploy.gateway.solana_gateway import SolanaProgramGateway, load_keypair

    return SolanaProgramGateway(
        cfg.rpc_url,
        load_keypair(cfg.keypair_path),
        cfg.program_id,
        commitment=cfg.commitment,
        timeout=cfg.rpc_timeout_sec,
    )


async def run_deploy(cfg: Settings, reporter: StepReporter, log) -> int:
    deploy_config = load_deploy_config(cfg.config_path)
    if not validate_and_log(deploy_config, log):
        raise ConfigError(f"Config file '{cfg.config_path}' failed validation")

    metrics = DeployMetrics()
    store = AtomicCacheStore.open(cfg.cache_path, metrics=metrics)
    cancel = CancelToken()
    orch_cfg = OrchestratorConfig(
        uploader=UploaderConfig(
            workers=cfg.upload_workers,
            retry=RetryPolicy(max_attempts=cfg.write_retries, base_delay_sec=cfg.retry_base_delay_sec),
            verify_before_retry=cfg.verify_before_retry,
        ),
    )

    loop = asyncio.get_running_loop()
    gateway = _build_gateway(cfg)
    orchestrator = DeployOrchestrator(gateway, store, deploy_config, cancel, orch_cfg, reporter, metrics)
    run_task = asyncio.create_task(orchestrator.run())

    def on_interrupt() -> None:
        # First Ctrl-C stops dispatch and lets in-flight writes finish; the second aborts.
        if not cancel.is_set():
            cancel.set()
            reporter.info("\nInterrupt received, finishing in-flight writes (Ctrl-C again to abort)...")
        elif not run_task.done():
            run_task.cancel()

    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_interrupt)
        except NotImplementedError:
            pass

    try:
        result = await run_task
    except asyncio.CancelledError:
        log_event(log, "deploy_aborted", level=logging.WARNING, cache=str(store.path))
        return EXIT_INTERRUPTED
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass
        await gateway.close()

    log_event(
        log,
        "deploy_summary",
        submitted=metrics.value("case_item_writes_submitted_total"),
        retried=metrics.value("case_item_writes_retried_total"),
        confirmed=len(result.upload.confirmed),
        interrupted=result.interrupted,
    )
    if result.interrupted:
        return EXIT_INTERRUPTED
    reporter.info(f"\n[green]Deploy complete[/] ({len(result.upload.confirmed)} config line(s) written)")
    return EXIT_OK


async def run_command(args: argparse.Namespace, cfg: Settings, reporter: StepReporter, log) -> int:
    if args.command == "deploy":
        return await run_deploy(cfg, reporter, log)

    if args.command == "validate":
        deploy_config = load_deploy_config(cfg.config_path)
        cache = load_cache(cfg.cache_path, allow_missing=True)
        result = validate(deploy_config, None if cache.is_empty else cache, reporter)
        return EXIT_OK if result.valid else EXIT_FAILED

    gateway = _build_gateway(cfg)
    try:
        override = getattr(args, "tars", None)
        if args.command == "show":
            await show(gateway, load_cache(cfg.cache_path, allow_missing=bool(override)), override, reporter)
        elif args.command == "withdraw":
            if args.list:
                await list_accounts(gateway, reporter)
            else:
                await withdraw(gateway, load_cache(cfg.cache_path, allow_missing=bool(override)), override, reporter)
        elif args.command == "update":
            deploy_config = load_deploy_config(cfg.config_path)
            if not validate_and_log(deploy_config, log):
                raise ConfigError(f"Config file '{cfg.config_path}' failed validation")
            cache = load_cache(cfg.cache_path, allow_missing=bool(override))
            await update(gateway, deploy_config, cache, override, args.new_authority, reporter)
        elif args.command == "mint":
            await mint(gateway, load_cache(cfg.cache_path, allow_missing=bool(override)), override, args.number, reporter)
        elif args.command == "collection":
            store = None if override else AtomicCacheStore.open(cfg.cache_path)
            if args.collection_command == "set":
                await set_collection(gateway, store, args.mint, override, reporter)
            else:
                await remove_collection(gateway, store, override, reporter)
    finally:
        await gateway.close()
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    reporter = StepReporter()
    try:
        cfg = _settings_from_args(args)
    except ValueError as exc:
        reporter.error(f"Error: {exc}")
        return EXIT_FAILED

    log = build_logger("case", level=parse_level(cfg.log_level), file_path=cfg.log_file)
    log_event(log, "startup", level=logging.DEBUG, command=args.command, settings=cfg.dump())
    try:
        return asyncio.run(run_command(args, cfg, reporter, log))
    except CaseError as exc:
        reporter.error(f"Error: {exc}")
        item_errors = getattr(exc, "item_errors", None) or []
        for message in unique_messages(e.message for e in item_errors):
            reporter.error(f"=> {message}")
        log_event(
            log,
            "command_failed",
            level=logging.DEBUG,
            error_type=type(exc).__name__,
            error=str(exc),
            item_errors=len(item_errors),
        )
        return EXIT_FAILED
    except KeyboardInterrupt:
        reporter.error("Stopped by user")
        return EXIT_INTERRUPTED
    finally:
        flush_logger(log)


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
