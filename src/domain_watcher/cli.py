"""
Command-line interface for the domain watcher system.

This module provides the main CLI entry point with commands for:
- add / check / sweep / run / status: Watch list and lifecycle checks
- register / adapters / test-registrar / encrypt: Registrar integrations
- test-notification: Channel delivery test
- config: Configuration management
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import __version__
from .audit_logger import AuditLogger
from .bootstrap import RDAPBootstrap
from .config import (
    IANA_BOOTSTRAP_URL,
    DEFAULT_USER_AGENT,
    LoggingConfig,
    PersistenceConfig,
    RateLimitConfig,
    SchedulerConfig,
    SmtpConfig,
    SystemConfig,
)
from .crypto import CredentialCipher
from .domain_validator import DomainValidator
from .exceptions import DomainWatcherError, ConfigurationError
from .notifications import NotificationDispatcher
from .orchestrator import CheckOrchestrator
from .rate_limiter import RateLimiter
from .rdap_client import RDAPClient
from .registrars import get_initialized_adapter, list_adapter_types
from .registration import AutoRegistrationOrchestrator
from .scheduler import SweepScheduler
from .state_store import StateStore

DEFAULT_CONFIG_DIR = Path.home() / ".domain_watcher"
DEFAULT_HMAC_SECRET = "default-secret-change-me"


@dataclass
class Engine:
    """Fully wired engine components for one CLI invocation."""

    config: SystemConfig
    store: StateStore
    logger: AuditLogger
    rdap_client: RDAPClient
    dispatcher: NotificationDispatcher
    orchestrator: CheckOrchestrator
    scheduler: SweepScheduler
    cipher: Optional[CredentialCipher] = None
    auto_registrar: Optional[AutoRegistrationOrchestrator] = None


def create_default_config(
    state_file: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        state_file: Path to state file for persistence
        hmac_secret: Secret for HMAC protection

    Returns:
        SystemConfig with default settings
    """
    if state_file is None:
        state_file = DEFAULT_CONFIG_DIR / "state.json"

    return SystemConfig(
        persistence=PersistenceConfig(
            state_file_path=state_file,
            hmac_secret=hmac_secret,
        ),
        rate_limits=RateLimitConfig(max_concurrent=5, min_interval_seconds=1.0),
        logging=LoggingConfig(level="info", output_format="text"),
        scheduler=SchedulerConfig(interval_seconds=60.0),
        smtp=SmtpConfig(),
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        persistence_data = data.get("persistence", {})
        state_file_path = persistence_data.get("state_file_path")
        persistence = PersistenceConfig(
            state_file_path=Path(state_file_path) if state_file_path else DEFAULT_CONFIG_DIR / "state.json",
            hmac_secret=persistence_data.get("hmac_secret", DEFAULT_HMAC_SECRET),
        )

        rate_data = data.get("rate_limits", {})
        rate_limits = RateLimitConfig(
            max_concurrent=int(rate_data.get("max_concurrent", 5)),
            min_interval_seconds=float(rate_data.get("min_interval_seconds", 1.0)),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            audit_mode=logging_data.get("audit_mode", False),
            audit_signing_key=logging_data.get("audit_signing_key"),
            output_format=logging_data.get("output_format", "text"),
        )

        scheduler_data = data.get("scheduler", {})
        smtp_data = data.get("smtp", {})

        return SystemConfig(
            persistence=persistence,
            rate_limits=rate_limits,
            logging=logging_config,
            scheduler=SchedulerConfig(
                interval_seconds=float(scheduler_data.get("interval_seconds", 60.0)),
            ),
            smtp=SmtpConfig(
                timeout_seconds=float(smtp_data.get("timeout_seconds", 30.0)),
                helo_name=smtp_data.get("helo_name", "domainwatcher"),
            ),
            bootstrap_url=data.get("bootstrap_url", IANA_BOOTSTRAP_URL),
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
        )

    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "persistence": {
                "state_file_path": str(config.persistence.state_file_path),
                "hmac_secret": config.persistence.hmac_secret,
            },
            "rate_limits": {
                "max_concurrent": config.rate_limits.max_concurrent,
                "min_interval_seconds": config.rate_limits.min_interval_seconds,
            },
            "logging": {
                "level": config.logging.level,
                "audit_mode": config.logging.audit_mode,
                "audit_signing_key": config.logging.audit_signing_key,
                "output_format": config.logging.output_format,
            },
            "scheduler": {"interval_seconds": config.scheduler.interval_seconds},
            "smtp": {
                "timeout_seconds": config.smtp.timeout_seconds,
                "helo_name": config.smtp.helo_name,
            },
            "bootstrap_url": config.bootstrap_url,
            "user_agent": config.user_agent,
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def build_engine(config: SystemConfig, require_cipher: bool = False) -> Engine:
    """
    Wire every engine component from configuration.

    Without a usable master secret the engine still checks domains but
    auto-registration is not wired, unless ``require_cipher`` is set.

    Raises:
        ConfigurationError: If ``require_cipher`` is set and the secret is unusable
        PersistenceError: If the state file cannot be loaded
    """
    logger = AuditLogger.from_level_name(
        config.logging.level, output_format=config.logging.output_format
    )
    if config.logging.audit_mode and config.logging.audit_signing_key:
        logger.enable_audit_mode(config.logging.audit_signing_key)

    config.persistence.state_file_path.parent.mkdir(parents=True, exist_ok=True)
    store = StateStore(
        file_path=config.persistence.state_file_path,
        hmac_secret=config.persistence.hmac_secret,
    )
    store.load()

    cipher: Optional[CredentialCipher] = None
    try:
        cipher = CredentialCipher.from_env()
    except ConfigurationError as e:
        if require_cipher:
            raise
        logger.log_error("Engine", "Auto-registration disabled", e, {})

    bootstrap = RDAPBootstrap(
        url=config.bootstrap_url, user_agent=config.user_agent, logger=logger
    )
    rdap_client = RDAPClient(
        bootstrap=bootstrap,
        rate_limiter=RateLimiter(config.rate_limits),
        user_agent=config.user_agent,
        logger=logger,
    )
    dispatcher = NotificationDispatcher(store, logger=logger, smtp_config=config.smtp)
    auto_registrar = (
        AutoRegistrationOrchestrator(store, cipher, dispatcher=dispatcher, logger=logger)
        if cipher is not None else None
    )
    orchestrator = CheckOrchestrator(
        store, rdap_client, dispatcher=dispatcher, auto_registrar=auto_registrar, logger=logger
    )
    scheduler = SweepScheduler(
        store, orchestrator, interval_seconds=config.scheduler.interval_seconds, logger=logger
    )

    return Engine(
        config=config,
        store=store,
        logger=logger,
        rdap_client=rdap_client,
        dispatcher=dispatcher,
        orchestrator=orchestrator,
        scheduler=scheduler,
        cipher=cipher,
        auto_registrar=auto_registrar,
    )


def _resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
        return config
    return create_default_config()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _find_domain(engine: Engine, raw: str):
    validation = DomainValidator().validate(raw)
    if not validation.valid:
        print(f"Error: {validation.error.message}", file=sys.stderr)
        return None
    domain = engine.store.get_domain_by_name(validation.canonical_domain)
    if domain is None:
        print(f"Error: Domain is not watched: {validation.canonical_domain}", file=sys.stderr)
    return domain


def cmd_add(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'add' command."""
    validator = DomainValidator()
    added = 0
    for raw in args.domains:
        validation = validator.validate(raw)
        if not validation.valid:
            print(f"Skipping {raw}: {validation.error.message}", file=sys.stderr)
            continue
        engine.store.add_domain(
            validation.canonical_domain,
            validation.tld,
            auto_register=args.auto_register,
            registrar_adapter=args.adapter,
            priority=args.priority,
            tags=set(args.tag or []),
        )
        print(f"Watching {validation.canonical_domain}")
        added += 1
    return 0 if added else 1


async def _check(engine: Engine, raw: str) -> int:
    domain = _find_domain(engine, raw)
    if domain is None:
        return 1
    async with engine.rdap_client:
        result = await engine.orchestrator.perform_check(domain)
    _print_json(result.to_dict())
    return 0


def cmd_check(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'check' command."""
    return asyncio.run(_check(engine, args.domain))


async def _sweep(engine: Engine) -> int:
    async with engine.rdap_client:
        result = await engine.scheduler.run_sweep_now()
    _print_json(result if isinstance(result, dict) else result.to_dict())
    return 0


def cmd_sweep(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'sweep' command."""
    return asyncio.run(_sweep(engine))


async def _run_forever(engine: Engine) -> int:
    async with engine.rdap_client:
        await engine.scheduler.run()
    return 0


def cmd_run(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'run' command."""
    try:
        return asyncio.run(_run_forever(engine))
    except KeyboardInterrupt:
        return 0


def cmd_status(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'status' command."""
    _print_json([
        {
            "id": d.id,
            "domain": d.domain,
            "status": d.current_status.value,
            "previous_status": d.previous_status.value if d.previous_status else None,
            "expiry_date": d.expiry_date,
            "registrar": d.registrar,
            "last_checked_at": d.last_checked_at,
            "next_check_at": d.next_check_at,
            "auto_register": d.auto_register,
            "registrar_adapter": d.registrar_adapter,
            "priority": d.priority,
            "tags": sorted(d.tags),
        }
        for d in engine.store.list_domains()
    ])
    return 0


async def _register(engine: Engine, raw: str) -> int:
    domain = _find_domain(engine, raw)
    if domain is None:
        return 1
    outcome = await engine.auto_registrar.attempt_auto_registration(domain)
    if outcome is None:
        print("Auto-registration skipped (see log for the failing guard)", file=sys.stderr)
        return 1
    _print_json(outcome.history_details())
    return 0 if outcome.success else 1


def cmd_register(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'register' command."""
    return asyncio.run(_register(engine, args.domain))


def cmd_adapters(args: argparse.Namespace) -> int:
    """Handle the 'adapters' command."""
    _print_json(list_adapter_types())
    return 0


async def _test_registrar(engine: Engine, name: str) -> int:
    adapter = get_initialized_adapter(engine.store, engine.cipher, name)
    if adapter is None:
        print(f"Error: No registrar config for adapter: {name}", file=sys.stderr)
        return 1
    result = await adapter.test_connection()
    if result.success:
        print(f"{adapter.display_name}: connection OK")
        return 0
    print(f"{adapter.display_name}: {result.error}", file=sys.stderr)
    return 1


def cmd_test_registrar(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'test-registrar' command."""
    return asyncio.run(_test_registrar(engine, args.name))


def cmd_test_notification(args: argparse.Namespace, engine: Engine) -> int:
    """Handle the 'test-notification' command."""
    asyncio.run(engine.dispatcher.send_test(args.channel_id))
    print("Test notification sent")
    return 0


def cmd_encrypt(args: argparse.Namespace) -> int:
    """Handle the 'encrypt' command."""
    plaintext = sys.stdin.read().rstrip("\r\n")
    if not plaintext:
        print("Error: Nothing to encrypt on stdin", file=sys.stderr)
        return 1
    print(CredentialCipher.from_env().encrypt(plaintext))
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_DIR / "config.json"

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        print(f"Configuration from: {config_path}")
        print(f"  State file: {config.persistence.state_file_path}")
        print(f"  Bootstrap URL: {config.bootstrap_url}")
        print(f"  Sweep interval: {config.scheduler.interval_seconds}s")
        print(f"  RDAP concurrency: {config.rate_limits.max_concurrent}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Audit mode: {config.logging.audit_mode}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-watcher",
        description="Domain lifecycle watcher with RDAP polling and auto-registration",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    add_parser = subparsers.add_parser("add", help="Add domains to the watch list")
    add_parser.add_argument("domains", nargs="+", help="Domains to watch (e.g., example.com)")
    add_parser.add_argument(
        "--auto-register",
        action="store_true",
        help="Register the domain automatically when it becomes available",
    )
    add_parser.add_argument("--adapter", help="Registrar adapter to register through")
    add_parser.add_argument("--priority", type=int, default=0, help="Sort priority (default: 0)")
    add_parser.add_argument("--tag", action="append", help="Tag (repeatable)")
    add_parser.set_defaults(func=cmd_add, needs_engine=True)

    check_parser = subparsers.add_parser("check", help="Check one watched domain now")
    check_parser.add_argument("domain", help="Watched domain to check")
    check_parser.set_defaults(func=cmd_check, needs_engine=True)

    sweep_parser = subparsers.add_parser("sweep", help="Check every due domain once")
    sweep_parser.set_defaults(func=cmd_sweep, needs_engine=True)

    run_parser = subparsers.add_parser("run", help="Run sweeps until interrupted")
    run_parser.set_defaults(func=cmd_run, needs_engine=True)

    status_parser = subparsers.add_parser("status", help="Print watched domains as JSON")
    status_parser.set_defaults(func=cmd_status, needs_engine=True)

    register_parser = subparsers.add_parser(
        "register",
        help="Attempt auto-registration of a watched domain now",
    )
    register_parser.add_argument("domain", help="Watched domain to register")
    register_parser.set_defaults(func=cmd_register, needs_engine=True, needs_cipher=True)

    adapters_parser = subparsers.add_parser("adapters", help="List registrar adapters")
    adapters_parser.set_defaults(func=cmd_adapters)

    test_registrar_parser = subparsers.add_parser(
        "test-registrar",
        help="Test the stored credentials of a registrar adapter",
    )
    test_registrar_parser.add_argument("name", help="Adapter name (e.g., dynadot)")
    test_registrar_parser.set_defaults(func=cmd_test_registrar, needs_engine=True, needs_cipher=True)

    test_notification_parser = subparsers.add_parser(
        "test-notification",
        help="Send a test notification to one channel",
    )
    test_notification_parser.add_argument("channel_id", help="Notification channel id")
    test_notification_parser.set_defaults(func=cmd_test_notification, needs_engine=True)

    encrypt_parser = subparsers.add_parser(
        "encrypt",
        help="Encrypt a credential read from stdin",
    )
    encrypt_parser.set_defaults(func=cmd_encrypt)

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if not getattr(args, "needs_engine", False):
            return args.func(args)

        config = _resolve_config(args)
        if config is None:
            return 1
        engine = build_engine(config, require_cipher=getattr(args, "needs_cipher", False))
        return args.func(args, engine)
    except DomainWatcherError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
