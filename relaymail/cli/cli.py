"""Main CLI entry point."""

import asyncio
import json
from typing import Awaitable, Callable, Dict, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt

from relaymail.core.services import OneTimeCodeMailer
from relaymail.security.keyring_store import store_secret
from relaymail.utils.config import ConfigManager
from relaymail.utils.errors import RelayMailError, format_error_message
from relaymail.utils.logging import async_log_call, get_logger, init_logging

from .cli_parser import setup_argument_parser

logger = get_logger(__name__)

DEFAULT_KEYRING_SERVICE = "relaymail"


class CommandRouter:
    """Routes parsed commands to their handlers."""

    def __init__(self, config_manager: ConfigManager, console: Console):
        self.config_manager = config_manager
        self.console = console
        self._handlers: Dict[str, Callable[..., Awaitable[bool]]] = {
            "send-code": self._send_code,
            "verify": self._verify,
            "config": self._config,
        }

    @async_log_call
    async def route(self, args) -> bool:
        """Run the handler for ``args.command``.

        Raises:
            ValueError: If command is unknown
        """
        handler = self._handlers.get(args.command)
        if handler is None:
            raise ValueError(f"Unknown command: {args.command}")

        return await handler(args)

    async def _send_code(self, args) -> bool:
        mailer = OneTimeCodeMailer(self.config_manager.config)
        outcome = await mailer.deliver_one_time_code(args.to, args.code)

        if outcome.success:
            self.console.print(
                f"[green]✓ Code delivered to {args.to} "
                f"in {outcome.duration:.2f}s[/green]"
            )
            return True

        self.console.print(
            f"[red]✗ Delivery failed: {escape(format_error_message(outcome.error))}[/red]"
        )
        return False

    async def _verify(self, args) -> bool:
        relay = self.config_manager.config.relay
        mailer = OneTimeCodeMailer(self.config_manager.config)

        with self.console.status(f"Connecting to {relay.host}:{relay.port}..."):
            result = await mailer.verify_relay()

        self.console.print(
            f"[green]✓ Authenticated with {relay.host} "
            f"in {result.duration:.2f}s[/green]"
        )
        if result.capabilities:
            self.console.print(f"[dim]Extensions: {', '.join(result.capabilities)}[/dim]")
        return True

    async def _config(self, args) -> bool:
        if args.config_command == "show":
            self.console.print_json(json.dumps(self.config_manager.masked()))
            return True

        relay = self.config_manager.config.relay
        if not relay.username:
            self.console.print("[red]Configure relay.username before storing a secret[/red]")
            return False

        service = relay.keyring_service or DEFAULT_KEYRING_SERVICE
        secret = Prompt.ask(f"Password for {relay.username}", password=True)
        await asyncio.to_thread(store_secret, service, relay.username, secret)

        self.console.print(f"[green]✓ Secret stored in keyring service '{service}'[/green]")
        if not relay.keyring_service:
            relay.keyring_service = service
            await asyncio.to_thread(self.config_manager.save)
            self.console.print(
                f"[dim]relay.keyring_service recorded in {self.config_manager.path}[/dim]"
            )
        return True


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = Console()

    try:
        parser = setup_argument_parser()
        args = parser.parse_args(argv)

        try:
            config_manager = ConfigManager(args.config_path)
        except RelayMailError as e:
            console.print(f"[red]Configuration error: {escape(format_error_message(e))}[/red]")
            return 1

        log_config = config_manager.config.logging
        init_logging(
            args.log_level or log_config.log_level,
            force=True,
            console_level=log_config.console_level,
            log_to_file=log_config.log_to_file,
            max_file_size=log_config.max_file_size,
            backup_count=log_config.backup_count,
        )

        router = CommandRouter(config_manager, console)
        success = asyncio.run(router.route(args))
        return 0 if success else 1

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130  # Standard SIGINT exit code

    except RelayMailError as e:
        logger.error(f"Command failed: {e.message}")
        console.print(f"[red]Error: {escape(format_error_message(e))}[/red]")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
