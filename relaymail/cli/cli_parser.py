"""Argument parser configuration for the relaymail CLI"""

import argparse

from relaymail import __version__


## Command Setup Functions

def setup_delivery_commands(subparsers) -> None:
    """Setup send-code and verify commands."""

    send_parser = subparsers.add_parser(
        "send-code",
        help="Send a one-time code to an address",
        description="Deliver a one-time passcode through the configured relay"
    )
    send_parser.add_argument(
        "--to",
        required=True,
        help="Recipient email address"
    )
    send_parser.add_argument(
        "--code",
        required=True,
        help="One-time code to transmit"
    )

    subparsers.add_parser(
        "verify",
        help="Check relay connectivity and credentials",
        description="Connect and authenticate to the relay without sending mail"
    )


def setup_config_commands(subparsers) -> None:
    """Setup config show and store-secret commands."""

    config_parser = subparsers.add_parser(
        "config",
        help="Inspect configuration",
        description="Show the effective configuration or store the relay secret"
    )
    config_subparsers = config_parser.add_subparsers(
        dest="config_command",
        required=True,
        help="Configuration operation to perform",
    )
    config_subparsers.add_parser("show", help="Show effective settings (secret masked)")
    config_subparsers.add_parser(
        "store-secret",
        help="Store the relay password in the system keyring"
    )


def setup_argument_parser() -> argparse.ArgumentParser:
    """Create the top-level argument parser."""

    parser = argparse.ArgumentParser(
        prog="relaymail",
        description="One-time passcode delivery over SMTP"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        help="Path to config.json (default: ~/.relaymail/config.json)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="File log level (overrides configuration)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    setup_delivery_commands(subparsers)
    setup_config_commands(subparsers)

    return parser
