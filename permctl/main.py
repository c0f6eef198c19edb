"""
Command line entry point for permctl.

Manages the tokens saved for permissions systems and the current context,
and shows which token a call would use given explicit flag values.
"""

import argparse
import getpass
import json
import logging
import sys
from typing import List, Optional

from permctl.auth.context import ContextResolver, current_token
from permctl.auth.token_storage import KeyringTokenStore
from permctl.config import LocalConfigStore, PermctlConfiguration
from permctl.shared.exceptions import (
    ConfigNotFoundError, ConfigurationError, PermctlError, handle_exception,
)
from permctl.shared.interfaces import IConfigStore, ITokenStore
from permctl.shared.logging_config import (
    AuditLogger, LogFormat, LogLevel, log_structured_error, setup_logging,
)
from permctl.shared.models import Token

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="permctl",
        description="Manage permissions system tokens and contexts",
        epilog="""
Examples:
  %(prog)s context set my_system grpc.example.com:443 tc_my_token_abc123
  %(prog)s token list
  %(prog)s context use other_system
  %(prog)s context resolve --endpoint localhost:50051
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument("--config", type=str, metavar="FILE",
                        help="Configuration file to use")
    parser.add_argument("--json", action="store_true",
                        help="Output as JSON")

    debug_group = parser.add_argument_group('Debug')
    debug_group.add_argument("--debug", action="store_true",
                             help="Enable debug logging")
    debug_group.add_argument("--quiet", "-q", action="store_true",
                             help="Only log errors")
    debug_group.add_argument("--log-file", type=str, metavar="FILE",
                             help="Also write logs to FILE")

    groups = parser.add_subparsers(dest="group", metavar="{token,context}")
    groups.required = True

    token_parser = groups.add_parser("token", help="Manage saved tokens")
    token_commands = token_parser.add_subparsers(dest="command", metavar="COMMAND")
    token_commands.required = True

    token_list = token_commands.add_parser("list", help="List saved tokens")
    token_list.add_argument("--reveal", action="store_true", help="Show secrets")
    token_list.set_defaults(handler=cmd_token_list)

    token_save = token_commands.add_parser("save", help="Save a token")
    token_save.add_argument("system", help="Permissions system name")
    token_save.add_argument("endpoint", help="Permissions system endpoint")
    token_save.add_argument("secret", nargs="?", help="API token (prompted for when omitted)")
    token_save.set_defaults(handler=cmd_token_save)

    token_get = token_commands.add_parser("get", help="Show a saved token")
    token_get.add_argument("system", help="Permissions system name")
    token_get.add_argument("--reveal", action="store_true", help="Show the secret")
    token_get.set_defaults(handler=cmd_token_get)

    token_delete = token_commands.add_parser("delete", help="Delete a saved token")
    token_delete.add_argument("system", help="Permissions system name")
    token_delete.set_defaults(handler=cmd_token_delete)

    context_parser = groups.add_parser("context", help="Manage the current context")
    context_commands = context_parser.add_subparsers(dest="command", metavar="COMMAND")
    context_commands.required = True

    context_set = context_commands.add_parser("set", help="Save a token and make it current")
    context_set.add_argument("system", help="Permissions system name")
    context_set.add_argument("endpoint", help="Permissions system endpoint")
    context_set.add_argument("secret", nargs="?", help="API token (prompted for when omitted)")
    context_set.set_defaults(handler=cmd_context_set)

    context_use = context_commands.add_parser("use", help="Make a saved token current")
    context_use.add_argument("system", help="Permissions system name")
    context_use.set_defaults(handler=cmd_context_use)

    context_current = context_commands.add_parser("current", help="Show the current context")
    context_current.add_argument("--reveal", action="store_true", help="Show the secret")
    context_current.set_defaults(handler=cmd_context_current)

    context_remove = context_commands.add_parser("remove", help="Delete a saved token and unset it if current")
    context_remove.add_argument("system", help="Permissions system name")
    context_remove.set_defaults(handler=cmd_context_remove)

    context_resolve = context_commands.add_parser("resolve", help="Show the token a call would use")
    context_resolve.add_argument("--permissions-system", default="", metavar="NAME",
                                 help="Permissions system to use instead of the current one")
    context_resolve.add_argument("--endpoint", default="", metavar="ADDR",
                                 help="Endpoint to use instead of the saved one")
    context_resolve.add_argument("--token", default="", metavar="TOKEN",
                                 help="Token to use instead of the saved one")
    context_resolve.add_argument("--reveal", action="store_true", help="Show the secret")
    context_resolve.set_defaults(handler=cmd_context_resolve)

    return parser.parse_args(argv)


def configure_logging(args: argparse.Namespace, config: PermctlConfiguration) -> None:
    """Configure logging based on command line arguments and configuration."""
    if args.debug:
        config.set_override('logging.level', 'DEBUG')
    elif args.quiet:
        config.set_override('logging.level', 'ERROR')
    if args.log_file:
        config.set_override('logging.file', args.log_file)

    try:
        log_level = LogLevel(config.get_log_level())
        log_format = LogFormat(config.get_log_format())
    except ValueError as e:
        raise ConfigurationError(f"Invalid logging configuration: {e}", config_key='logging') from e

    setup_logging(log_level=log_level, log_format=log_format, log_file=config.get_log_file())


def _read_secret(secret: Optional[str]) -> str:
    if secret:
        return secret
    return getpass.getpass("Token: ")


def _print_tokens(tokens: List[Token], args: argparse.Namespace, current: Optional[str] = None) -> None:
    reveal = getattr(args, 'reveal', False)
    if args.json:
        print(json.dumps([token.to_dict(reveal=reveal) for token in tokens], indent=2))
        return

    rows = [("CURRENT", "NAME", "ENDPOINT", "PREFIX", "SECRET")]
    for token in tokens:
        rows.append((
            "*" if token.system == current else "",
            token.system,
            token.endpoint,
            token.prefix,
            token.to_dict(reveal=reveal)['secret'],
        ))

    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    for row in rows:
        print("  ".join(value.ljust(width) for value, width in zip(row, widths)).rstrip())


def _current_system(config_store: IConfigStore) -> Optional[str]:
    try:
        return config_store.get_current_context()
    except ConfigNotFoundError:
        return None


def cmd_token_list(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    tokens = token_store.list_tokens(reveal_tokens=args.reveal)
    _print_tokens(tokens, args, current=_current_system(config_store))
    return 0


def cmd_token_save(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    token_store.put(args.system, args.endpoint, _read_secret(args.secret))
    audit.log_token_saved(args.system, args.endpoint)
    return 0


def cmd_token_get(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    _print_tokens([token_store.get(args.system)], args, current=_current_system(config_store))
    return 0


def cmd_token_delete(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    token_store.delete(args.system)
    audit.log_token_deleted(args.system)
    return 0


def cmd_context_set(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    token_store.put(args.system, args.endpoint, _read_secret(args.secret))
    audit.log_token_saved(args.system, args.endpoint)
    config_store.set_current_context(args.system)
    audit.log_context_changed(args.system)
    return 0


def cmd_context_use(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    token_store.get(args.system)
    config_store.set_current_context(args.system)
    audit.log_context_changed(args.system)
    return 0


def cmd_context_current(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    token = current_token(config_store, token_store)
    _print_tokens([token], args, current=token.system)
    return 0


def cmd_context_remove(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    token_store.delete(args.system)
    audit.log_token_deleted(args.system)
    if _current_system(config_store) == args.system:
        config_store.clear_current_context()
        audit.log_context_changed(None)
    return 0


def cmd_context_resolve(args, token_store: ITokenStore, config_store: IConfigStore, audit: AuditLogger) -> int:
    resolver = ContextResolver(config_store, token_store)
    token = resolver.resolve(args.permissions_system, args.endpoint, args.token)
    _print_tokens([token], args)
    return 0


def run(
    args: argparse.Namespace,
    token_store: ITokenStore,
    config_store: IConfigStore,
    audit: Optional[AuditLogger] = None,
) -> int:
    """
    Run the parsed command, reporting errors on stderr.

    Returns:
        Process exit status
    """
    audit = audit or AuditLogger()
    try:
        return args.handler(args, token_store, config_store, audit)
    except PermctlError as e:
        system = getattr(args, 'system', None)
        log_structured_error(logger, e, system=system)
        audit.log_error(e, system=system)
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print("\nAborted", file=sys.stderr)
        return 1
    except Exception as e:
        error = handle_exception(e, context={'command': f"{args.group} {args.command}"})
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {type(e).__name__}: {error.message}", file=sys.stderr)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        config = PermctlConfiguration(config_file=args.config)
        configure_logging(args, config)
    except ConfigurationError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1

    return run(
        args,
        token_store=KeyringTokenStore.from_configuration(config),
        config_store=LocalConfigStore(config),
    )


if __name__ == "__main__":
    sys.exit(main())
