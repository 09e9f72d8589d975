#!/usr/bin/env python3
"""
Gatekeeper -- username/password authentication with role-based path rules.

Operator CLI for the credential store and the rule table. Every command
builds the same AuthenticationService a request-handling layer would use.

Usage:
  python main.py add-user alice --role USER
  python main.py login user1
  python main.py authorize /admin --user user2
  python main.py authorize /join
  python main.py set-status alice --lock
  python main.py rules
  python main.py users

Environment variables (all optional, see core/config.py):
  GATEKEEPER_DATABASE_URL        SQLAlchemy URL of the user database.
  GATEKEEPER_IN_MEMORY_USERS     true = use the built-in user1/user2 demo accounts.
  GATEKEEPER_BCRYPT_ROUNDS       bcrypt cost factor (default 10).
  GATEKEEPER_ROLE_HIERARCHY      e.g. "C > B\\nB > A".
  GATEKEEPER_AUTHORIZATION_RULES JSON list of {patterns, access, roles}.
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.errors import ConfigurationError, StoreUnavailableError
from auth.models import AccountStatus, Decision, RegistrationOutcome
from auth.passwords import PasswordHasher
from auth.service import AuthConfig, AuthenticationService
from auth.store import DEFAULT_DB_URL, InMemoryCredentialStore, SqlCredentialStore, demo_users
from core.config import Settings, get_settings

logger = logging.getLogger("gatekeeper.cli")


def build_service(settings: Settings) -> AuthenticationService:
    """Assemble the service from settings. Raises ConfigurationError or StoreUnavailableError."""
    config = AuthConfig.from_settings(settings)
    hasher = PasswordHasher(config.bcrypt_rounds)
    if settings.in_memory_users:
        store = InMemoryCredentialStore(demo_users(hasher))
    else:
        store = SqlCredentialStore(settings.database_url or DEFAULT_DB_URL)
    return AuthenticationService(store, config, hasher=hasher)


def _read_password(given: Optional[str], confirm: bool = False) -> str:
    if given is not None:
        return given
    password = getpass.getpass("Password: ")
    if confirm and getpass.getpass("Repeat password: ") != password:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def _cmd_add_user(service: AuthenticationService, args: argparse.Namespace) -> int:
    password = _read_password(args.password, confirm=True)
    try:
        outcome = service.register(args.username, password, role=args.role)
    except ValueError as e:
        print(f"  [!] {e}")
        return 1
    if outcome is RegistrationOutcome.CREATED:
        print(f"  Created user '{args.username}'.")
        return 0
    if outcome is RegistrationOutcome.USERNAME_TAKEN:
        print(f"  [!] Username '{args.username}' already exists.")
    else:
        print("  [!] Credential store unavailable.")
    return 1


def _cmd_login(service: AuthenticationService, args: argparse.Namespace) -> int:
    result = service.login(args.username, _read_password(args.password))
    if not result.ok:
        print(f"  [!] Login failed: {result.outcome.value}")
        return 1
    print(f"  Login OK. Role: {result.role}")
    print(f"  Effective roles: {', '.join(sorted(service.hierarchy.expand(result.role)))}")
    service.logout(result.session_id)
    return 0


def _cmd_authorize(service: AuthenticationService, args: argparse.Namespace) -> int:
    session_id = None
    if args.user:
        result = service.login(args.user, _read_password(args.password))
        if not result.ok:
            print(f"  [!] Login failed: {result.outcome.value}")
            return 1
        session_id = result.session_id
    try:
        decision = service.authorize(session_id, args.path)
    finally:
        service.logout(session_id)
    rule = service.engine.match(args.path)
    matched = rule.pattern if rule is not None else "(default)"
    print(f"  {args.path} -> {decision.value}  [rule: {matched}]")
    return 0 if decision is Decision.ALLOW else 2


def _cmd_rules(service: AuthenticationService, args: argparse.Namespace) -> int:
    print(f"\n  {'#':<3} {'PATTERN':<20} {'REQUIREMENT':<15} ROLES")
    print("  " + "─" * 54)
    for i, rule in enumerate(service.engine.rules, 1):
        roles = ", ".join(sorted(rule.roles)) or "-"
        print(f"  {i:<3} {rule.pattern:<20} {rule.requirement.value:<15} {roles}")
    print(f"  {'*':<3} {'(any other path)':<20} {service.engine.default.value:<15} -\n")
    return 0


def _cmd_set_status(service: AuthenticationService, args: argparse.Namespace) -> int:
    status = AccountStatus(
        enabled=not args.disable,
        account_locked=args.lock,
        account_expired=args.expire,
        credentials_expired=args.expire_credentials,
    )
    if not service.store.set_status(args.username, status):
        print(f"  [!] No such user '{args.username}'.")
        return 1
    state = "enabled" if status.is_usable else "disabled"
    print(f"  User '{args.username}' is now {state}.")
    return 0


def _cmd_users(service: AuthenticationService, args: argparse.Namespace) -> int:
    for user in service.store.list_users():
        state = "enabled" if user.status.is_usable else "disabled"
        print(f"  {user.username:<24} {user.role:<10} {state}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Username/password authentication with role-based path rules.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py add-user alice --role USER
  python main.py login user1
  python main.py authorize /my/profile --user user2
  GATEKEEPER_IN_MEMORY_USERS=true python main.py authorize /admin --user user2 --password 1234
        """,
    )
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("add-user", help="Create a user with a bcrypt-hashed password")
    p.add_argument("username")
    p.add_argument("--role", default="USER", help="Primary role (default: USER)")
    p.add_argument("--password", help="Password (prompted when omitted)")
    p.set_defaults(func=_cmd_add_user)

    p = sub.add_parser("login", help="Check a username/password pair")
    p.add_argument("username")
    p.add_argument("--password", help="Password (prompted when omitted)")
    p.set_defaults(func=_cmd_login)

    p = sub.add_parser("authorize", help="Show the decision for a path, anonymously or as a user")
    p.add_argument("path")
    p.add_argument("--user", help="Log in as this user first")
    p.add_argument("--password", help="Password for --user (prompted when omitted)")
    p.set_defaults(func=_cmd_authorize)

    p = sub.add_parser("rules", help="Print the effective rule table in evaluation order")
    p.set_defaults(func=_cmd_rules)

    p = sub.add_parser("set-status", help="Replace a user's account flags (no flags = fully enabled)")
    p.add_argument("username")
    p.add_argument("--disable", action="store_true", help="Mark the account disabled")
    p.add_argument("--lock", action="store_true", help="Mark the account locked")
    p.add_argument("--expire", action="store_true", help="Mark the account expired")
    p.add_argument("--expire-credentials", action="store_true", help="Mark the password expired")
    p.set_defaults(func=_cmd_set_status)

    p = sub.add_parser("users", help="List stored users")
    p.set_defaults(func=_cmd_users)

    args = parser.parse_args()
    if args.command is None:
        parser.print_help()
        return

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        service = build_service(settings)
    except ConfigurationError as e:
        print(f"  [!] Invalid configuration: {e}")
        sys.exit(1)
    except StoreUnavailableError:
        print("  [!] Credential store unavailable.")
        sys.exit(1)

    try:
        code = args.func(service, args)
    except StoreUnavailableError:
        logger.exception("Credential store failed during %s", args.command)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
