"""Terminal front-end.

    taleforge login --dev me@example.com
    taleforge characters
    taleforge create
    taleforge play 12
    taleforge admin users

The token is kept in {data_dir}/session.json between invocations. When the
backend rejects the session the command stops and asks for a new login.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import httpx

from taleforge import subscription as subs
from taleforge.api import ApiClient
from taleforge.auth import get_token_payload, has_administrator_role, is_token_valid
from taleforge.config import Settings, load_settings
from taleforge.flows import (
    LOGIN_ROUTE,
    AdminFlow,
    CharacterCreationFlow,
    DeploymentStatus,
    HomeFlow,
    LoginFlow,
    Navigator,
    PlayFlow,
    SubscriptionFlow,
)
from taleforge.flows.creation import format_ai_text
from taleforge.session import SessionContext, TokenStore


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class App:
    """Wires settings, session, navigator and client together for one run."""

    def __init__(
        self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self.settings = settings
        self.session = SessionContext(TokenStore(settings.session_file))
        self.navigator = Navigator(self.session)
        self.api = ApiClient.from_settings(settings, self.session, transport)
        self.transport = transport

    @property
    def kicked_out(self) -> bool:
        return self.navigator.route == LOGIN_ROUTE and self.navigator.notice is not None


async def _prompt(text: str) -> str | None:
    try:
        return await asyncio.to_thread(input, text)
    except EOFError:
        return None


def _require_login(app: App) -> bool:
    if not app.session.is_logged_in:
        print("Not logged in. Run `taleforge login` first.")
        return False
    return True


# ── Commands ─────────────────────────────────────────────


async def cmd_login(app: App, args: argparse.Namespace) -> int:
    flow = LoginFlow(app.api, app.session, app.navigator)
    if args.google:
        ok = await flow.login_with_google(args.google)
    else:
        ok = await flow.dev_login(args.dev)
    if not ok:
        print(flow.error)
        return 1
    print(f"Logged in as {app.session.user or 'unknown user'}")
    return 0


async def cmd_logout(app: App, args: argparse.Namespace) -> int:
    LoginFlow(app.api, app.session, app.navigator).logout()
    print("Logged out.")
    return 0


async def cmd_whoami(app: App, args: argparse.Namespace) -> int:
    if not _require_login(app):
        return 1
    token = app.session.token
    payload = get_token_payload(token)
    print(f"Email:   {app.session.user or '-'}")
    print(f"Player:  {app.session.player or '-'}")
    print(f"Admin:   {'yes' if has_administrator_role(token) else 'no'}")
    print(f"Valid:   {'yes' if is_token_valid(token) else 'no (expired or unreadable)'}")
    if payload and payload.exp:
        print(f"Expires: {int(payload.exp)}")
    return 0


async def cmd_characters(app: App, args: argparse.Namespace) -> int:
    if not _require_login(app):
        return 1
    flow = HomeFlow(app.api, app.navigator)
    characters = await flow.load()
    if flow.error:
        print(flow.error)
        return 1
    if not characters:
        print("No characters yet. Run `taleforge create` to make one.")
    for c in characters:
        details = ", ".join(str(x) for x in (c.character_class, c.level and f"level {c.level}") if x)
        print(f"{c.character_id:>5}  {c.name}" + (f"  ({details})" if details else ""))
    return 0


async def cmd_delete(app: App, args: argparse.Namespace) -> int:
    if not _require_login(app):
        return 1
    if not args.yes:
        answer = await _prompt(
            f"Delete character {args.character_id} with all its sessions and logs? "
            "This cannot be undone. [y/N] "
        )
        if (answer or "").strip().lower() not in ("y", "yes"):
            print("Cancelled.")
            return 0
    flow = HomeFlow(app.api, app.navigator)
    if not await flow.delete_character(args.character_id):
        print(flow.error)
        return 1
    print(f"Deleted. {len(flow.characters)} character(s) left.")
    return 0


async def cmd_create(app: App, args: argparse.Namespace) -> int:
    if not _require_login(app):
        return 1
    flow = CharacterCreationFlow(app.api, app.navigator)
    print("Describe your character. `/save NAME` saves it, `/quit` leaves.")
    while not app.kicked_out:
        line = await _prompt("you> ")
        if line is None or line.strip() == "/quit":
            return 0
        if line.startswith("/save"):
            character_id = await flow.save(line[len("/save"):])
            if character_id is None:
                print(flow.error or "Usage: /save NAME")
                continue
            print(f"Character saved (id {character_id}). Play it with `taleforge play {character_id}`.")
            return 0
        reply = await flow.send(line)
        if reply is not None:
            print(format_ai_text(reply.text))
    return 1


async def cmd_play(app: App, args: argparse.Namespace) -> int:
    if not _require_login(app):
        return 1
    flow = PlayFlow(app.api, app.settings.history_window)
    if not await flow.load(args.character_id):
        print(flow.error)
        return 1

    print(f"== {flow.character.name} ==")
    for event in flow.narrative:
        print(event.content)
    print("Type an action. Commands: /start /sheet [FILE] /history [PAGE] /prev /next "
          "/latest /image /finalize [FILE] /quit")

    while not app.kicked_out:
        line = await _prompt("> ")
        if line is None or line.strip() == "/quit":
            return 0
        command, _, arg = line.strip().partition(" ")
        if command == "/start":
            result = await flow.start()
            print(result.narrative if result else flow.narrative[-1].content)
        elif command == "/sheet":
            if arg:
                try:
                    sheet = Path(arg).read_text()
                except OSError as e:
                    print(f"Cannot read {arg}: {e}")
                    continue
                if await flow.save_sheet(sheet):
                    print("Character sheet saved.")
                else:
                    print(flow.error)
            else:
                print(flow.character_sheet)
        elif command == "/history":
            if await flow.load_history(int(arg) if arg.isdigit() else 1):
                _print_submission(flow.window.current)
            else:
                print(flow.error)
        elif command == "/prev":
            _print_submission(flow.window.previous())
        elif command == "/next":
            _print_submission(flow.window.next())
        elif command == "/latest":
            _print_submission(flow.window.go_to_latest())
        elif command == "/image":
            url = await flow.generate_image()
            if url is None:
                print(flow.error)
                continue
            print(url)
            answer = await _prompt("Save this image? [y/N] ")
            if (answer or "").strip().lower() in ("y", "yes") and not await flow.save_image(url):
                print(flow.error)
        elif command == "/finalize":
            document = await flow.finalize()
            if document is None:
                print(flow.error)
                continue
            target = Path(arg or document.file_name)
            target.write_text(document.content)
            print(f"Session written to {target}")
        else:
            result = await flow.submit(line)
            if result is not None:
                print(result.narrative)
            elif flow.narrative and flow.narrative[-1].content.startswith("Error: "):
                print(flow.narrative[-1].content)
    return 1


def _print_submission(submission) -> None:
    if submission is None:
        print("(no submissions held)")
        return
    print(f"#{submission.sequence} > {submission.action}")
    print(submission.narrative)


async def cmd_subscription(app: App, args: argparse.Namespace) -> int:
    flow = SubscriptionFlow(app.api, app.session, app.navigator)
    if not flow.enter():
        print("Not logged in or session expired. Run `taleforge login` first.")
        return 1

    if args.action == "create":
        ok = await flow.create(args.tier)
    elif args.action == "upgrade":
        ok = await flow.upgrade()
    elif args.action == "cancel":
        answer = await _prompt("Cancel your subscription? You will lose premium features. [y/N] ")
        if (answer or "").strip().lower() not in ("y", "yes"):
            return 0
        ok = await flow.cancel()
    else:
        await flow.load()
        ok = True
    if not ok:
        print(flow.error)
        return 1

    info = flow.subscription
    if info is None or not info.has_subscription:
        print("No subscription.")
        return 0
    print(f"Tier:    {subs.get_subscription_display_name(info.tier)}")
    print(f"Status:  {subs.get_status_display_name(info.status)}")
    if info.is_admin_granted:
        print("         Admin Granted")
    if info.current_period_end:
        label = "Access until" if info.status == subs.STATUS_CANCELLED else "Next billing"
        print(f"{label}: {subs.format_date(info.current_period_end)}")
    print(f"Premium features: {'yes' if flow.premium else 'no'}")
    for t in flow.transactions:
        print(f"  {subs.format_date(t.created_at)}  {t.type:<12} {t.status:<10} "
              f"{subs.format_currency(t.amount, t.currency)}")
    return 0


async def cmd_admin(app: App, args: argparse.Namespace) -> int:
    flow = AdminFlow(app.api, app.session, app.navigator)
    if not flow.enter():
        print("Administrator access required.")
        return 1

    action = args.admin_command
    if action == "users":
        users = await flow.load_users()
        if flow.error:
            print(flow.error)
            return 1
        for u in users:
            granted = " (admin granted)" if u.is_admin_granted else ""
            tier = subs.get_subscription_display_name(u.tier) if u.tier else "-"
            status = subs.get_status_display_name(u.status) if u.status else "-"
            print(f"{u.player_id:>5}  {u.email:<32} {tier:<14} {status}{granted}")
        return 0
    if action == "test":
        print(await flow.test_endpoint())
        return 0
    if action == "provider":
        if args.provider is not None and not await flow.set_provider(args.provider):
            print(flow.error)
            return 1
        info = await flow.load_provider()
        if info is None:
            print("Failed to load API provider.")
            return 1
        print(f"Current provider: {info.display_name} ({info.current_provider})")
        for p in info.available_providers:
            marker = "*" if p.provider == info.current_provider else " "
            print(f" {marker} {p.provider}  {p.display_name}")
        return 0
    if action == "status":
        panel = DeploymentStatus(
            app.session, app.settings.api_url, app.settings.frontend_url, transport=app.transport
        )
        for d in await panel.check():
            extra = d.error or (f"version {d.version}" if d.version else "")
            print(f"{d.service:<14} {d.status:<8} {d.url or '-':<40} {extra}")
        print(f"Last checked: {panel.last_refresh}")
        return 0

    if action == "grant":
        ok = await flow.grant_free_access(args.player_id, args.reason)
    elif action == "revoke":
        ok = await flow.revoke_free_access(args.player_id, args.reason)
    elif action == "suspend":
        ok = await flow.suspend(args.player_id, args.reason)
    else:
        ok = await flow.reactivate(args.player_id)
    if not ok:
        print(flow.error or "A reason is required.")
        return 1
    print("Done.")
    return 0


COMMANDS = {
    "login": cmd_login,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "characters": cmd_characters,
    "delete": cmd_delete,
    "create": cmd_create,
    "play": cmd_play,
    "subscription": cmd_subscription,
    "admin": cmd_admin,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taleforge", description="Taleforge terminal front-end")
    parser.add_argument("--api-url", default=None, help="Backend API root (default: TALEFORGE_API_URL)")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Where the session is stored (default: ~/.taleforge)")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the session token")
    method = login.add_mutually_exclusive_group(required=True)
    method.add_argument("--google", metavar="ID_TOKEN", help="Google ID token")
    method.add_argument("--dev", metavar="EMAIL", help="Development login")

    sub.add_parser("logout", help="Forget the stored session")
    sub.add_parser("whoami", help="Show what the stored token says")
    sub.add_parser("characters", help="List your characters")

    delete = sub.add_parser("delete", help="Delete a character")
    delete.add_argument("character_id", type=int)
    delete.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    sub.add_parser("create", help="Create a character by talking to the AI")

    play = sub.add_parser("play", help="Play a character's narrative session")
    play.add_argument("character_id", type=int)

    subscription = sub.add_parser("subscription", help="Show or change your subscription")
    subscription.add_argument("action", nargs="?", default="status",
                              choices=["status", "create", "upgrade", "cancel"])
    subscription.add_argument("--tier", default=subs.TIER_PREMIUM)

    admin = sub.add_parser("admin", help="Administrator tools")
    admin_sub = admin.add_subparsers(dest="admin_command", required=True)
    admin_sub.add_parser("users", help="List users and their subscriptions")
    for name in ("grant", "revoke", "suspend"):
        p = admin_sub.add_parser(name, help=f"{name.capitalize()} a user's access")
        p.add_argument("player_id", type=int)
        p.add_argument("reason")
    reactivate = admin_sub.add_parser("reactivate", help="Reactivate a suspended user")
    reactivate.add_argument("player_id", type=int)
    provider = admin_sub.add_parser("provider", help="Show or switch the AI provider")
    provider.add_argument("provider", type=int, nargs="?")
    admin_sub.add_parser("test", help="Call the admin test endpoint")
    admin_sub.add_parser("status", help="Check deployment health")
    return parser


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format=LOG_FORMAT,
                        stream=sys.stderr)


async def run(args: argparse.Namespace, settings: Settings,
              transport: httpx.AsyncBaseTransport | None = None) -> int:
    app = App(settings, transport)
    try:
        code = await COMMANDS[args.command](app, args)
    finally:
        app.navigator.close()
    if app.navigator.notice:
        print(app.navigator.notice)
        return 1
    return code


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.api_url:
        settings.api_url = args.api_url
    if args.data_dir:
        settings.data_dir = args.data_dir
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
