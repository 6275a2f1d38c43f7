#!/usr/bin/env python
"""User administration

Usage:
    python manage_users.py add alice --admin     # create/update a user (admin flag)
    python manage_users.py token alice           # print a bearer token for alice
    python manage_users.py usage alice           # today's request count
    python manage_users.py chats alice           # list alice's conversations
"""
import argparse
import asyncio
from datetime import date

from searchchat.auth import create_access_token
from searchchat.config import config
from searchchat.db import database


async def add_user(user_id: str, name: str = None, email: str = None, admin: bool = False):
    await database.init_db()
    await database.upsert_user(user_id, name=name, email=email, is_admin=admin)
    print(f"User {user_id} saved (admin={admin})")


def print_token(user_id: str, days: int = None):
    print(create_access_token(user_id, expires_days=days))


async def show_usage(user_id: str):
    await database.init_db()
    used = await database.get_user_requests_today(user_id, date.today())
    admin = await database.is_user_admin(user_id)
    limit = "unlimited" if admin else config.DAILY_REQUEST_LIMIT
    print(f"{user_id}: {used} requests today (limit: {limit})")


async def show_chats(user_id: str):
    await database.init_db()
    chats = await database.get_chats(user_id)
    if not chats:
        print("No chats")
        return
    for chat in chats:
        print(f"{chat.updated_at:%Y-%m-%d %H:%M}  {chat.id}  {chat.title}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="searchchat user administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command")

    add = sub.add_parser("add", help="create or update a user")
    add.add_argument("user_id")
    add.add_argument("--name")
    add.add_argument("--email")
    add.add_argument("--admin", action="store_true", help="exempt from the daily limit")

    token = sub.add_parser("token", help="print a bearer token")
    token.add_argument("user_id")
    token.add_argument("--days", type=int, help="validity in days")

    usage = sub.add_parser("usage", help="today's request count")
    usage.add_argument("user_id")

    chats = sub.add_parser("chats", help="list a user's conversations")
    chats.add_argument("user_id")

    args = parser.parse_args(argv)

    if args.command == "add":
        asyncio.run(add_user(args.user_id, args.name, args.email, args.admin))
    elif args.command == "token":
        print_token(args.user_id, args.days)
    elif args.command == "usage":
        asyncio.run(show_usage(args.user_id))
    elif args.command == "chats":
        asyncio.run(show_chats(args.user_id))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
