#!/usr/bin/env python3
# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Create a user. Run: python -m orgauth_server.scripts.create_user"""

import asyncio
import getpass
import sys

from orgauth_server.api.schemas import check_password_strength
from orgauth_server.auth import hash_password
from orgauth_server.database import async_session_maker, init_db
from orgauth_server.stores.users import SqlCredentialStore


async def main():
    await init_db()
    email = input("Login e-mail: ").strip()
    name = input("Display name: ").strip()
    password = getpass.getpass("Password: ")
    if not email or not password:
        print("E-mail and password required")
        sys.exit(1)
    try:
        check_password_strength(password)
    except ValueError as e:
        print(e)
        sys.exit(1)

    async with async_session_maker() as session:
        users = SqlCredentialStore(session)
        if await users.find_by_login_name(email):
            print("User already exists")
            sys.exit(1)
        await users.create(email, hash_password(password), name=name)
        await session.commit()
        print("User created.")


if __name__ == "__main__":
    asyncio.run(main())
