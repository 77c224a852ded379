"""Create an admin account, or promote and reset an existing one."""

from __future__ import annotations

import argparse
import asyncio
import logging

from ..db import SessionFactory, _engine
from ..models import Base
from ..services.users import UserService


async def create_admin(email: str, password: str, name: str) -> None:
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with SessionFactory() as session:
        user = await UserService(session).upsert_admin(email=email, password=password, name=name)
        await session.commit()
        logging.getLogger(__name__).info("Admin %s ready (user %s)", user.email, user.id)
    await _engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Admin")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_admin(args.email, args.password, args.name))


if __name__ == "__main__":
    main()
