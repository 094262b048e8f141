#!/usr/bin/env python
"""Script to verify the test database servers are reachable."""

import asyncio
import sys

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from testdb.core_types.config import get_mongo_config, get_postgres_config, sanitize_mongo_config

# Load environment variables
load_dotenv()


async def verify_postgresql(preset: str | None) -> bool:
    """Verify PostgreSQL connectivity and the right to create databases."""
    config = get_postgres_config(preset)
    print(f"Testing PostgreSQL connection to {config.host}:{config.port}...")

    engine = create_async_engine(config.url.set(drivername="postgresql+asyncpg"))
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1

            result = await conn.execute(
                text("SELECT rolcreatedb OR rolsuper FROM pg_roles WHERE rolname = current_user")
            )
            can_create = bool(result.scalar())

        print("  ✅ Connected successfully")
        if can_create:
            print("  ✅ Role can create databases")
        else:
            print("  ❌ Role cannot create databases")
        return can_create

    except Exception as e:
        print(f"  ❌ Error: {e}")
        return False
    finally:
        await engine.dispose()


async def verify_mongodb(preset: str | None) -> bool:
    """Verify MongoDB connectivity and report transaction support."""
    config = get_mongo_config(preset)
    print(f"\nTesting MongoDB connection to {sanitize_mongo_config(config)['uri']}...")

    client: AsyncIOMotorClient = AsyncIOMotorClient(
        config.uri, serverSelectionTimeoutMS=int(config.server_selection_timeout * 1000)
    )
    try:
        await client.admin.command("ping")
        hello = await client.admin.command("hello")

        print("  ✅ Connected successfully")
        if "setName" in hello or hello.get("msg") == "isdbgrid":
            print("  📊 Multi-document transactions available")
        else:
            print("  📊 Standalone server, transactions unavailable")
            if config.supports_transactions:
                print("  ❌ MONGO_TRANSACTIONS is set but the server cannot run transactions")
                return False
        return True

    except Exception as e:
        print(f"  ❌ Error: {e}")
        return False
    finally:
        client.close()


async def run(preset: str | None) -> int:
    print("=" * 50)
    print("TEST DATABASE CONNECTIVITY VERIFICATION")
    print("=" * 50)

    pg_ok = await verify_postgresql(preset)
    mongo_ok = await verify_mongodb(preset)

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)

    if pg_ok and mongo_ok:
        print("✅ All databases are accessible and configured correctly!")
        return 0
    if not pg_ok:
        print("❌ PostgreSQL has issues")
    if not mongo_ok:
        print("❌ MongoDB has issues")
    return 1


def main() -> int:
    """Main verification function."""
    preset = sys.argv[1] if len(sys.argv) > 1 else None
    return asyncio.run(run(preset))


if __name__ == "__main__":
    sys.exit(main())
