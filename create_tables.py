"""
Script to create all database tables.

Creates every table registered on the declarative Base. Useful for local
development; production schemas are managed with the Alembic migrations.
"""
import asyncio
import sys

from storehook.database import engine
from storehook.logging_config import get_logger
from storehook.models.base import Base

# Import all models to register them with Base
from storehook.models.audit_log import AuditLog  # noqa: F401
from storehook.models.customer import Customer  # noqa: F401
from storehook.models.order import Order  # noqa: F401
from storehook.models.organization import Organization  # noqa: F401
from storehook.models.product import Product  # noqa: F401
from storehook.models.store import Store  # noqa: F401
from storehook.models.webhook import WebhookDelivery, WebhookRegistration  # noqa: F401


logger = get_logger(component="create_tables")


async def create_all_tables():
    """Create all tables in the database."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("tables_created", tables=sorted(Base.metadata.tables))


async def drop_all_tables():
    """Drop all tables in the database (for testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("tables_dropped")


async def main(drop: bool = False):
    """Main entry point."""
    if drop:
        await drop_all_tables()
    await create_all_tables()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main(drop="--drop" in sys.argv))
