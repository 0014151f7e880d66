# app/cli/create_tables.py
import asyncio
import click
from app.database import Base, engine

# Import all models to ensure they're registered with the Base
from app.models import Event, Product  # noqa: F401

@click.command()
@click.option('--drop', is_flag=True, help='Drop existing tables first')
def create_tables(drop):
    """Create all database tables directly using SQLAlchemy (bypasses Alembic)"""

    async def _create_tables():
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
                click.echo("Dropped existing tables")
            # This will create all tables defined in models that inherit from Base
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()
        click.echo("All tables created successfully!")

    asyncio.run(_create_tables())

if __name__ == "__main__":
    create_tables()
