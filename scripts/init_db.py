import asyncio
import logging

from core.config import settings
from core.database import build_engine
from models.base import Base
# Import all models to ensure they are registered
from models.execution_context import StepExecutionContext
from models.step_execution import StepExecution
from models.customer import Customer, CustomerProcessed
from models.product import Product

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def init_database():
    logger.info("Connecting to database...")
    # Create engine
    engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

    async with engine.begin() as conn:
        logger.info("Creating tables...")
        # Create all tables defined in models
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created successfully.")

    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(init_database())
