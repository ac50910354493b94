import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logging

from branchchat.core.config import settings
from branchchat.db.base_class import Base
from branchchat.db.database import engine
import branchchat.db.models  # noqa: F401

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

def init_database():
    """Create all tables for local development (use alembic for real deployments)"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info(f"All tables created on {engine.url.render_as_string(hide_password=True)}")
    except Exception as e:
        logger.error(f"Error initializing database {settings.DATABASE_URL}: {e}")
        sys.exit(1)

if __name__ == "__main__":
    init_database()
