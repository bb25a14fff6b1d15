# main.py

import uvicorn
from pscore.database import init_db
from pscore.config.logging_config import configure_logging

# Configure logging first
logger = configure_logging()

def main():
    # Initialize database tables
    logger.info("Initializing database tables...")
    init_db()
    logger.info("Database tables initialized successfully")

    logger.info("Starting FastAPI application...")
    uvicorn.run(
        "pscore.routes.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True,  # Enable auto-reload during development
        log_config=None,  # Disable uvicorn's default logging
    )

if __name__ == "__main__":
    logger.info("Starting application in __main__")
    main()
