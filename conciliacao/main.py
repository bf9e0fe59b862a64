# conciliacao/main.py
import sys
import os
import logging

# FastAPI imports
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# SQLAlchemy imports
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError

from dotenv import load_dotenv

# Database imports
from conciliacao.database import Base, engine

load_dotenv()

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost,http://localhost:3000,http://127.0.0.1,http://127.0.0.1:3000"

app = FastAPI(
    title="Conciliacao Bancaria API",
    description="API for staging bank statements (OFX) for reconciliation.",
    version="1.0.0",
)


def configure_app_instance(fastapi_app: FastAPI):
    # CORS Middleware for frontend communication
    origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if origin.strip()]

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from conciliacao.api.v1.endpoints import conciliacao as conciliacao_endpoints
    from conciliacao.auth_v2.routers import router as auth_v2_router

    # --- DATABASE TABLE CREATION ---
    logger.info("Attempting to ensure database tables exist (create if not existing)...")
    try:
        logger.info(f"DIAG: Engine DSN: {engine.url.render_as_string(hide_password=True)}")

        import conciliacao.models

        if Base.metadata.tables:
            logger.info(f"DIAG: Tables expected by models: {list(Base.metadata.tables.keys())}")
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables ensured (created if not existing).")
        else:
            logger.critical("FATAL ERROR: No SQLAlchemy models were registered with Base.metadata.")
            sys.exit(1)

    except OperationalError as e:
        logger.critical(f"FATAL ERROR: Database connection failed during table creation. "
                        f"Please check DATABASE_URL and ensure the database is running and accessible. Error: {e}", exc_info=True)
        sys.exit(1)
    except ProgrammingError as e:
        logger.critical(f"FATAL ERROR: Database programming error during table creation. "
                        f"This could indicate schema definition issues or insufficient user permissions. Error: {e}", exc_info=True)
        sys.exit(1)
    except SQLAlchemyError as e:
        logger.critical(f"FATAL ERROR: An SQLAlchemy error occurred during table creation: {e}", exc_info=True)
        sys.exit(1)
    # --- END DATABASE TABLE CREATION ---

    # Include API routers
    fastapi_app.include_router(conciliacao_endpoints.router, prefix="/api/v1")
    fastapi_app.include_router(auth_v2_router, prefix="/api/v2")

    @fastapi_app.get("/")
    async def root():
        return {"message": "Conciliacao Bancaria API is running!"}


configure_app_instance(app)
