from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from database import check_db_connection, close_client, get_db
from routes.auth import auth_router
from routes.completion import completion_router
from token_wallet.db_init import ensure_indexes
from token_wallet.errors import WalletError
from token_wallet.routes import wallet_router
from utils.environment import ENVIRONMENT, get_allowed_origins

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(title="Token Wallet - Prepaid Completion Gateway")

# Include all routers
app.include_router(auth_router)
app.include_router(wallet_router)
app.include_router(completion_router)

# Invalid entries fail at import, before the app serves anything
ALLOWED_ORIGINS = get_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WalletError)
async def wallet_error_handler(request: Request, exc: WalletError):
    """Report wallet errors with their own status and code"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": ENVIRONMENT}


@app.on_event("startup")
async def startup():
    # Check database connection first - fail fast if database is unavailable
    db_ok, db_error = await check_db_connection()
    if not db_ok:
        logger.critical(f"Database connection failed on startup: {db_error}")
        raise RuntimeError(
            f"Cannot start application - database connection failed: {db_error}")

    for result in await ensure_indexes(get_db()):
        logger.info(result)

    logger.info(f"Allowed CORS origins: {ALLOWED_ORIGINS}")


@app.on_event("shutdown")
async def shutdown_db_client():
    close_client()
