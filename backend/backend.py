import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

# Force load .env from the script's directory before the settings are read
env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(dotenv_path=env_path)

from school_module import class_request_router, init_school_module, message_router, router as school_router
from school_module.config import settings
from school_module.database import engine
from school_module.scopes import UnknownEntityError, UnknownRoleError

# Configure Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        logger.info("Initializing school module...")
        init_school_module()
        logger.info("School module initialized.")
    except Exception as e:
        logger.error(f"Startup school module error: {e}")
    yield
    logger.info("Shutting down...")


app = FastAPI(title="School Management API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": detail})


@app.exception_handler(UnknownRoleError)
async def unknown_role_handler(request: Request, exc: UnknownRoleError):
    return JSONResponse(status_code=403, content={"error": "Unknown or missing role"})


@app.exception_handler(UnknownEntityError)
async def unknown_entity_handler(request: Request, exc: UnknownEntityError):
    return JSONResponse(status_code=404, content={"error": f"Unknown list: {exc}"})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "An error occurred"})


app.include_router(school_router)
app.include_router(message_router)
app.include_router(class_request_router)


@app.get("/")
async def root():
    return {"message": "School Management API is running"}


@app.get("/api/health")
async def health_check():
    """Health check endpoint to verify backend is running and configured correctly"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"
    return {"status": "healthy", "database": db_status}


@app.get("/sign-in")
@app.get("/sign-up")
async def sign_in():
    # Accounts live with the identity provider; this service only verifies its tokens.
    return {"message": "Sign in with the identity provider and send its token as a Bearer header"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
