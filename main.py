from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from framework.config import settings
from framework.database.manager import DatabaseManager
from framework.middleware.logging_md import LoggingMiddleware
from framework.logging.logger import LogConfig
from framework.exceptions.handler import BusinessException, global_exception_handler
from framework.response import ResponseModel
from apps.library.api.router import router as library_router
from apps.billing.api.router import router as billing_router
from apps.account_deletion.api.router import router as account_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await DatabaseManager.get_instance().close()


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Initialize logging configuration
LogConfig.setup_logging()

# Register global exception handlers
app.add_exception_handler(BusinessException, global_exception_handler)
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(LoggingMiddleware)

# Mount routers (prefix from config for easy override in private projects)
app.include_router(library_router, prefix=settings.API_V1_MODELS_PREFIX, tags=["Models"])
app.include_router(billing_router, prefix=settings.API_V1_BILLING_PREFIX, tags=["Billing & Usage"])
app.include_router(account_router, prefix=settings.API_V1_ACCOUNT_PREFIX, tags=["Account"])


@app.get("/health", tags=["Health"])
async def health():
    return ResponseModel.success(data={"status": "ok", "app": settings.APP_NAME})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
