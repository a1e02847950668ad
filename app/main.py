# app/main.py

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import os
import logging

# Импортируем роутеры (production way)
from app.api.milestone import router as milestone_router
from app.api.presign import router as presign_router
from app.api.project import router as project_router
from app.api.review import router as review_router

from app.core.settings import settings
from app.core.exceptions import BaseAppException
from app.schemas.response import ErrorResponse

# Логирование
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn.error")

app = FastAPI(
    title="Milestone Delivery API",
    version="1.0.0",
    description="Milestones, deliverable uploads, approvals and revision accounting",
)

# Middlewares
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Роутеры (ошибки описаны в OpenAPI единой схемой ErrorResponse)
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation failed or invalid state transition"},
    401: {"model": ErrorResponse, "description": "Authentication required"},
    403: {"model": ErrorResponse, "description": "Not a participant of the project"},
    404: {"model": ErrorResponse, "description": "Resource not found"},
    409: {"model": ErrorResponse, "description": "Duplicate resource"},
}

app.include_router(milestone_router, responses=ERROR_RESPONSES)
app.include_router(presign_router, responses=ERROR_RESPONSES)
app.include_router(project_router, responses=ERROR_RESPONSES)
app.include_router(review_router, responses=ERROR_RESPONSES)

# Health check & root
@app.get("/", tags=["Health"])
def root():
    return {"status": "Milestone Delivery API is running!"}

@app.get("/health", tags=["Health"])
def health():
    return {"ok": True}

@app.on_event("startup")
async def startup_event():
    logger.info("Starting Milestone Delivery API")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Stopping Milestone Delivery API")

# Единый формат ошибок: {"success": false, "error", "reason"?, "details"?}

@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    field_errors = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        field_errors.setdefault(".".join(loc) or "body", []).append(err.get("msg"))
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": {"fieldErrors": field_errors}},
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=bool(os.getenv("DEBUG", False))
    )
