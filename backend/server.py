"""
MesaCore API - Table Assignment & Availability Engine
Features: Zone-ranked table allocation, slot availability, admin floor map, public booking
"""
from fastapi import FastAPI, APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr
import logging

# Core imports
from core.config import settings
from core.database import db, close_db_connection, check_db_connection, ensure_indexes
from core.auth import authenticate_staff, get_current_user, hash_password, create_token
from core.audit import create_audit_log
from core.exceptions import MesaCoreException
from core.models import UserRole, AuditAction, create_entity

# Floor plan: zones, tables, combinations
from floor_plan_module import (
    zone_router,
    table_router,
    combination_router,
    floor_plan_router,
    reload_floor_plan
)

# Schedules and limits
from schedule_module import schedule_router
from diners_limit_module import diners_limit_router

# Reservations
from reservation_module import reservation_router, public_router
from slot_availability import availability_router
from table_status_module import table_status_router

# ============== APP SETUP ==============
app = FastAPI(
    title="MesaCore API",
    version="1.0.0",
    description="Table assignment and availability engine"
)

api_router = APIRouter(prefix="/api")

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


# ============== EXCEPTION HANDLERS ==============
@app.exception_handler(MesaCoreException)
async def mesacore_exception_handler(request: Request, exc: MesaCoreException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code, "success": False}
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "error_code": "INTERNAL_ERROR", "success": False}
    )


# ============== AUTH ==============
class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: UserRole

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


@api_router.post("/auth/login", response_model=TokenResponse, tags=["Auth"])
async def login(data: UserLogin):
    user = await authenticate_staff(data.email, data.password)
    token = create_token(user["id"], user["email"], user["role"])
    await create_audit_log(user, "user", user["id"], AuditAction.LOGIN.value)

    return TokenResponse(
        access_token=token,
        user=UserResponse(id=user["id"], email=user["email"], name=user.get("name", ""), role=user["role"])
    )

@api_router.get("/auth/me", response_model=UserResponse, tags=["Auth"])
async def get_me(user: dict = Depends(get_current_user)):
    return UserResponse(id=user["id"], email=user["email"], name=user.get("name", ""), role=user["role"])


@api_router.get("/health", tags=["Health"])
async def health():
    db_ok = await check_db_connection()
    return {"status": "healthy" if db_ok else "degraded", "database": "ok" if db_ok else "unreachable"}


# ============== STARTUP ==============
async def bootstrap_admin() -> bool:
    """
    Make sure an admin exists. Idempotent, never touches existing users.
    Credentials come from ADMIN_EMAIL / ADMIN_PASSWORD.
    """
    any_admin = await db.users.find_one(
        {"role": UserRole.ADMIN.value, "archived": False, "is_active": True}, {"_id": 0}
    )
    if any_admin:
        logger.info(f"Admin bootstrap: admin '{any_admin.get('email')}' exists")
        return True

    if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        logger.warning("Admin bootstrap: no admin and ADMIN_EMAIL/ADMIN_PASSWORD not set")
        return False

    admin = create_entity({
        "email": settings.ADMIN_EMAIL,
        "name": "Administrator",
        "role": UserRole.ADMIN.value,
        "password_hash": hash_password(settings.ADMIN_PASSWORD),
        "is_active": True
    })
    await db.users.insert_one(admin)
    logger.info(f"Admin bootstrap: admin '{settings.ADMIN_EMAIL}' created")
    return True


# ============== ROUTERS ==============
app.include_router(api_router)
app.include_router(public_router, prefix="/api")
app.include_router(availability_router, prefix="/api")
app.include_router(reservation_router, prefix="/api")
# /tables/status before the table CRUD routes
app.include_router(table_status_router, prefix="/api")
app.include_router(zone_router, prefix="/api")
app.include_router(table_router, prefix="/api")
app.include_router(combination_router, prefix="/api")
app.include_router(floor_plan_router, prefix="/api")
app.include_router(schedule_router, prefix="/api")
app.include_router(diners_limit_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.CORS_ORIGINS.split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup():
    await ensure_indexes()
    await bootstrap_admin()
    await reload_floor_plan()
    logger.info(f"{settings.APP_NAME} started (transactions: {settings.MONGO_TRANSACTIONS})")

@app.on_event("shutdown")
async def shutdown():
    await close_db_connection()
