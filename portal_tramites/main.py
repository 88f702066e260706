import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from portal_tramites.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _seed_admin_user() -> None:
    """Create the default admin account if it does not exist yet."""
    from portal_tramites.database import SessionLocal
    from portal_tramites.models.usuario import Usuario
    from portal_tramites.utils.security import hash_password

    db = SessionLocal()
    try:
        email = settings.ADMIN_EMAIL.strip().lower()
        admin = db.query(Usuario).filter(Usuario.email == email).first()
        if admin is None:
            db.add(
                Usuario(
                    email=email,
                    full_name=settings.ADMIN_FULL_NAME,
                    role="admin",
                    password_hash=hash_password(settings.ADMIN_PASSWORD),
                    is_active=True,
                )
            )
            db.commit()
            logger.info("Seed: admin user created (%s)", email)
        else:
            logger.info("Seed: admin user already present (%s)", email)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Seed: could not create admin user: %s", exc)
    finally:
        db.close()


def _check_schema() -> None:
    from portal_tramites.database import engine, verificar_claves_foraneas

    try:
        faltantes = verificar_claves_foraneas(inspect(engine))
    except SQLAlchemyError as exc:
        logger.error("Schema check skipped, database unavailable: %s", exc)
        return
    if faltantes:
        logger.warning("Run 'alembic upgrade head' to create: %s", ", ".join(faltantes))
    else:
        logger.info("Schema check: all foreign key constraints present")


@asynccontextmanager
async def lifespan(app: FastAPI):
    _check_schema()
    _seed_admin_user()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "app": settings.APP_NAME}


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

from portal_tramites.routers import auth  # noqa: E402

app.include_router(auth.router, prefix="/api/auth")

# Public catalog
from portal_tramites.routers import catalogo  # noqa: E402

app.include_router(catalogo.router, prefix="/api/tramites")

# Backoffice: trámites
from portal_tramites.routers import tramites  # noqa: E402

app.include_router(tramites.router, prefix="/api/admin/tramites")

# Backoffice: dependencias (import / export included)
from portal_tramites.routers import dependencias  # noqa: E402

app.include_router(dependencias.router, prefix="/api/admin/dependencias")

# Backoffice: users
from portal_tramites.routers import usuarios  # noqa: E402

app.include_router(usuarios.router, prefix="/api/admin/users")

# Backoffice: audit log and summary
from portal_tramites.routers import auditoria  # noqa: E402

app.include_router(auditoria.router, prefix="/api/admin")

# Chat assistant
from portal_tramites.routers import chat  # noqa: E402

app.include_router(chat.router, prefix="/api/chat")
app.include_router(chat.admin_router, prefix="/api/admin/n8n-config")
