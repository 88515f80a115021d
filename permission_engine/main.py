from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from permission_engine.core import config
from permission_engine.core.database.engine import AsyncSessionLocal, init_db
from permission_engine.core.errors import StoreUnavailable
from permission_engine.features.permissions.cache import CachedResolver, ResolutionCache
from permission_engine.features.permissions.resolver import PermissionResolver
from permission_engine.features.permissions.routes import router as permission_router
from permission_engine.features.permissions.service import PermissionService
from permission_engine.features.permissions.sql_stores import sql_stores
from permission_engine.features.permissions.stores import GroupStore, MembershipIndex, OverrideStore, RoleStore
from permission_engine.features.users.dependencies import get_authorization_header
from permission_engine.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Permission Engine",
    description="Role, group and individual capability resolution",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
limiter = Limiter(
    key_func=get_authorization_header,
    default_limits=[config.RATE_LIMIT] if config.RATE_LIMIT else [],
)
app.state.limiter = limiter
if config.RATE_LIMIT:
    log.info("Rate limiting requests to %s per client", config.RATE_LIMIT)
    app.add_middleware(SlowAPIMiddleware)


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.permission_engine.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(_request: Request, exc: StoreUnavailable):
    log.error("Store unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


def install_permission_engine(
    target: FastAPI,
    roles: RoleStore,
    groups: GroupStore,
    memberships: MembershipIndex,
    overrides: OverrideStore,
) -> None:
    """
    Build the resolver and administration service over the given stores and
    attach them to `target.state`.

    The resolution cache is only created when RESOLUTION_CACHE_TTL_SECONDS > 0;
    the service shares it so every mutation invalidates what the resolver memoized.
    """
    cache = None
    if config.RESOLUTION_CACHE_TTL_SECONDS > 0:
        cache = ResolutionCache(
            ttl_seconds=config.RESOLUTION_CACHE_TTL_SECONDS,
            max_entries=config.RESOLUTION_CACHE_MAX_ENTRIES,
        )
    resolver = PermissionResolver(
        roles,
        groups,
        memberships,
        overrides,
        group_failure_policy=config.GROUP_FAILURE_POLICY,
        strict_capabilities=config.STRICT_CAPABILITY_NAMES,
    )
    target.state.resolver = CachedResolver(resolver, cache) if cache is not None else resolver
    target.state.permission_service = PermissionService(roles, groups, memberships, overrides, cache=cache)
    log.info(
        "Permission engine ready (group failure policy: %s, strict capability names: %s, cache: %s)",
        config.GROUP_FAILURE_POLICY,
        config.STRICT_CAPABILITY_NAMES,
        f"{config.RESOLUTION_CACHE_TTL_SECONDS}s" if cache is not None else "off",
    )


@app.on_event("startup")
async def startup():
    """Initialize database and permission engine on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")
    install_permission_engine(app, *sql_stores(AsyncSessionLocal))


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Permission Engine API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Protected endpoints require Bearer token in Authorization header",
            "protected_endpoints": ["/permissions/*"],
            "public_endpoints": ["/", "/health"]
        },
        "features": {
            "permissions": "Most-permissive-wins resolution over role, groups and individual overrides",
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Permission routes
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
