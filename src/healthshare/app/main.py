"""Share service FastAPI application factory.

The create_app() factory is the single entry point for building the share
ASGI application. It wires middleware (request-ID, logging, metrics, auth
guard, CORS), the owner and public share routers, and injects store and
collaborator implementations via dependency injection.

Usage:
    # Local development (in-memory stores)
    from healthshare.app import create_app, ShareSettings
    app = create_app(ShareSettings())

    # Non-local (Supabase stores built from settings)
    settings = ShareSettings.from_env()
    app = create_app(settings, **build_supabase_deps(settings).as_overrides())

    # Testing (full DI control)
    app = create_app(settings, grant_store=store, token_verifier=verifier, ...)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, fields

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from healthshare import __version__
from healthshare.observability import configure_logging, get_logger
from healthshare.observability.metrics import metrics_text
from healthshare.observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)

from .notifications import HttpNotifier, LoggingNotifier
from .protocols import (
    DocumentStore,
    GrantStore,
    LabStore,
    MedicationStore,
    Notifier,
    ProfileOwnership,
    ProfileStore,
    VitalStore,
)
from .security import AuthGuardMiddleware, TokenVerifier, create_token_verifier
from .settings import ShareSettings
from .sharing import (
    AccessOrchestrator,
    AccessRecorder,
    LinkIssuer,
    LinkValidator,
    OwnerQueries,
    RevocationHandler,
    ScopedDataProjector,
    ShareError,
    create_share_access_router,
    create_share_router,
)
from .sharing.routes import share_error_response

logger = get_logger(__name__)

# Only used when ENVIRONMENT=local and no JWT_SECRET is configured.
LOCAL_DEV_JWT_SECRET = "healthshare-local-dev-secret-not-for-production"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected store/collaborator instances.

    Stored on ``app.state.deps`` so tests and handlers can reach them.
    """

    grant_store: GrantStore
    profiles: ProfileStore
    documents: DocumentStore
    labs: LabStore
    vitals: VitalStore
    medications: MedicationStore
    ownership: ProfileOwnership
    notifier: Notifier

    def as_overrides(self) -> dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _build_inmemory_deps() -> AppDependencies:
    """Construct all-InMemory dependencies for local development."""
    from .inmemory import (
        InMemoryDocumentStore,
        InMemoryGrantStore,
        InMemoryLabStore,
        InMemoryMedicationStore,
        InMemoryProfileOwnership,
        InMemoryProfileStore,
        InMemoryVitalStore,
    )

    return AppDependencies(
        grant_store=InMemoryGrantStore(),
        profiles=InMemoryProfileStore(),
        documents=InMemoryDocumentStore(),
        labs=InMemoryLabStore(),
        vitals=InMemoryVitalStore(),
        medications=InMemoryMedicationStore(),
        ownership=InMemoryProfileOwnership(),
        notifier=LoggingNotifier(),
    )


def build_supabase_deps(
    settings: ShareSettings,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> AppDependencies:
    """Construct Supabase-backed dependencies from settings."""
    from .db import (
        SupabaseClient,
        SupabaseDocumentStore,
        SupabaseGrantStore,
        SupabaseLabStore,
        SupabaseMedicationStore,
        SupabaseProfileOwnership,
        SupabaseProfileStore,
        SupabaseVitalStore,
    )

    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        default_schema="health",
        http_client=http_client,
    )
    notifier: Notifier
    if settings.notifier_url:
        notifier = HttpNotifier(settings.notifier_url, http_client=http_client)
    else:
        notifier = LoggingNotifier()

    return AppDependencies(
        grant_store=SupabaseGrantStore(client),
        profiles=SupabaseProfileStore(client),
        documents=SupabaseDocumentStore(client),
        labs=SupabaseLabStore(client),
        vitals=SupabaseVitalStore(client),
        medications=SupabaseMedicationStore(client),
        ownership=SupabaseProfileOwnership(client),
        notifier=notifier,
    )


def _default_token_verifier(settings: ShareSettings) -> TokenVerifier:
    if settings.is_local:
        return create_token_verifier(
            jwt_secret=settings.jwt_secret or LOCAL_DEV_JWT_SECRET,
            audience=settings.jwt_audience,
        )
    return create_token_verifier(
        supabase_url=settings.supabase_url,
        jwt_secret=settings.jwt_secret,
        audience=settings.jwt_audience,
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: ShareSettings | None = None,
    *,
    grant_store: GrantStore | None = None,
    profiles: ProfileStore | None = None,
    documents: DocumentStore | None = None,
    labs: LabStore | None = None,
    vitals: VitalStore | None = None,
    medications: MedicationStore | None = None,
    ownership: ProfileOwnership | None = None,
    notifier: Notifier | None = None,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Create a configured share-service FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        grant_store..notifier: Store/collaborator overrides.
            When None, local mode uses InMemory implementations.
            Non-local mode raises if any of them is missing.
        token_verifier: Owner JWT verifier. Defaults to one built from
            settings.

    Raises:
        ValueError: If settings validation fails.
        ValueError: If a non-local environment is missing dependencies.
    """
    if settings is None:
        settings = ShareSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Share service settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
    )

    provided = {
        "grant_store": grant_store,
        "profiles": profiles,
        "documents": documents,
        "labs": labs,
        "vitals": vitals,
        "medications": medications,
        "ownership": ownership,
        "notifier": notifier,
    }
    if settings.is_local:
        # Local mode: fill any missing deps with InMemory
        defaults = _build_inmemory_deps()
        deps = AppDependencies(**{
            name: value if value is not None else getattr(defaults, name)
            for name, value in provided.items()
        })
    else:
        missing = [name for name, value in provided.items() if value is None]
        if missing:
            raise ValueError(
                f"Non-local environment ({settings.environment}) requires all "
                f"stores to be explicitly provided. Missing: {', '.join(missing)}"
            )
        deps = AppDependencies(**provided)  # type: ignore[arg-type]

    if token_verifier is None:
        token_verifier = _default_token_verifier(settings)

    # ── Share core ───────────────────────────────────────────────
    issuer = LinkIssuer(
        grant_store=deps.grant_store,
        ownership=deps.ownership,
        documents=deps.documents,
        labs=deps.labs,
        vitals=deps.vitals,
        medications=deps.medications,
        notifier=deps.notifier,
        public_url=settings.public_url,
        default_ttl=settings.default_ttl,
        max_ttl=settings.max_ttl,
    )
    orchestrator = AccessOrchestrator(
        LinkValidator(deps.grant_store),
        ScopedDataProjector(
            profiles=deps.profiles,
            documents=deps.documents,
            labs=deps.labs,
            vitals=deps.vitals,
            medications=deps.medications,
        ),
        AccessRecorder(
            deps.grant_store,
            retry_backoff_seconds=settings.storage_retry_backoff_seconds,
            audit_attempts=settings.audit_append_attempts,
        ),
    )
    revocation = RevocationHandler(deps.grant_store, deps.ownership)
    queries = OwnerQueries(deps.grant_store, deps.ownership)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("share_service_startup", environment=settings.environment)
        yield
        logger.info("share_service_shutdown")

    app = FastAPI(
        title="Health Share",
        description="Scoped, expiring, view-limited health-record share links",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestId -> Logging -> Metrics -> AuthGuard -> CORS -> route

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AuthGuardMiddleware, token_verifier=token_verifier)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(ShareError)
    async def handle_share_error(request: Request, exc: ShareError):
        logger.warning("share_error_unhandled", code=exc.code, path=request.url.path)
        return share_error_response(exc)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": __version__,
        }

    @app.get("/metrics")
    async def prometheus_metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_share_router(issuer, revocation, queries))
    app.include_router(create_share_access_router(orchestrator))

    return app


def create_app_from_env() -> FastAPI:
    """uvicorn factory: settings from env, Supabase stores outside local."""
    settings = ShareSettings.from_env()
    if settings.is_local:
        return create_app(settings)
    return create_app(settings, **build_supabase_deps(settings).as_overrides())


# For uvicorn, use --factory flag:
#   uvicorn healthshare.app.main:create_app_from_env --factory
# This avoids executing create_app() at import time.
