import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from corpgpt.auth import resolve_auth_provider
from corpgpt.config import settings
from corpgpt.routers import chat, composers, home, messages, profile, threads
from corpgpt.services.gemini_service import GeminiReplyGenerator, GeneratorConfig, ReplyGenerator
from corpgpt.services.preferences import PreferenceDirectory
from corpgpt.services.session_manager import SessionManager
from corpgpt.services.store import Store, build_store

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"CorpGPT API starting with {settings.store_backend} store, "
        f"{app.state.auth_provider} auth"
    )
    app.state.sessions.start_sweeper(settings.session_sweep_interval)
    yield
    await app.state.sessions.close_all()
    await app.state.store.close()


def create_app(
    store: Store | None = None,
    generator: ReplyGenerator | None = None,
    preferences: PreferenceDirectory | None = None,
    dev_auth: bool | None = None,
) -> FastAPI:
    app = FastAPI(title="CorpGPT API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store or build_store(settings)
    app.state.generator = generator or GeminiReplyGenerator(GeneratorConfig.from_settings())
    app.state.preferences = preferences or PreferenceDirectory(settings.preferences_dir or None)
    app.state.sessions = SessionManager(
        app.state.store, app.state.generator, idle_timeout=settings.session_idle_timeout
    )
    app.state.auth_provider = resolve_auth_provider(
        app.state.store, settings.dev_auth if dev_auth is None else dev_auth
    )

    # Fixed paths first so they are never captured by /{composer}/...
    app.include_router(composers.router, prefix="/api")
    app.include_router(home.router, prefix="/api")
    app.include_router(profile.router, prefix="/api")
    app.include_router(threads.router, prefix="/api")
    app.include_router(messages.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
