import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings
from .dependencies import Services
from .errors import register_exception_handlers
from .middleware import RateLimiter, RateLimitMiddleware, RequestIDMiddleware, SecurityHeadersMiddleware
from .routes import conversation_analytics, emotion_analytics, emotion_conversations

# Configure logging to show INFO level and above
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Pass `services` to run against another store or LLM client."""
    settings = settings or (services.settings if services else default_settings)
    services = services or Services.from_settings(settings)

    app = FastAPI(title="MoodPulse API")
    app.state.services = services

    # Starlette runs the last-added middleware first
    app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(
        limit=settings.RATE_LIMIT_REQUESTS,
        window=settings.RATE_LIMIT_WINDOW_SECONDS,
        trust_forwarded=settings.TRUST_FORWARDED_FOR,
    ))
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app, hide_internal_details=settings.is_production)

    # Include routers
    app.include_router(emotion_conversations.router)
    app.include_router(emotion_analytics.router)
    app.include_router(conversation_analytics.router)

    @app.get("/")
    async def root():
        return {"message": "MoodPulse API is running"}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "environment": settings.ENVIRONMENT}

    logger.info(f"✅ MoodPulse API created ({settings.ENVIRONMENT})")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=default_settings.is_development)
