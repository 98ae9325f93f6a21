"""FastAPI application entry point for RaceSight."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from racesight import __version__
from racesight.ai.client import AIClient
from racesight.ai.extractor import StatsExtractor
from racesight.ai.insights import InsightGenerator
from racesight.ai.mock_client import MockAIClient
from racesight.ai.quota import QuotaLimiter
from racesight.api import races
from racesight.config import Settings, get_settings
from racesight.errors import RaceSightError
from racesight.pipeline import RaceAnalysisPipeline
from racesight.scrapers import EquibaseScraper, RaceDataProvider, RacecardFileSource, RacingPostScraper, RequestThrottle

_settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, _settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


STATUS_BY_KIND = {
    "VenueNotFound": 404,
    "RaceNotFound": 404,
    "NoCompetitors": 422,
    "QuotaExceeded": 429,
    "DataUnavailable": 503,
    "InferenceError": 503,
    "ExtractionSchemaViolation": 503,
    "ScraperError": 503,
    "TransportTimeout": 504,
    "AnalysisFailed": 500,
}


def status_for(error: RaceSightError) -> int:
    """HTTP status for an error, by its kind (AnalysisFailed carries the original kind)."""
    return STATUS_BY_KIND.get(error.kind, 400)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the app; every collaborator is created in the lifespan and kept on ``app.state``."""
    settings = settings or _settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting RaceSight...")
        quota = QuotaLimiter(per_minute=settings.quota_per_minute, per_day=settings.quota_per_day)
        if settings.mock_external:
            ai_client = MockAIClient(quota=quota)
            logger.info("Using mock inference client (RACESIGHT_MOCK_EXTERNAL=true)")
        else:
            ai_client = AIClient(quota=quota, model=settings.ai_model, api_key=settings.openai_api_key)
            if not ai_client.is_configured:
                logger.warning("OPENAI_API_KEY not configured - analysis requests will fail")

        throttle = RequestThrottle(min_interval=settings.fetch_min_interval)
        provider = RaceDataProvider(
            file_source=RacecardFileSource(settings.racecards_dir),
            scrapers=[
                EquibaseScraper(timeout=settings.fetch_timeout, throttle=throttle),
                RacingPostScraper(timeout=settings.fetch_timeout, throttle=throttle),
            ],
            data_source=settings.data_source,
            cache_ttl=settings.cache_ttl_seconds,
            provider_timeout=settings.fetch_timeout,
        )
        app.state.settings = settings
        app.state.quota = quota
        app.state.ai_client = ai_client
        app.state.provider = provider
        app.state.pipeline = RaceAnalysisPipeline(
            provider=provider,
            ai_client=ai_client,
            extractor=StatsExtractor(ai_client),
            insights=InsightGenerator(ai_client),
            prefer_export_ratings=settings.prefer_export_ratings,
        )
        logger.info(f"Race data source: {settings.data_source} (exports in {settings.racecards_dir})")

        yield

        logger.info("Shutting down RaceSight...")
        await provider.close()
        await ai_client.close()

    app = FastAPI(
        title="RaceSight",
        description="Race card analysis: data acquisition, statistics extraction, scoring and insights",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(RaceSightError)
    async def race_sight_error_handler(request: Request, exc: RaceSightError):
        status = status_for(exc)
        if status >= 500:
            logger.warning(f"{request.url.path} failed: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=status, content={"success": False, **exc.to_dict()})

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        ai_client = request.app.state.ai_client
        return {
            "status": "ok",
            "version": __version__,
            "inference_configured": ai_client.is_configured,
            "data_source": request.app.state.settings.data_source,
        }

    app.include_router(races.router, prefix="/api", tags=["races"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("racesight.main:app", host="0.0.0.0", port=8000, reload=_settings.debug)
