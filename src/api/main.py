from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes.admin import router as admin_router
from src.api.routes.sermons import router as sermons_router
from src.config import settings
from src.ingestion.storage import BlobStore, SermonIndex, get_redis_client, get_supabase_client
from src.worker.runner import build_queue, build_retry_policy


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    redis_client = get_redis_client(settings.redis_url)
    retry_policy = build_retry_policy(settings)
    app.state.blob_store = BlobStore(
        get_supabase_client(settings.supabase_url, settings.supabase_key),
        settings.storage_bucket,
        retry_policy,
    )
    app.state.index = SermonIndex(redis_client, retry_policy)
    app.state.queue = build_queue(settings, redis_client)
    try:
        yield
    finally:
        await redis_client.aclose()


app = FastAPI(
    title="Sermon Alignment API",
    description="Word-level alignment of sermon texts with their recordings",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sermons_router)
app.include_router(admin_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    import uvicorn

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
