"""
Auto-reply worker - Main Application Entry Point

Runs the message worker pool and the retry sweep alongside a small
operational API, using FastAPI, Redis, SQLAlchemy, OpenAI and APScheduler.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from autoreply.ai.responder import AIResponder
from autoreply.api.queue_api import router as queue_router
from autoreply.config.settings import get_settings
from autoreply.infrastructure.channel_senders import build_senders
from autoreply.infrastructure.database import init_database, async_session_factory
from autoreply.infrastructure.kv_store import RedisKeyValueStore
from autoreply.infrastructure.scheduler import (
    start_scheduler,
    stop_scheduler,
    get_scheduler,
    schedule_retry_sweep,
)
from autoreply.infrastructure.work_queue import WorkQueue
from autoreply.usecases.cooldown_store import CooldownStore
from autoreply.usecases.message_processor import MessageProcessor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting auto-reply worker...")

    logger.info("Initializing database...")
    await init_database()
    logger.info("Database initialized")

    store = RedisKeyValueStore.from_url(settings.redis_url)
    queue = WorkQueue(store, settings.message_queue)
    senders = build_senders(settings)
    processor = MessageProcessor(
        queue=queue,
        cooldowns=CooldownStore(store),
        ai_responder=AIResponder(
            store,
            api_key=settings.openai_api_key,
            model=settings.ai_model,
            max_tokens=settings.ai_max_tokens,
            cache_ttl_seconds=settings.ai_cache_ttl_hours * 3600,
        ),
        senders=senders,
        session_factory=async_session_factory,
        worker_count=settings.worker_count,
        poll_timeout=settings.poll_timeout,
        max_retries=settings.max_retries,
        public_base_url=settings.public_base_url,
    )
    app.state.work_queue = queue
    app.state.processor = processor

    processor.start()

    logger.info("Starting scheduler...")
    schedule_retry_sweep(queue, settings.retry_sweep_interval_ms)
    await start_scheduler()

    logger.info("Application startup complete!")
    logger.info(f"Queue: {settings.message_queue}, workers: {settings.worker_count}, max retries: {settings.max_retries}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await stop_scheduler()
    await processor.stop()
    for sender in senders.values():
        await sender.aclose()
    await store.close()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="AutoReply Worker",
    description="Multi-channel auto-reply message worker",
    version="1.0.0",
    lifespan=lifespan
)

# Register routers
app.include_router(queue_router, tags=["Queue"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "AutoReply Worker",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "queue_stats": "/queue/stats",
            "failed": "/queue/failed",
            "test_message": "/queue/test"
        }
    }


@app.get("/scheduler/status")
async def scheduler_status():
    """Get scheduler status and pending jobs."""
    scheduler = get_scheduler()

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs_count": len(jobs),
        "jobs": jobs
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "autoreply.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
