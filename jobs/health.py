"""
Health check server for the scheduler process.

/health reports scheduled jobs, /readiness also checks the database,
/liveness only answers.
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy import text

from jobs.utils.database import task_engine


_scheduler: AsyncIOScheduler | None = None


def set_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Register the scheduler instance for health checks."""
    global _scheduler
    _scheduler = scheduler
    logger.info("Scheduler registered for health checks")


async def _database_ok() -> bool:
    try:
        async with task_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return False


async def health_handler(request: web.Request) -> web.Response:
    """Scheduler status and next run times."""
    if _scheduler is None:
        return web.json_response(
            {"status": "unhealthy", "error": "Scheduler not initialized"},
            status=503,
        )

    jobs = _scheduler.get_jobs()
    return web.json_response(
        {
            "status": "healthy" if _scheduler.running else "stopped",
            "scheduler_running": _scheduler.running,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": (
                        job.next_run_time.isoformat() if job.next_run_time else None
                    ),
                }
                for job in jobs
            ],
        }
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Ready when the scheduler runs and the database answers."""
    scheduler_ok = _scheduler is not None and _scheduler.running
    database_ok = await _database_ok()
    ready = scheduler_ok and database_ok

    return web.json_response(
        {
            "ready": ready,
            "scheduler_running": scheduler_ok,
            "database": "ok" if database_ok else "unavailable",
        },
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """Process is alive."""
    return web.json_response({"alive": True})


def create_health_app() -> web.Application:
    """Build the aiohttp application with the three endpoints."""
    app = web.Application()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8081,
) -> tuple[web.AppRunner, web.TCPSite]:
    """
    Start health check server.

    Returns:
        Tuple of (AppRunner, TCPSite) for cleanup
    """
    runner = web.AppRunner(create_health_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner, site


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Stop health check server gracefully."""
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
