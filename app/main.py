import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI

from app.config import settings
from app.routers import auth, clients, logs, operators, queue, reminders
from app.services.email import EmailService
from app.services.poller import ReminderPoller
from app.services.queue import JobQueue
from app.services.whatsapp import WhatsAppService
from app.services.worker import NotificationWorker

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    notification_queue = JobQueue()
    app.state.queue = notification_queue

    poller = None
    if settings.enable_scheduler:
        poller = ReminderPoller(notification_queue)
        poller.start()
    else:
        logger.info("Reminder poller is disabled via configuration")

    worker = None
    if settings.enable_worker:
        worker = NotificationWorker(notification_queue, EmailService(), WhatsAppService())
        worker.start()
    else:
        logger.info("Notification worker is disabled via configuration")

    app.state.poller = poller
    app.state.worker = worker

    yield

    logger.info("Shutting down reminder services")
    if poller is not None:
        poller.stop()
    if worker is not None:
        worker.stop(settings.worker_drain_timeout_seconds)


app = FastAPI(title="Expiry Reminder Service", debug=settings.debug, lifespan=lifespan)

app.include_router(auth.router)
app.include_router(operators.router)
app.include_router(clients.router)
app.include_router(reminders.router)
app.include_router(logs.router)
app.include_router(queue.router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
