# backend/app/main.py
from fastapi import FastAPI

from backend.app.api.process import router as process_router
from backend.app.api.replies import router as replies_router
from backend.app.errors import register_error_handlers
from inboxie.logging_utils import configure_logging

configure_logging()

app = FastAPI(title="inboxie API")
register_error_handlers(app)
app.include_router(process_router, prefix="/api")
app.include_router(replies_router, prefix="/api")
