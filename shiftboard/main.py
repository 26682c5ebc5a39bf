import logging
import os
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shiftboard.db import create_tables, get_db_connection
from shiftboard.routes.assignments import router as assignments_router
from shiftboard.routes.notifications import router as notifications_router
from shiftboard.routes.profiles import router as profiles_router
from shiftboard.routes.recurring import router as recurring_router
from shiftboard.routes.shifts import router as shifts_router
from shiftboard.routes.templates import router as templates_router
from shiftboard.scheduler import shutdown_scheduler, start_scheduler

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("shiftboard.main")

app = FastAPI(title="shiftboard", description="Volunteer Shift Scheduling")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(templates_router)
app.include_router(shifts_router)
app.include_router(assignments_router)
app.include_router(recurring_router)
app.include_router(profiles_router)
app.include_router(notifications_router)


@app.on_event("startup")
def startup():
    db_path = os.getenv("DB_PATH", "shiftboard.db")
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_db_connection(db_path)
    create_tables(conn)
    app.state.db = conn
    app.state.scheduler = start_scheduler()
    log.info("shiftboard started with database %s", db_path)


@app.on_event("shutdown")
def shutdown():
    app.state.db.close()
    shutdown_scheduler(app.state.scheduler)


@app.get("/healthz")
def healthz():
    return {"status": "ok"}
