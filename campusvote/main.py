# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .dependencies import get_election_repository
from .routes.admin_routes import router as admin_router
from .routes.auth_routes import router as auth_router
from .routes.election_routes import router as election_router
from .routes.student_routes import router as student_router
from .status_scheduler import StatusDriver

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    driver = None
    if config.ENABLE_STATUS_SCHEDULER:
        driver = StatusDriver(get_election_repository())
        driver.start()
    app.state.status_driver = driver

    yield

    if driver is not None:
        driver.shutdown()


app = FastAPI(title="CampusVote - Student Election API", lifespan=lifespan)

origins = [
    config.CLIENT_URL,
    "http://localhost:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(election_router)
app.include_router(student_router)


@app.get("/", tags=["Root"])
def read_root():
    return {"message": "Voting System API is running"}


@app.get("/health", tags=["Root"])
def health_check():
    driver = app.state.status_driver if hasattr(app.state, "status_driver") else None
    return {
        "status": "healthy",
        "database": "MongoDB",
        "status_scheduler": bool(driver and driver.scheduler.running),
    }
