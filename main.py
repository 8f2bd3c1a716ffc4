from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError

import billing_routes
import dashboard_routes
from config import CORS_ORIGINS, DATABASE_NAME, PORT
from database import ensure_indexes, get_db
from errors import RemoteFailure, register_error_handlers
from loggers import get_logger

log = get_logger("pharmacy_pos")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        ensure_indexes(get_db())
    except PyMongoError as e:
        log.warning("Could not create indexes at startup: %s", e)
    yield


# -----------------------------
# FastAPI App
# -----------------------------
app = FastAPI(title="Pharmacy POS API - MongoDB", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(billing_routes.router)
app.include_router(dashboard_routes.router)


@app.get("/")
def root():
    return {"message": "Pharmacy POS Backend Running", "driver": "mongodb", "db": DATABASE_NAME}


@app.get("/health")
def health(db: Database = Depends(get_db)):
    try:
        db.command("ping")
    except PyMongoError as e:
        raise RemoteFailure(f"Database unavailable: {e}")
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
