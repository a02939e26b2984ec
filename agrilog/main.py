import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import uvicorn

from . import config
from .database import create_db_and_tables, engine
from .system_settings import seed_settings
from .routers import auth, profile, farmer, extension, institution, admin, drafts, sync, activities, ai

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="AgriLog - Farm Activity Records")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(profile.router)
app.include_router(farmer.router)
app.include_router(extension.router)
app.include_router(institution.router)
app.include_router(admin.router)
app.include_router(drafts.router)
app.include_router(sync.router)
app.include_router(activities.router)
app.include_router(ai.router)

@app.get("/")
def read_root():
    return {"app": "AgriLog", "status": "ok"}

@app.on_event("startup")
def on_startup():
    create_db_and_tables()
    with Session(engine) as session:
        seed_settings(session)

if __name__ == "__main__":
    uvicorn.run("agrilog.main:app", host="0.0.0.0", port=8000, reload=True)
