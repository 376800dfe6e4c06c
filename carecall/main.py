# carecall/main.py
import logging
import os
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from carecall.database import engine
from carecall.errors import register_exception_handlers
from carecall.models import Base
from carecall.routers import admin, devices, emergencies

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("carecall")

app = FastAPI(title="CareCall emergency dispatch")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

# create tables on boot (MVP); use a migration tool once the schema settles
@app.on_event("startup")
def create_tables():
    Base.metadata.create_all(bind=engine)
    logger.info("CareCall API ready")

app.include_router(devices.router)
app.include_router(emergencies.router)
app.include_router(admin.router)

@app.get("/api/health")
def health():
    return {"ok": True}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
