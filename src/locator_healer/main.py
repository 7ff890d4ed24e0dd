import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.healing_endpoints import router as healing_router
from .core.config import settings
from .core.logging_config import setup_healing_logging

# --- FastAPI App ---
app = FastAPI(title="Locator Healer")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- API Router ---
app.include_router(healing_router)


@app.on_event("startup")
async def startup_event():
    setup_healing_logging(settings.LOG_LEVEL, settings.LOG_DIR)
    logging.getLogger(__name__).info("Locator healer startup complete.")


@app.on_event("shutdown")
async def shutdown_event():
    logging.getLogger(__name__).info("Locator healer shutdown complete.")
