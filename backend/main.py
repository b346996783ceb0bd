from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core.config import CORS_ALLOW_ORIGINS, LOG_LEVEL
from server.api import router as chart_router
import logging

logger = logging.getLogger("uvicorn.error")
logger.setLevel(LOG_LEVEL)

app = FastAPI(title="Chart Builder", description="Build Vega-Lite charts from controls, commands and specs")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount the chart builder API router
app.include_router(chart_router)


@app.get("/health")
async def health():
    return {"ok": True}
