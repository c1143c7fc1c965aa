import logging

from fastapi import FastAPI

from . import models  # noqa: F401  (registers tables)
from .db import Base, engine, ensure_schema
from .settings import settings
from .routers import analysis
from .routers import auth
from .routers import sessions
from .routers import subjects

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SWAR Screening API")
app.include_router(auth.router)
app.include_router(subjects.router)
app.include_router(sessions.router)
app.include_router(analysis.router)


@app.get("/health")
def health():
	return {"status": "ok", "ai_configured": bool(settings.ai_gateway_api_key)}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("Schema migration failed; continuing with the existing schema")
