from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import logging

from celery_worker import process_action_event
from database import get_db, init_db
from exceptions import InvalidActionEventError
from milestones import list_milestones
from repair import sanitize_event_payload
import airtable_client
from routers import progress as progress_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

init_db()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(progress_router.router, prefix="/api")

# --- API Endpoints ---
@app.get("/")
def read_root():
    return {"status": "Progress Engine is running!"}

@app.post("/webhook/tool-completion", status_code=202)
async def tool_completion_webhook(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="Body must be a JSON object")

    customer_id = payload.get("customerId") or payload.get("customer_id")
    if not customer_id:
        raise HTTPException(status_code=422, detail="customer_id is required")
    try:
        event, _ = sanitize_event_payload(payload)
    except InvalidActionEventError as e:
        raise HTTPException(status_code=422, detail=str(e))

    process_action_event.delay(str(customer_id), payload)
    return {"status": "queued", "customer_id": str(customer_id), "tool_id": event.tool_id}

@app.get("/api/milestones", tags=["Milestones"])
def get_milestones():
    return [m.model_dump() for m in list_milestones()]

@app.get("/api/health", tags=["Health"])
def get_health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database_status = "ok"
    except SQLAlchemyError as e:
        logger.error("Ledger database check failed: %s", e)
        database_status = "error"
    store = airtable_client.health_check()
    healthy = database_status == "ok" and store["status"] in ("ok", "unconfigured")
    return {"status": "ok" if healthy else "degraded", "database": database_status, "airtable": store}
