from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

from bootstrap import create_schema, ensure_admin_account
from routers import admin, auth_accounts, events, messages, organizer, registrations, teams, tickets, users

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

app = FastAPI(title="Felicity Events API", version="1.0.0")
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    create_schema()
    ensure_admin_account()
    logger.info("Felicity Events API started")


# ==================== PUBLIC ROUTES ====================
@api_router.get("/")
async def root():
    return {"message": "Felicity Events API is running"}


@api_router.get("/health")
async def health_check():
    return {"status": "healthy"}


api_router.include_router(auth_accounts.router)
api_router.include_router(users.router)
api_router.include_router(organizer.router)
api_router.include_router(admin.router)
api_router.include_router(events.router)
api_router.include_router(registrations.router)
api_router.include_router(teams.router)
api_router.include_router(tickets.router)
api_router.include_router(messages.router)

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
