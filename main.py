import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from os import getenv

from cedo.routers.drafts import router as drafts_router
from cedo.routers.proposals import router as proposals_router
from cedo.routers.admin import router as admin_router
from cedo.routers.notifications import router as notifications_router
from cedo.dependencies.error_handlers import register_error_handlers

logging.basicConfig(
    level=getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="CEDO Proposal Lifecycle Service")

# global exception handlers
register_error_handlers(app)

# CORS
cors_origins = getenv("CORS_ORIGINS", "*")
if cors_origins == "*":
    origins = ["*"]
    allow_credentials = False
else:
    origins = [origin.strip() for origin in cors_origins.split(",")]
    allow_credentials = True

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
async def health():
    return {"status": "ok"}

# drafts first: /proposals/drafts must win over /proposals/{identifier}
app.include_router(drafts_router, prefix="/api")
app.include_router(proposals_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
