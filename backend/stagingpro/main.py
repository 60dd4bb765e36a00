import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stagingpro.api import archive, dashboard, editors, integrations, media, messages, orders, pages, plans, realtime
from stagingpro.api.deps import get_data
from stagingpro.config import get_settings
from stagingpro.db.session import init_db
from stagingpro.models.plan import DEFAULT_PLANS, Plan
from stagingpro.services.repository import WriteError

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="StagingPro Studio")

# CORS for the browser client
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["dashboard"])
app.include_router(plans.router, prefix="/api/plans", tags=["plans"])
app.include_router(archive.router, prefix="/api/archive", tags=["archive"])
app.include_router(editors.router, prefix="/api/editors", tags=["editors"])
app.include_router(messages.router, prefix="/api/submissions", tags=["messages"])
app.include_router(media.router, prefix="/api", tags=["media"])
app.include_router(integrations.router, prefix="/api", tags=["integrations"])
app.include_router(realtime.router, tags=["realtime"])


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "stagingpro-studio"}


# pages last: their catch-all route would shadow anything registered after it
app.include_router(pages.router, tags=["pages"])


def seed_default_plans() -> int:
    data = get_data()
    existing = data.plans.fetch_all()
    if existing or existing.failed:
        return 0
    created = 0
    for values in DEFAULT_PLANS:
        try:
            data.plans.insert(Plan(**values))
            created += 1
        except WriteError as e:
            logger.warning("Failed to seed plan %s: %s", values["id"], e)
    logger.info("Seeded %d default plans", created)
    return created


@app.on_event("startup")
def on_startup():
    init_db()
    seed_default_plans()
