import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from jevehome.config import get_settings
from jevehome.services.redis_chat_cache import close_chat_cache
from jevehome.routers import agent, agent_admin, auth, photos

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        await close_chat_cache()


app = FastAPI(title="Jeve Home API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(agent.router)
app.include_router(agent_admin.router)
app.include_router(photos.router)


@app.get("/")
def root():
    return {"message": "Jeve Home API", "docs": "/docs"}
