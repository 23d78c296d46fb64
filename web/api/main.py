"""FastAPI app for the hockey ops API: roster, jerseys, competitions, DVHL workflow."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hq.models.base import init_db
from hq.services.errors import HQError

from web.api.routes import router as api_router
from web.api.auth_routes import router as auth_router
from web.api.roster_routes import router as roster_router
from web.api.dvhl_routes import router as dvhl_router

logger = logging.getLogger("hq.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(title="Hockey Ops API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)
app.include_router(auth_router)
app.include_router(roster_router)
app.include_router(dvhl_router)


@app.exception_handler(HQError)
async def hq_error_handler(request: Request, exc: HQError):
    """Expected engine failures become JSON with the outcome token under ``error``."""
    logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.code, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/api/health")
async def health():
    return {"status": "ok"}
