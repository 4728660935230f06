import logging
from datetime import datetime, timezone

from . import config

logging.basicConfig(level=config.LOG_LEVEL)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import auth
from . import routes

app = FastAPI(title="Invoicing API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(routes.router)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logging.exception('Unhandled error on %s %s: %s', request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={'detail': 'Something went wrong'})


@app.get("/api/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

# For local development:
#   uvicorn backend.invoicing.main:app --reload --port 3001
