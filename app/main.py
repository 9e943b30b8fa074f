import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.v1 import index
from app.api.v1 import product
from app.api.v1 import inspection
from app.api.v1 import defect
from app.api.v1 import alert
from app.api.v1 import activity

from app.core.config import settings
from app.core.logging import setup_logging

setup_logging()

app = FastAPI(title=settings.app_name)

# Middlewares
origins = []

if settings.allowed_hosts:
    origins = settings.allowed_hosts.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(index.router, prefix="/api/v1")
app.include_router(
    product.router, prefix="/api/v1/products", tags=["Products"])
app.include_router(
    inspection.router, prefix="/api/v1/inspections", tags=["Inspections"])
app.include_router(
    defect.router, prefix="/api/v1/defects", tags=["Defects"])
app.include_router(
    alert.router, prefix="/api/v1/alerts", tags=["Alerts"])
app.include_router(
    activity.router, prefix="/api/v1/activities", tags=["Activities"])

# Uploaded images are served from here
app.mount("/static", StaticFiles(directory=settings.static_dir), name="static")

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,
        log_level=None,
    )
