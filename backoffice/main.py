from fastapi import FastAPI

from backoffice.api.v1.router import api_router
from backoffice.core.logging import configure_logging


configure_logging()

app = FastAPI(title="Store Back Office")
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def root():
    return {"status": "ok", "message": "Back office running"}
