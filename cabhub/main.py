from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cabhub.src import schemas
from cabhub.src.constants import API_TITLE, API_VERSION
from cabhub.src.urls import URL_HEALTH
from cabhub.api.controller import app_company, app_vendor


app = FastAPI(title=API_TITLE, version=API_VERSION)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/company", app_company, "Company API")
app.mount("/vendor", app_vendor, "Vendor API")


# Health check endpoint
@app.get(URL_HEALTH, tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
