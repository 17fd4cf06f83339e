from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from busline.src import schemas
from busline.src.constants import API_TITLE, API_VERSION
from busline.src.enums import AppID
from busline.src.errors import registerErrorHandlers
from busline.src.urls import URL_HEALTH
from busline.api.controller import app_admin, core_routers


app = FastAPI(title=API_TITLE, version=API_VERSION)
app.state.id = AppID.CORE
registerErrorHandlers(app)

origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in core_routers:
    app.include_router(router)

app.mount("/admin", app_admin, "Admin API")


# Health check endpoint
@app.get(URL_HEALTH, tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    return {"status": "OK", "version": API_VERSION}
