from fastapi import FastAPI
from busline.api import account, account_token, agent, booking, bus
from busline.src.enums import AppID
from busline.src.errors import registerErrorHandlers


# ------------------------------------------------------
# Admin console application, mounted under /admin
# ------------------------------------------------------
app_admin = FastAPI(title="Admin APP")
app_admin.state.id = AppID.ADMIN
registerErrorHandlers(app_admin)

app_admin.include_router(bus.route_admin)
app_admin.include_router(agent.route_admin)
app_admin.include_router(account.route_admin)


# ------------------------------------------------------
# Core routers, served from the root application
# ------------------------------------------------------
core_routers = [
    account.route_core,
    account_token.route_account,
    bus.route_core,
    booking.route_core,
]
