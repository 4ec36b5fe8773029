from fastapi import FastAPI
from cabhub.api import (
    account_token,
    association,
    booking,
    driver,
    feed,
    vehicle,
    vendor,
)
from cabhub.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for each user domain
# ------------------------------------------------------
app_company = FastAPI(title="Company APP")
app_vendor = FastAPI(title="Vendor APP")

# Tag each app with its AppID
app_company.state.id = AppID.COMPANY
app_vendor.state.id = AppID.VENDOR


# ------------------------------------------------------
# Company routers
# ------------------------------------------------------
app_company.include_router(account_token.route_company)
app_company.include_router(booking.route_company)
app_company.include_router(association.route_company)
app_company.include_router(vendor.route_company)
app_company.include_router(feed.route_company)


# ------------------------------------------------------
# Vendor routers
# ------------------------------------------------------
app_vendor.include_router(account_token.route_vendor)
app_vendor.include_router(booking.route_vendor)
app_vendor.include_router(association.route_vendor)
app_vendor.include_router(vendor.route_vendor)
app_vendor.include_router(driver.route_vendor)
app_vendor.include_router(vehicle.route_vendor)
app_vendor.include_router(feed.route_vendor)
