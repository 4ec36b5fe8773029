from fastapi.security import HTTPBearer

# Define HTTP Bearer authentication schemes for different user roles
bearer_company = HTTPBearer(scheme_name="Company HTTPBearer")
bearer_vendor = HTTPBearer(scheme_name="Vendor HTTPBearer")
