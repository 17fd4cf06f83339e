from fastapi.security import HTTPBearer

# HTTP Bearer authentication scheme shared by customers, agents and admins
bearer_account = HTTPBearer(scheme_name="Account HTTPBearer")
