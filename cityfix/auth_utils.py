from datetime import datetime, timedelta, timezone
from jose import jwt

from .config import ACCESS_TOKEN_SECRET

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days

# ---------------------------
# JWT Token Helpers
# ---------------------------
# Tokens are issued for the frontend; verifying them is left to the gateway in front of this service.
def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, ACCESS_TOKEN_SECRET, algorithm=ALGORITHM)

