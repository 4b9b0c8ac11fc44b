from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi import Depends, HTTPException, status
from config import config

# Calling services authenticate with a static Bearer token from VALID_TOKENS.
# The user the call is about is an explicit parameter of each route.
bearer_scheme = HTTPBearer()

def get_current_client(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    """Validates the Bearer token for every secured endpoint."""
    if credentials.scheme.lower() != "bearer" or credentials.credentials not in config.valid_tokens:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # Returns the token value, which can be used to identify the client if needed
    return credentials.credentials
