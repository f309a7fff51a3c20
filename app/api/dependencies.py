from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.services.scheduling_service import SchedulingService

_HTTP_BEARER = HTTPBearer(auto_error=False)


def get_scheduling_service(
    credentials: HTTPAuthorizationCredentials | None = Depends(_HTTP_BEARER),
) -> SchedulingService:
    # The marketplace API authenticates the caller; its token is passed through.
    access_token = ""
    if credentials and credentials.scheme.lower() == "bearer":
        access_token = credentials.credentials
    return SchedulingService(get_settings(), access_token=access_token)
