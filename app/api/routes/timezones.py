from fastapi import APIRouter, HTTPException, status

from app.schemas.timezones import (
    CountryTimezoneResponse,
    TimezoneValidationRequest,
    TimezoneValidationResponse,
)
from app.services.timezone_resolver import (
    TimezoneValidationError,
    get_timezone_by_country,
    validate_timezone,
)

router = APIRouter(prefix="/timezones", tags=["timezones"])


@router.get("/countries/{country}", response_model=CountryTimezoneResponse)
def get_country_timezone(country: str) -> CountryTimezoneResponse:
    return CountryTimezoneResponse(country=country, timezone=get_timezone_by_country(country))


@router.post("/validate", response_model=TimezoneValidationResponse)
def validate_timezone_choice(payload: TimezoneValidationRequest) -> TimezoneValidationResponse:
    try:
        timezone = validate_timezone(payload.timezone, payload.fallback_country)
    except TimezoneValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    return TimezoneValidationResponse(timezone=timezone)
