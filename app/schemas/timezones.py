from app.schemas.scheduling import ApiModel


class CountryTimezoneResponse(ApiModel):
    country: str
    timezone: str


class TimezoneValidationRequest(ApiModel):
    timezone: str | None = None
    fallback_country: str | None = None


class TimezoneValidationResponse(ApiModel):
    timezone: str
