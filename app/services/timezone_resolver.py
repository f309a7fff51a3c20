from __future__ import annotations

from app.services.time_utils import get_local_timezone_name


class TimezoneValidationError(ValueError):
    pass


# One representative zone per country; multi-zone countries collapse to a
# single zone. Display convenience only.
_COUNTRY_TIMEZONES: dict[str, str] = {
    "VN": "Asia/Ho_Chi_Minh",
    "JP": "Asia/Tokyo",
    "KR": "Asia/Seoul",
    "CN": "Asia/Shanghai",
    "TW": "Asia/Taipei",
    "HK": "Asia/Hong_Kong",
    "TH": "Asia/Bangkok",
    "PH": "Asia/Manila",
    "ID": "Asia/Jakarta",
    "MY": "Asia/Kuala_Lumpur",
    "SG": "Asia/Singapore",
    "IN": "Asia/Kolkata",
    "AE": "Asia/Dubai",
    "AU": "Australia/Sydney",
    "NZ": "Pacific/Auckland",
    "US": "America/New_York",
    "CA": "America/Toronto",
    "MX": "America/Mexico_City",
    "BR": "America/Sao_Paulo",
    "GB": "Europe/London",
    "IE": "Europe/Dublin",
    "FR": "Europe/Paris",
    "DE": "Europe/Berlin",
    "ES": "Europe/Madrid",
    "IT": "Europe/Rome",
    "NL": "Europe/Amsterdam",
    "RU": "Europe/Moscow",
}

_COUNTRY_ALIASES: dict[str, str] = {
    "UK": "GB",
    "USA": "US",
    "VIETNAM": "VN",
    "VIET NAM": "VN",
    "JAPAN": "JP",
    "SOUTH KOREA": "KR",
    "KOREA": "KR",
    "CHINA": "CN",
    "TAIWAN": "TW",
    "HONG KONG": "HK",
    "THAILAND": "TH",
    "PHILIPPINES": "PH",
    "INDONESIA": "ID",
    "MALAYSIA": "MY",
    "SINGAPORE": "SG",
    "INDIA": "IN",
    "UNITED ARAB EMIRATES": "AE",
    "AUSTRALIA": "AU",
    "NEW ZEALAND": "NZ",
    "UNITED STATES": "US",
    "CANADA": "CA",
    "MEXICO": "MX",
    "BRAZIL": "BR",
    "UNITED KINGDOM": "GB",
    "IRELAND": "IE",
    "FRANCE": "FR",
    "GERMANY": "DE",
    "SPAIN": "ES",
    "ITALY": "IT",
    "NETHERLANDS": "NL",
    "RUSSIA": "RU",
}

SUPPORTED_TIMEZONES: frozenset[str] = frozenset(
    {
        "UTC",
        "America/Chicago",
        "America/Denver",
        "America/Los_Angeles",
        *_COUNTRY_TIMEZONES.values(),
    },
)


def _normalize_country(country: str | None) -> str:
    normalized = " ".join((country or "").split()).upper()
    return _COUNTRY_ALIASES.get(normalized, normalized)


def get_timezone_by_country(country: str | None) -> str:
    code = _normalize_country(country)
    if not code:
        return get_local_timezone_name()
    return _COUNTRY_TIMEZONES.get(code) or get_local_timezone_name()


def validate_timezone(timezone: str | None, fallback_country: str | None = None) -> str:
    cleaned = (timezone or "").strip()
    if not cleaned:
        return get_timezone_by_country(fallback_country)
    if cleaned not in SUPPORTED_TIMEZONES:
        raise TimezoneValidationError(f"Invalid timezone: {cleaned}")
    return cleaned


def resolve_user_timezone(timezone: str | None, country: str | None) -> str:
    """Permissive counterpart of ``validate_timezone`` used for display.

    Explicit timezones are trusted as-is; the conversion primitives degrade
    gracefully when the runtime does not recognize them.
    """
    cleaned = (timezone or "").strip()
    if cleaned:
        return cleaned
    return get_timezone_by_country(country)
