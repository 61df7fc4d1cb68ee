from pydantic import BaseModel, ConfigDict

from iplocate.models.common import Hook


class ValidationResult(BaseModel):
    """Outcome of validating one request, the input of a cache upsert."""

    ip: str
    country_code: str
    authenticated: bool = False
    asn: str | None = None
    # Failed attempts (e.g. logins) from this IP; None keeps the cached count.
    fail: int | None = None
    host: str | None = None


class CacheRecord(BaseModel):
    """Cached resolution of one IP address together with its visit counters.

    `asn` is carried through from the validation result; none of the built-in
    providers maps it, so it stays empty unless an addon provider fills it.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    ip: str
    timestamp: float
    hook: Hook
    asn: str | None = None
    country_code: str
    authenticated: bool = False
    fail_count: int = 0
    request_count: int = 0
    last_access: float
    view_count: int = 1
    host: str | None = None
