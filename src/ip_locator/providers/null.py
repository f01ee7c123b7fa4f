from ip_locator.models import FailureReason, LookupFailure, LookupResult, ProviderMode
from ip_locator.providers.base import BaseProvider


class NullProvider(BaseProvider):
    """Provider for the ``none`` mode: never resolves, never does I/O."""

    mode = ProviderMode.NONE

    @property
    def name(self) -> str:
        return "None"

    async def resolve(self, ip: str) -> LookupResult:
        return LookupFailure(FailureReason.DISABLED, "Geolocation service is disabled")
