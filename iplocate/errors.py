class AppError(Exception):
    """Base application error for the IP geolocation service."""


class IpProviderError(AppError):
    """Base error for IP geolocation provider failures."""


class InvalidIpError(IpProviderError):
    """Raised when the supplied IP address is syntactically invalid."""


class FamilyMismatchError(IpProviderError):
    """Raised when a provider cannot handle the address family of the IP (IPv4/IPv6)."""


class TransportFailureError(IpProviderError):
    """Raised when the request to the upstream provider fails (DNS, TLS, timeout)."""


class UnsupportedContentTypeError(IpProviderError):
    """Raised when the provider answers with a payload we cannot decode."""


class UnknownProviderError(IpProviderError):
    """Raised when a provider name does not resolve to any known client."""


class NoEligibleProviderError(IpProviderError):
    """Raised when the settings leave no provider to query."""
