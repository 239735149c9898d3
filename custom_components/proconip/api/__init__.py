"""HTTP access to the ProCon.IP pool controller."""
from .client import ProconIpApi, ProconIpApiError, ProconIpAuthError

__all__ = ["ProconIpApi", "ProconIpApiError", "ProconIpAuthError"]
