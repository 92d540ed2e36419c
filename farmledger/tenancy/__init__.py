"""Tenancy package."""

from farmledger.tenancy.resolver import (
    IdentityProvider,
    LocalIdentityProvider,
    TenancyResolver,
)

__all__ = [
    "IdentityProvider",
    "LocalIdentityProvider",
    "TenancyResolver",
]
