"""
Tenancy Resolution

Every read and write happens under a tenant id. The tenant is derived from
the authenticated principal:

- owner  -> tenant id is the principal's own uid
- member -> tenant id is the `owner_id` stored on the member's profile

DESIGN DECISION: Resolution is reactive. The resolver listens to the
identity provider and to the `users` collection; whenever either changes
it looks the profile up again and republishes the tenant id. Repositories
and queries read `tenant_id` on every call instead of caching it.

While a lookup is in flight the tenant is unknown (`None`). Reads treat
that as "nothing to show" and return empty results; writes raise
UnauthenticatedError.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import structlog

from farmledger.audit import AuditLogger
from farmledger.errors import UnauthenticatedError
from farmledger.models.entities import Principal, Role, Supervisor, UserProfile
from farmledger.services.storage import ChangeEvent, DocumentStore, where


logger = structlog.get_logger(__name__)

PrincipalCallback = Callable[[Optional[Principal]], Any]
TenantCallback = Callable[[Optional[str]], Any]


async def _call(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


# =============================================================================
# IDENTITY PROVIDERS
# =============================================================================

class IdentityProvider(ABC):
    """What the core needs from an external identity provider."""

    @abstractmethod
    def current_principal(self) -> Optional[Principal]:
        """The signed-in principal, or None."""
        pass

    @abstractmethod
    def on_principal_change(self, callback: PrincipalCallback) -> Callable[[], None]:
        """
        Register a callback fired on sign-in, sign-out and account switch.

        Returns:
            A callable that removes the callback
        """
        pass


class LocalIdentityProvider(IdentityProvider):
    """
    In-process identity provider.

    Used when the host application authenticates by itself and just tells
    the core who is signed in, and in tests.
    """

    def __init__(self, principal: Optional[Principal] = None):
        self._principal = principal
        self._callbacks: list[PrincipalCallback] = []

    def current_principal(self) -> Optional[Principal]:
        return self._principal

    def on_principal_change(self, callback: PrincipalCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def sign_in(self, principal: Principal) -> None:
        self._principal = principal
        await self._notify()

    async def sign_out(self) -> None:
        self._principal = None
        await self._notify()

    async def _notify(self) -> None:
        for callback in list(self._callbacks):
            await _call(callback, self._principal)


# =============================================================================
# RESOLVER
# =============================================================================

class TenancyResolver:
    """
    Maps the current principal to the tenant id all operations run under.

    Construct once per application (process-scoped) and pass it to the
    repositories and query layer.
    """

    def __init__(
        self,
        identity: IdentityProvider,
        store: DocumentStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._identity = identity
        self._store = store
        self._audit_logger = audit_logger
        self._principal: Optional[Principal] = None
        self._profile: Optional[UserProfile] = None
        self._tenant_id: Optional[str] = None
        self._listeners: list[TenantCallback] = []
        self._lock = asyncio.Lock()

        self._unsubscribe_identity = identity.on_principal_change(self._on_principal_change)
        self._unsubscribe_profiles = store.changes.subscribe(
            UserProfile.COLLECTION, self._on_profile_change
        )

    # =========================================================================
    # Current values
    # =========================================================================

    @property
    def tenant_id(self) -> Optional[str]:
        """Resolved tenant, or None while signed out / unresolved."""
        return self._tenant_id

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    def require_tenant(self) -> str:
        """
        Tenant id for a write.

        Raises:
            UnauthenticatedError: If no tenant is resolved
        """
        if self._tenant_id is None:
            raise UnauthenticatedError("No authenticated tenant for this operation")
        return self._tenant_id

    def subscribe(self, callback: TenantCallback) -> Callable[[], None]:
        """
        Be told about every newly published tenant id (including None).

        Returns:
            A callable that removes the callback
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # =========================================================================
    # Resolution
    # =========================================================================

    async def refresh(self) -> Optional[str]:
        """Resolve against the identity provider's current principal."""
        return await self._resolve(self._identity.current_principal())

    async def settled(self) -> Optional[str]:
        """Wait for any in-flight resolution and return the tenant."""
        async with self._lock:
            return self._tenant_id

    async def _on_principal_change(self, principal: Optional[Principal]) -> None:
        await self._resolve(principal)

    async def _on_profile_change(self, event: ChangeEvent) -> None:
        if self._principal is not None and event.doc_id == self._principal.uid:
            await self._resolve(self._principal)

    async def _resolve(self, principal: Optional[Principal]) -> Optional[str]:
        async with self._lock:
            previous = self._tenant_id
            self._principal = principal
            # Unresolved window: nothing is readable until the lookup completes
            self._tenant_id = None
            self._profile = None

            if principal is not None:
                snapshot = await self._store.get(UserProfile.COLLECTION, principal.uid)
                if snapshot is not None:
                    self._profile = UserProfile.from_document(snapshot.id, snapshot.data)
                    self._tenant_id = self._profile.tenant_id

            tenant_id = self._tenant_id

        logger.debug(
            "tenant_resolved",
            principal=principal.uid if principal else None,
            tenant_id=tenant_id,
        )
        if tenant_id != previous:
            if self._audit_logger:
                await self._audit_logger.log_tenant_resolved(
                    principal_id=principal.uid if principal else None,
                    tenant_id=tenant_id,
                    role=self._profile.role.value if self._profile else None,
                )
            for callback in list(self._listeners):
                await _call(callback, tenant_id)
        return tenant_id

    # =========================================================================
    # Registration
    # =========================================================================

    async def register_profile(
        self,
        principal: Principal,
        role: Role = Role.OWNER,
    ) -> UserProfile:
        """
        Create the principal's profile at registration time.

        If an owner has already listed the principal's email as a
        supervisor, the principal becomes a member of that owner's tenant;
        otherwise it gets the requested role.
        """
        email = principal.email.strip().lower() if principal.email else None
        owner_id: Optional[str] = None

        if email:
            matches = await self._store.query(
                Supervisor.COLLECTION,
                filters=[where("email", "==", email)],
                limit=1,
            )
            if matches:
                role = Role.MEMBER
                owner_id = matches[0].data.get("owner_id")

        profile = UserProfile(id=principal.uid, email=email, role=role, owner_id=owner_id)
        await self._store.set(UserProfile.COLLECTION, principal.uid, profile.to_document())

        logger.info("profile_registered", principal=principal.uid, role=role.value)
        if self._audit_logger:
            await self._audit_logger.log_profile_registered(
                principal_id=principal.uid,
                role=role.value,
                tenant_id=profile.tenant_id,
            )
        return profile

    def close(self) -> None:
        """Stop listening to identity and profile changes."""
        self._unsubscribe_identity()
        self._unsubscribe_profiles()
