"""Organization and user services used by the opportunity domain."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from yoma_opportunity.context import ROLE_ORGANIZATION_ADMIN, RequestContext
from yoma_opportunity.errors import AuthorizationError, EntityNotFoundError
from yoma_opportunity.models.organization import Organization, UserInfo
from yoma_opportunity.services.blob import BlobService
from yoma_opportunity.store.organization_store import OrganizationStore, UserStore


class UserService:
    def __init__(self, store: UserStore):
        self._store = store

    def get_by_email_or_none(self, email: Optional[str]) -> Optional[UserInfo]:
        if not email or not email.strip():
            return None
        return self._store.get_by_email(email.strip())

    def get_by_email(self, email: Optional[str]) -> UserInfo:
        if not email or not email.strip():
            raise ValueError("email is required")
        user = self._store.get_by_email(email.strip())
        if user is None:
            raise EntityNotFoundError(f"User with email '{email}' does not exist")
        return user

    def list_platform_admins(self) -> list[UserInfo]:
        return self._store.list_platform_admins()

    def list_organization_admins(self, org_id: UUID) -> list[UserInfo]:
        return self._store.list_organization_admins(org_id)


class OrganizationService:
    """Organization reads, admin authorization checks and reward pool bookkeeping."""

    def __init__(self, store: OrganizationStore, users: UserService, blob: BlobService):
        self._store = store
        self._users = users
        self._blob = blob

    def get_by_id_or_none(self, org_id: UUID) -> Optional[Organization]:
        return self._store.get(org_id)

    def get_by_id(
        self,
        org_id: UUID,
        ensure_org_auth: bool = False,
        context: Optional[RequestContext] = None,
    ) -> Organization:
        org = self._store.get(org_id)
        if org is None:
            raise EntityNotFoundError(f"Organization with id '{org_id}' does not exist")
        if ensure_org_auth:
            self.is_admin(org.id, context or RequestContext(), throw_unauthorized=True)
        return org

    def list_by_ids(self, org_ids: list[UUID]) -> list[Organization]:
        return self._store.list_by_ids(org_ids)

    def get_logo_url(self, org: Organization) -> Optional[str]:
        return self._blob.get_url(org.logo_storage_type, org.logo_key)

    def is_admin(self, org_id: UUID, context: RequestContext, throw_unauthorized: bool = True) -> bool:
        """Platform admins administer every organization."""
        if context.is_admin:
            return True
        user = self._users.get_by_email_or_none(context.username)
        result = user is not None and self._store.is_admin(org_id, user.id)
        if not result and throw_unauthorized:
            raise AuthorizationError(
                f"User '{context.username}' is not an '{ROLE_ORGANIZATION_ADMIN}' of organization '{org_id}'"
            )
        return result

    def is_admins_of(self, org_ids: list[UUID], context: RequestContext, throw_unauthorized: bool = True) -> bool:
        return all(self.is_admin(org_id, context, throw_unauthorized) for org_id in org_ids)

    def list_admins_of(self, context: RequestContext) -> list[Organization]:
        """Organizations the caller administers."""
        user = self._users.get_by_email_or_none(context.username)
        if user is None:
            return []
        return self._store.list_administered_by(user.id)

    def list_admins(self, org_id: UUID) -> list[UserInfo]:
        return self._users.list_organization_admins(org_id)

    def allocate_rewards(self, org: Organization, zlto_reward: Optional[Decimal], yoma_reward: Optional[Decimal]) -> None:
        """Add allocated rewards to the organization's cumulative trackers, treating null as zero."""
        if zlto_reward is not None:
            org.zlto_reward_cumulative = (org.zlto_reward_cumulative or Decimal(0)) + zlto_reward
        if yoma_reward is not None:
            org.yoma_reward_cumulative = (org.yoma_reward_cumulative or Decimal(0)) + yoma_reward
        self._store.update_reward_cumulatives(org.id, org.zlto_reward_cumulative, org.yoma_reward_cumulative)
