"""Location service: upserts of provider locations keyed by external id."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from revwave_core.domain.models import Location
from revwave_core.providers.base import ProviderLocation


class LocationService:
    """Service for business locations."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_external_id(
        self, integration_id: int, external_id: str
    ) -> Optional[Location]:
        return self.db.execute(
            select(Location).where(
                Location.integration_id == integration_id,
                Location.external_id == external_id,
            )
        ).scalar_one_or_none()

    def list_for_tenant(self, tenant_id: str) -> list[Location]:
        return list(
            self.db.execute(
                select(Location)
                .where(Location.tenant_id == tenant_id)
                .order_by(Location.name, Location.id)
            ).scalars()
        )

    def upsert(
        self,
        integration_id: int,
        tenant_id: str,
        location: ProviderLocation,
    ) -> Location:
        """Create the location on first sight, else overwrite its mutable fields.

        Args:
            integration_id: Owning integration.
            tenant_id: Owning tenant.
            location: Normalized provider location.

        Returns:
            The persisted Location.
        """
        existing = self.find_by_external_id(integration_id, location.external_id)

        if existing:
            existing.name = location.name
            existing.address = location.address
            existing.phone_number = location.phone_number
            existing.website_url = location.website_url
            existing.metadata_json = location.metadata
            self.db.commit()
            return existing

        record = Location(
            external_id=location.external_id,
            name=location.name,
            address=location.address,
            phone_number=location.phone_number,
            website_url=location.website_url,
            metadata_json=location.metadata,
            integration_id=integration_id,
            tenant_id=tenant_id,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record
