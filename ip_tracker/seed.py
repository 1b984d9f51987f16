"""Demo portfolio loaded into an empty session."""

import logging
from datetime import datetime, timedelta

from .models import Asset, Client, MonitoringAlert, MonitoringItem
from .store import SessionStore

logger = logging.getLogger(__name__)

DEMO_CREATED_AT = datetime(2024, 1, 1)


def seed_store(store: SessionStore, now: datetime | None = None):
    """Populate a store with two clients, two assets and one brand watch.

    Expiry dates are placed relative to ``now`` so the demo always shows an
    upcoming expiry and an overdue one.
    """
    now = now or store.now()
    today = now.date()

    with store.transaction():
        store.add_client(Client(
            id="client-1",
            name="TechCorp Inc.",
            company="TechCorp Inc.",
            email="contact@techcorp.com",
            phone="+1-555-0123",
            created_at=DEMO_CREATED_AT,
        ))
        store.add_client(Client(
            id="client-2",
            name="Innovation Labs",
            company="Innovation Labs LLC",
            email="hello@innovationlabs.com",
            phone="+1-555-0456",
            created_at=DEMO_CREATED_AT,
        ))

        store.add_asset(Asset(
            id="asset-1",
            name="Innovatr Logo",
            type="trademark",
            client_id="client-1",
            description="Company logo trademark",
            registration_number="US123456",
            registration_date=today - timedelta(days=5 * 365 - 45),
            expiry_date=today + timedelta(days=45),
            jurisdiction="United States",
            created_at=DEMO_CREATED_AT,
        ))
        store.add_asset(Asset(
            id="asset-2",
            name="TechFlow Patent",
            type="patent",
            client_id="client-2",
            description="Software process patent",
            registration_number="US987654",
            registration_date=today - timedelta(days=5 * 365),
            expiry_date=today - timedelta(days=10),
            jurisdiction="United States",
            created_at=DEMO_CREATED_AT,
        ))

        item = MonitoringItem(
            id="monitoring-1",
            name="Innovatr Brand Protection",
            type="trademark",
            keywords=["Innovatr", "InnovatR"],
            client_id="client-1",
            last_checked=now - timedelta(hours=2),
            next_check=now + timedelta(hours=22),
            alert_count=2,
            created_at=DEMO_CREATED_AT,
        )
        store.add_monitoring_item(item)
        store.add_monitoring_alerts([
            MonitoringAlert(
                id="mon-alert-1",
                type="new_application",
                priority="high",
                title="New USPTO Application: INNOVATR TECH",
                description="Similar trademark application filed",
                keyword="Innovatr",
                monitoring_item_id=item.id,
                monitoring_item_name=item.name,
                detected_at=now - timedelta(hours=3),
                data={
                    "serialNumber": "97123456",
                    "applicantName": "Tech Solutions LLC",
                    "applicationDate": (today - timedelta(days=3)).isoformat(),
                    "markDescription": "INNOVATR TECH",
                    "goodsAndServices": "Computer software; Technology consulting services",
                },
                suggested_action="Review application and consider opposition if needed",
                created_at=now - timedelta(hours=3),
            ),
            MonitoringAlert(
                id="mon-alert-2",
                type="suspicious_listing",
                priority="medium",
                title="Suspicious Amazon Listing",
                description="Product using similar branding detected",
                keyword="Innovatr",
                platform="Amazon",
                monitoring_item_id=item.id,
                monitoring_item_name=item.name,
                detected_at=now - timedelta(hours=6),
                data={
                    "seller": "TechGadgets123",
                    "price": "$29.99",
                    "url": "https://amazon.com/listing/example",
                },
                suggested_action="Review listing and consider takedown request",
                created_at=now - timedelta(hours=6),
            ),
        ])

    logger.info("Seeded demo portfolio data")
