"""
Table creation and plan catalog seeding.
"""
import logging
from decimal import Decimal
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from voiceflow.db.base import Base
from voiceflow.db import models  # noqa: F401  registers every table on Base.metadata
from voiceflow.db.models.plan import SubscriptionPlan

logger = logging.getLogger(__name__)

# Seeded once; read-only at runtime. -1 means unlimited.
DEFAULT_PLANS = [
    {
        "name": "Free",
        "description": "Basic transcription for trying Voiceflow out",
        "price_monthly": Decimal("0"),
        "price_yearly": None,
        "features": [
            "Basic transcription",
            "Up to 5 hours/month",
            "English only",
            "3 projects max",
        ],
        "limits": {"transcription_hours": 5, "file_size_mb": 25, "projects": 3},
    },
    {
        "name": "Pro",
        "description": "Unlimited transcription for professionals",
        "price_monthly": Decimal("29"),
        "price_yearly": Decimal("290"),
        "features": [
            "Unlimited transcription",
            "Multi-language support",
            "Speaker identification",
            "Export options",
            "Priority support",
        ],
        "limits": {"transcription_hours": -1, "file_size_mb": 500, "projects": -1},
    },
    {
        "name": "Enterprise",
        "description": "Everything in Pro plus API access and integrations",
        "price_monthly": Decimal("99"),
        "price_yearly": Decimal("990"),
        "features": [
            "Everything in Pro",
            "API access",
            "Custom integrations",
            "Advanced analytics",
            "Dedicated support",
        ],
        "limits": {"transcription_hours": -1, "file_size_mb": 1000, "projects": -1, "api_calls": 10000},
    },
]


def seed_plans(db: Session) -> int:
    """Insert any default plan that is missing by name. Returns the number inserted."""
    existing = {name for (name,) in db.query(SubscriptionPlan.name).all()}
    created = 0
    for plan in DEFAULT_PLANS:
        if plan["name"] in existing:
            continue
        db.add(SubscriptionPlan(**plan))
        created += 1
    if created:
        db.commit()
        logger.info(f"Seeded {created} subscription plan(s)")
    return created


def init_db(engine: Engine, db: Session, create_tables: bool = True) -> None:
    if create_tables:
        Base.metadata.create_all(bind=engine)
    seed_plans(db)
