from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)


class CRUDUser:
    def get_user(self, db: Session, user_id: int) -> Optional[models.User]:
        return db.query(models.User).filter(models.User.id == user_id).first()

    def get_user_by_email(self, db: Session, email: str) -> Optional[models.User]:
        return db.query(models.User).filter(models.User.email == email).first()

    def get_talent_profile(self, db: Session, user_id: int) -> Optional[models.TalentProfile]:
        return (
            db.query(models.TalentProfile)
            .filter(models.TalentProfile.user_id == user_id)
            .first()
        )

    def set_pro_status(
        self, db: Session, talent_id: int, active: bool
    ) -> Optional[models.TalentProfile]:
        """Flip the pro tier flag from a subscription event.

        Already-issued invoices keep the commission frozen into their rows;
        only invoices issued afterwards see the new rate.
        """
        profile = self.get_talent_profile(db, talent_id)
        if profile is None:
            logger.warning("Subscription event for talent %s without a profile", talent_id)
            return None
        if bool(profile.is_pro_subscriber) == active:
            return profile
        profile.is_pro_subscriber = active
        profile.subscription_status = "active" if active else "free"
        if active:
            profile.subscription_started_at = datetime.utcnow()
        db.commit()
        db.refresh(profile)
        logger.info("Talent %s pro status set to %s", talent_id, active)
        return profile


user = CRUDUser()
