"""
Print-shop Workflow Engine
Keyed application settings.

Models:
    - AppSetting: one JSON value per ``setting_key`` with a version counter
      bumped on every write (e.g. ``production_stages``).
"""

from datetime import datetime, timezone

from printshop.models import db


class AppSetting(db.Model):
    """Generic keyed settings store."""

    __tablename__ = "app_settings"

    id = db.Column(db.Integer, primary_key=True)
    setting_key = db.Column(db.String(80), nullable=False, unique=True, index=True)
    value = db.Column(db.JSON, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=0)
    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "setting_key": self.setting_key,
            "value": self.value,
            "version": self.version,
            "updated_by": self.updated_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<AppSetting {self.setting_key} v{self.version}>"
