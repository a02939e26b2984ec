import json
from sqlmodel import Session, select

from . import config
from .models import SystemSetting

DEFAULT_SETTINGS = {
    "auto_confirm_signups": True,
    "require_admin_2fa": False,
    "default_access_duration_days": config.DEFAULT_ACCESS_DURATION_DAYS,
}

def seed_settings(session: Session):
    """
    Inserts default settings that are not stored yet.
    """
    existing = {s.key for s in session.exec(select(SystemSetting)).all()}
    for key, value in DEFAULT_SETTINGS.items():
        if key not in existing:
            session.add(SystemSetting(key=key, value=json.dumps(value)))
    session.commit()

def read_settings(session: Session) -> dict:
    settings = dict(DEFAULT_SETTINGS)
    for row in session.exec(select(SystemSetting)).all():
        try:
            settings[row.key] = json.loads(row.value)
        except json.JSONDecodeError:
            settings[row.key] = row.value
    return settings

def get_setting(session: Session, key: str):
    return read_settings(session).get(key)

def write_settings(session: Session, values: dict) -> dict:
    for key, value in values.items():
        row = session.exec(select(SystemSetting).where(SystemSetting.key == key)).first()
        if row:
            row.value = json.dumps(value)
        else:
            row = SystemSetting(key=key, value=json.dumps(value))
        session.add(row)
    session.commit()
    return read_settings(session)
