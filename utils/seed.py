from flask import current_app

from models import db
from models.user import Role

DEFAULT_ROLES = ["PLAYER", "FACILITY_OWNER", "ADMIN"]

def seed_roles() -> int:
    existing = {r.name for r in Role.query.all()}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    db.session.commit()
    if missing:
        current_app.logger.info("Seeded roles: %s", ", ".join(missing))
    return len(missing)
