from __future__ import annotations

import os

from services.relay.app.db.database import get_engine
from services.relay.app.db.models import Base


def init_db(url: str | None = None) -> None:
    """Create the `documents` table unless RELAY_DB_AUTO_CREATE is switched off.

    Deployments that manage their schema elsewhere set RELAY_DB_AUTO_CREATE=false.
    """

    flag = os.getenv("RELAY_DB_AUTO_CREATE", "true").strip().lower()
    if flag in {"0", "false", "no", "n", "off"}:
        return
    Base.metadata.create_all(bind=get_engine(url))
