from talent_training import models  # noqa: F401  registers tables on Base.metadata
from talent_training.db import session as session_module
from talent_training.db.base import Base


def create_tables() -> None:
    Base.metadata.create_all(bind=session_module.engine)
