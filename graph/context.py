from typing import Tuple

from langchain_core.runnables import RunnableConfig
from sqlalchemy.orm import Session

from tools.background import Detached
from tools.deps import Services


def runtime(config: RunnableConfig) -> Tuple[Session, Services, Detached]:
    """Unpack the per-request collaborators passed through `configurable`."""
    configurable = config.get("configurable", {})
    return configurable["db"], configurable["services"], configurable.get("detached") or Detached()
