"""Base class for transform stages."""

from abc import ABC, abstractmethod

from assetflow_engine.pipeline.domain.models import Asset, StageContext
from assetflow_shared.common.exceptions import TransformError


class BaseStage(ABC):
    """
    Transform stage with a name used in logs and errors.

    Subclasses implement ``run`` and raise via ``self.fail`` so the failure
    carries the stage name.
    """

    name: str = "stage"

    @abstractmethod
    def run(self, assets: list[Asset], context: StageContext) -> list[Asset]:
        raise NotImplementedError

    def fail(self, message: str, **details) -> TransformError:
        return TransformError(self.name, message, details=details or None)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def normalize_suffixes(suffixes) -> frozenset[str]:
    """``["jpg", ".PNG"]`` → ``{".jpg", ".png"}``."""
    return frozenset(s.lower() if s.startswith(".") else f".{s.lower()}" for s in suffixes)
