from .base import Base
from .place import Place
from .term import Term
from .ingest_run import IngestRun, IngestRunPlace
from .trend_snapshot import TrendSnapshot

__all__ = [
    "Base",
    "Place",
    "Term",
    "IngestRun",
    "IngestRunPlace",
    "TrendSnapshot",
]
