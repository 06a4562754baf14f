"""Stock Scanner — index universes, candidate filtering and opportunity scoring."""
from .config   import IndexConfig, ScannerConfig
from .errors   import (
    ConstituentFetchError,
    DataValidationError,
    QuotesUnavailableError,
    ScannerError,
    UniverseUnavailableError,
)
from .fetcher  import MarketDataProvider, YahooProvider
from .pipeline import ScannerPipeline
from .universe import ConstituentResolver

__all__ = [
    "IndexConfig", "ScannerConfig",
    "ScannerError", "ConstituentFetchError", "UniverseUnavailableError",
    "QuotesUnavailableError", "DataValidationError",
    "MarketDataProvider", "YahooProvider",
    "ScannerPipeline", "ConstituentResolver",
]
