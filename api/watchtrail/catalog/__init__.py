from watchtrail.catalog.http import ExternalAPIError
from watchtrail.catalog.observability import CatalogCircuitOpen, catalog_monitor
from watchtrail.catalog.tmdb import EpisodeInfo, MovieDetails, SeasonDetails, ShowDetails, TMDBCatalog, get_catalog

# Failures callers degrade on when a catalog lookup is best-effort.
CATALOG_ERRORS = (ExternalAPIError, CatalogCircuitOpen)

__all__ = [
    "CATALOG_ERRORS",
    "CatalogCircuitOpen",
    "EpisodeInfo",
    "ExternalAPIError",
    "MovieDetails",
    "SeasonDetails",
    "ShowDetails",
    "TMDBCatalog",
    "catalog_monitor",
    "get_catalog",
]
