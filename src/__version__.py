"""Version information for ERNIE Curation Core."""

__version__ = "1.0.0"
__version_info__ = (1, 0, 0)

# Release information
__author__ = "GFZ Data Services"
__organization__ = "GFZ Data Services, GFZ Helmholtz Centre for Geosciences"
__license__ = "MIT"
__description__ = "DataCite metadata curation: export, import, upsert and IGSN ingestion"
