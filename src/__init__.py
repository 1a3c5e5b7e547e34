"""ERNIE Curation Core - DataCite metadata curation for GFZ Data Services."""

__version__ = "1.0.0"
__author__ = "GFZ Data Services"
__copyright__ = "Copyright (c) 2025 GFZ Helmholtz Centre for Geosciences"
__license__ = "MIT"
__description__ = "Normalized research metadata store with DataCite 4.6 JSON/XML export, DataCite import and IGSN CSV ingestion"
