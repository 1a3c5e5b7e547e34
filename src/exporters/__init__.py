"""DataCite JSON and XML exporters."""

from src.exporters.json_exporter import DataCiteJsonExporter
from src.exporters.xml_exporter import DataCiteXmlExporter
from src.exporters.export_service import ExportService, SUPPORTED_FORMATS

__all__ = ['DataCiteJsonExporter', 'DataCiteXmlExporter', 'ExportService', 'SUPPORTED_FORMATS']
