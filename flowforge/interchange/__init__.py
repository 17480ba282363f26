from .flow_io import EXPORT_FORMAT_VERSION, export_document, export_flow, import_flow

__all__ = ["EXPORT_FORMAT_VERSION", "export_document", "export_flow", "import_flow"]
