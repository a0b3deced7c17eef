from .spreadsheet import ExcelExporter, SpreadsheetExporter

__all__ = ["ExcelExporter", "SpreadsheetExporter"]
