"""
Ad-hoc report builder.

    from qaboard.reporting.engine import ReportEngine
    from qaboard.reporting.request import parse_report_request
    from qaboard.reporting.catalogs import build_report_types
"""
