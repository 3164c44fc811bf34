"""
Output module for reconciliation reports.
"""
from .report_generator import generate_report

__all__ = ['generate_report']
