"""Appointment scheduling and booking engine for a service marketplace"""

__version__ = "1.0.0"
