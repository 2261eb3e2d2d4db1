"""
EcoFinance - Personal Finance Notification Pipeline

Rule-driven notification engine for a personal finance tracker: budget
thresholds, goal completion and recurring reports become notifications,
which are filtered by user preferences and surfaced as toasts and in a
persistent notification center.
"""

__version__ = "1.0.0"
__author__ = "EcoFinance Team"
