"""
Hall dues operator CLI.

Roll semesters over, record payments and expenses, check a student's dues
status, and print or export financial reports from the command line.

Entry point: python -m scripts.cli.main
"""

from scripts.cli.main import main

__all__ = ["main"]
