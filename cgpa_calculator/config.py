"""
Configuration constants for the CGPA calculator.

Everything tunable lives here so the Streamlit script and the core
modules agree on names, delays and file formats.
"""

import os

# ------------------------
# Page
# ------------------------

PAGE_TITLE = "CGPA Calculator | Upload Grades & Credits"
PAGE_ICON = "🎓"

# ------------------------
# Logging
# ------------------------

LOG_LEVEL = os.environ.get("CGPA_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# ------------------------
# Grade scale
# ------------------------

MIN_GRADE_POINT = 0.0
MAX_GRADE_POINT = 4.0

# ------------------------
# Editing session
# ------------------------

BULK_ENTRY_NAME = "Bulk CGPA Entry"

# Artificial delays (seconds) so the spinner is visible
RECALCULATE_DELAY = 0.6
UPLOAD_DELAY = 0.8

# ------------------------
# Files
# ------------------------

TEMPLATE_CSV = "Course,Grade,Credits\nMAT130,A,3\nCSE115,B+,4\nENG103,A-,3"
TEMPLATE_CSV_FILENAME = "cgpa_template.csv"
TEMPLATE_XLSX_FILENAME = "cgpa_template.xlsx"
COURSES_CSV_FILENAME = "cgpa_courses.csv"

SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")
SPREADSHEET_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}
UPLOAD_TYPES = ["csv", "xlsx", "xls"]
