import re

# Columns 0..7 are region metadata, columns 8+ are observation dates.
METADATA_COLUMNS = 8
REGION_ID_COL = 0
REGION_NAME_COL = 1
STATE_COL = 2

DATE_LABEL_RE = re.compile(r"^\d{4}-\d{2}(-\d{2})?$")
ZIP_RE = re.compile(r"^\d{5}$")

DATASET = {
    "name": "zillow_wide",
    "source_name": "Zillow Research",
    "source_refresh_cadence": "monthly",
    "files": {
        "zhvi": "Zillow Home Value Index (typical home value)",
        "zori": "Zillow Observed Rent Index (typical market rent)",
    },
    "limitations": "Zillow series are modeled estimates and may revise historically; rent coverage is a subset of value coverage.",
}
