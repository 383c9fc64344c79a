# shelter/utils/shelter_constants.py
"""
Exit data standard codes used on discharge.
"""

DESTINATION_OPTIONS = {
    1: "Permanent Housing / Home",
    2: "Staying with family",
    3: "Other Shelter",
    4: "Back to streets",
    5: "Employment-linked housing",
    17: "Other",
    24: "Deceased",
}

EXIT_REASON_MAX_LENGTH = 500
