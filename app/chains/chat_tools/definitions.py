"""Tool definitions for the CRSC filing assistant.

5 tools: four section saves plus the step-status update that drives the
progress bar. Enum values here must match app.core.schemas_filing.
"""

from typing import Any

# Bump when a tool name, field or enum changes
TOOLSET_VERSION = "2025-06-01"


def get_tool_definitions() -> list[dict[str, Any]]:
    """Get tool definitions for the Claude API."""
    return [
        {
            "name": "save_personal_info",
            "description": (
                "Save or update the veteran's personal information. "
                "Call this after confirming personal details with the veteran."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "first_name": {"type": "string", "description": "First name"},
                    "middle_initial": {"type": "string", "description": "Middle initial (optional)"},
                    "last_name": {"type": "string", "description": "Last name"},
                    "ssn": {
                        "type": "string",
                        "description": "Social Security Number (format: XXX-XX-XXXX)",
                    },
                    "date_of_birth": {
                        "type": "string",
                        "description": "Date of birth (format: YYYY-MM-DD)",
                    },
                    "email": {"type": "string", "description": "Email address"},
                    "phone": {"type": "string", "description": "Phone number"},
                    "address_line1": {"type": "string", "description": "Street address line 1"},
                    "address_line2": {
                        "type": "string",
                        "description": "Street address line 2 (optional)",
                    },
                    "city": {"type": "string", "description": "City"},
                    "state": {"type": "string", "description": "State (2-letter code)"},
                    "zip_code": {"type": "string", "description": "ZIP code"},
                },
                "required": ["first_name", "last_name"],
            },
        },
        {
            "name": "save_military_service",
            "description": (
                "Save or update the veteran's military service information. "
                "Call this after confirming military details."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "branch": {
                        "type": "string",
                        "enum": [
                            "Army",
                            "Navy",
                            "Air Force",
                            "Marine Corps",
                            "Coast Guard",
                            "Space Force",
                        ],
                        "description": "Branch of service",
                    },
                    "service_number": {
                        "type": "string",
                        "description": "Service number (if different from SSN)",
                    },
                    "retired_rank": {"type": "string", "description": "Rank at retirement"},
                    "retirement_date": {
                        "type": "string",
                        "description": "Retirement date (format: YYYY-MM-DD)",
                    },
                    "years_of_service": {"type": "number", "description": "Total years of service"},
                    "retirement_type": {
                        "type": "string",
                        "enum": ["20+ years", "Chapter 61", "TERA", "TDRL", "PDRL"],
                        "description": "Type of retirement",
                    },
                },
                "required": ["branch", "retirement_type"],
            },
        },
        {
            "name": "save_va_disability_info",
            "description": (
                "Save or update the veteran's VA disability information. "
                "Call this after confirming VA details."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "va_file_number": {"type": "string", "description": "VA file number"},
                    "current_va_rating": {
                        "type": "integer",
                        "minimum": 0,
                        "maximum": 100,
                        "description": "Combined VA disability rating percentage (0-100)",
                    },
                    "va_decision_date": {
                        "type": "string",
                        "description": "Date of the most recent VA decision (format: YYYY-MM-DD)",
                    },
                    "has_va_waiver": {
                        "type": "boolean",
                        "description": "Whether the veteran has a VA waiver on file",
                    },
                    "receives_crdp": {
                        "type": "boolean",
                        "description": "Whether the veteran currently receives CRDP",
                    },
                },
                "required": ["current_va_rating"],
            },
        },
        {
            "name": "save_disability_claim",
            "description": (
                "Save one disability claim for CRSC. Call once per disability, "
                "after the veteran has confirmed its details."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "disability_title": {
                        "type": "string",
                        "description": "Name of the disability (e.g. 'Tinnitus')",
                    },
                    "disability_code": {"type": "string", "description": "VA diagnostic code"},
                    "body_part_affected": {"type": "string", "description": "Body part affected"},
                    "date_awarded_by_va": {
                        "type": "string",
                        "description": "Date awarded by the VA (format: YYYY-MM-DD)",
                    },
                    "initial_rating_percentage": {
                        "type": "integer",
                        "minimum": 0,
                        "maximum": 100,
                        "description": "Initial VA rating percentage",
                    },
                    "current_rating_percentage": {
                        "type": "integer",
                        "minimum": 0,
                        "maximum": 100,
                        "description": "Current VA rating percentage",
                    },
                    "combat_related_code": {
                        "type": "string",
                        "enum": ["PH", "AC", "HS", "SW", "IN", "AO", "RE", "GW", "MG"],
                        "description": "CRSC combat-related code",
                    },
                    "unit_of_assignment": {
                        "type": "string",
                        "description": "Unit of assignment when injured",
                    },
                    "location_of_injury": {
                        "type": "string",
                        "description": "Where the injury occurred",
                    },
                    "description_of_event": {
                        "type": "string",
                        "description": "Detailed description of the combat-related event",
                    },
                    "received_purple_heart": {
                        "type": "boolean",
                        "description": "Whether a Purple Heart was awarded for this injury",
                    },
                },
                "required": [
                    "disability_title",
                    "current_rating_percentage",
                    "combat_related_code",
                ],
            },
        },
        {
            "name": "update_phase_status",
            "description": (
                "Update the status of an application phase. Call after every "
                "successful save; this is what moves the veteran's progress bar."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "step_name": {
                        "type": "string",
                        "enum": [
                            "eligibility",
                            "personal_info",
                            "military_service",
                            "va_disability",
                            "disability_claims",
                            "documents",
                        ],
                        "description": "Application phase",
                    },
                    "status": {
                        "type": "string",
                        "enum": ["not_started", "in_progress", "completed", "requires_review"],
                        "description": "New status for the phase",
                    },
                },
                "required": ["step_name", "status"],
            },
        },
    ]
