"""
Pytest fixtures and configuration for form engine tests.
Provides sample schemas and engine handles shared across test modules.
"""

import pytest

from form_engine.config.engine_config import EngineConfig
from form_engine.runtime.remote import InProcessRemoteChecker
from form_engine.session.handle import EngineHandle


@pytest.fixture
def engine_config():
    """Engine config with short timers so session tests run fast."""
    return EngineConfig(
        debounce_seconds=0.01,
        autosave_seconds=0.01,
        remote_timeout_seconds=0.2,
    )


@pytest.fixture
def address_schema_dict():
    """Country/zip form: zip is shown and required only for US addresses."""
    return {
        "id": "address",
        "name": "Address",
        "sections": [
            {
                "id": "location",
                "title": "Location",
                "fields": [
                    {
                        "id": "country",
                        "label": "Country",
                        "type": "select",
                        "required": True,
                        "options": {
                            "static_options": [
                                {"value": "US", "label": "United States"},
                                {"value": "CA", "label": "Canada"},
                                {"value": "DE", "label": "Germany"},
                            ]
                        },
                    },
                    {
                        "id": "zip",
                        "label": "ZIP code",
                        "type": "text",
                        "required": True,
                        "visibility_conditions": {"op": "equals", "field": "country", "value": "US"},
                        "validations": [
                            {
                                "type": "pattern",
                                "pattern": r"^\d{5}$",
                                "message": "ZIP must be 5 digits",
                            }
                        ],
                    },
                    {"id": "city", "label": "City", "type": "text"},
                ],
            }
        ],
    }


@pytest.fixture
def date_range_schema_dict():
    """Booking form where endDate must not precede startDate."""
    return {
        "id": "booking",
        "name": "Booking",
        "sections": [
            {
                "id": "dates",
                "title": "Dates",
                "fields": [
                    {"id": "startDate", "label": "Start date", "type": "date", "required": True},
                    {
                        "id": "endDate",
                        "label": "End date",
                        "type": "date",
                        "required": True,
                        "validations": [
                            {
                                "type": "cross_field",
                                "operator": "greater_than_or_equal",
                                "other_field": "startDate",
                                "message": "End date must be on or after start date",
                            }
                        ],
                    },
                ],
            }
        ],
    }


@pytest.fixture
def remote_schema_dict():
    """Signup form with a remote uniqueness rule on username."""
    return {
        "id": "signup",
        "name": "Signup",
        "sections": [
            {
                "id": "account",
                "title": "Account",
                "fields": [
                    {
                        "id": "username",
                        "label": "Username",
                        "type": "text",
                        "required": True,
                        "validations": [
                            {"type": "length", "min": 3},
                            {"type": "remote", "rule_id": "unique_username", "trigger": "on_blur"},
                        ],
                    },
                    {"id": "email", "label": "Email", "type": "email"},
                ],
            }
        ],
    }


@pytest.fixture
def address_handle(address_schema_dict, engine_config):
    return EngineHandle.create(address_schema_dict, config=engine_config)


@pytest.fixture
def date_range_handle(date_range_schema_dict, engine_config):
    return EngineHandle.create(date_range_schema_dict, config=engine_config)


@pytest.fixture
def taken_usernames():
    return {"admin", "root"}


@pytest.fixture
def remote_checker(taken_usernames):
    """In-process checker rejecting usernames that are already taken."""

    def unique_username(field_id, value, data):
        if value in taken_usernames:
            return "Username is already taken"
        return True

    return InProcessRemoteChecker({"unique_username": unique_username})


@pytest.fixture
def remote_handle(remote_schema_dict, engine_config, remote_checker):
    return EngineHandle.create(remote_schema_dict, config=engine_config, remote_checker=remote_checker)
