"""
Integration tests for complete form sessions.

Drive schemas end to end through the public boundary: load, conditional
state, scoped and full validation, and the timing behaviour of a form
controller (debounce, stale-response discarding, submit gating).
"""

import asyncio

import pytest

import form_engine
from form_engine.config.engine_config import EngineConfig
from form_engine.runtime.dependency_graph import build
from form_engine.runtime.remote import InProcessRemoteChecker
from form_engine.schemas.rules import TriggerPolicy
from form_engine.session.controller import FormState

pytestmark = pytest.mark.integration


class TestConditionalRequiredField:
    """Country/zip: zip is only rendered and required for US addresses."""

    @pytest.mark.asyncio
    async def test_us_without_zip_is_required(self, address_handle):
        results = await form_engine.validate_for_submit(address_handle, {"country": "US"})
        assert results.field_errors["zip"] == ["required"]
        assert not results.is_valid

    @pytest.mark.asyncio
    async def test_canada_hides_zip(self, address_handle):
        state = form_engine.get_conditional_state(address_handle, {"country": "CA"})
        results = await form_engine.validate_for_submit(address_handle, {"country": "CA"})
        assert state["zip"].is_visible is False
        assert results.field_errors["zip"] == []
        assert results.is_valid

    @pytest.mark.asyncio
    async def test_switching_country_clears_zip_error(self, address_handle):
        controller = address_handle.controller()
        controller.on_data_change({"country": "US", "zip": "abc"})
        await controller.flush()
        assert controller.field_errors["zip"] == ["ZIP must be 5 digits"]

        await controller.on_field_blur("country", {"country": "DE", "zip": "abc"})
        assert controller.field_errors["zip"] == []
        assert controller.state == FormState.VALID


class TestDateRange:
    """endDate must be on or after startDate."""

    @pytest.mark.asyncio
    async def test_end_before_start(self, date_range_handle):
        results = await form_engine.validate_for_submit(
            date_range_handle, {"startDate": "2024-05-10", "endDate": "2024-05-01"}
        )
        assert results.field_errors["endDate"] == ["End date must be on or after start date"]

    @pytest.mark.asyncio
    async def test_same_day_is_valid(self, date_range_handle):
        results = await form_engine.validate_for_submit(
            date_range_handle, {"startDate": "2024-05-10", "endDate": "2024-05-10"}
        )
        assert results.is_valid

    @pytest.mark.asyncio
    async def test_changing_start_revalidates_end(self, date_range_handle):
        assert date_range_handle.graph.affected_by(["startDate"]) == ["startDate", "endDate"]
        results = await form_engine.on_field_blur(
            date_range_handle, "startDate", {"startDate": "2024-06-01", "endDate": "2024-05-01"}
        )
        assert results.evaluated_fields == ["startDate", "endDate"]
        assert results.field_errors["endDate"] == ["End date must be on or after start date"]


class TestDebounce:
    @pytest.mark.asyncio
    async def test_burst_of_edits_commits_once(self, address_schema_dict):
        handle = form_engine.load_schema(address_schema_dict, config=EngineConfig(debounce_seconds=0.05))
        controller = handle.controller()

        controller.on_data_change({"country": "U"})
        await asyncio.sleep(0.01)
        controller.on_data_change({"country": "US"})
        await asyncio.sleep(0.005)
        controller.on_data_change({"country": "US", "zip": "9"})
        await controller.flush()

        assert controller.commit_count == 1
        assert controller.data == {"country": "US", "zip": "9"}
        assert controller.field_errors["zip"] == ["ZIP must be 5 digits"]
        await controller.aclose()


class TestStaleResponses:
    @pytest.mark.asyncio
    async def test_slow_blur_is_discarded_after_newer_edit(self, remote_schema_dict, engine_config):
        release = asyncio.Event()

        async def unique_username(field_id, value, data):
            await release.wait()
            return "Username is already taken"

        checker = InProcessRemoteChecker({"unique_username": unique_username})
        handle = form_engine.load_schema(remote_schema_dict, config=engine_config, remote_checker=checker)
        controller = handle.controller()

        blur = asyncio.ensure_future(controller.on_field_blur("username", {"username": "admin"}))
        await asyncio.sleep(0.01)
        controller.on_data_change({"username": "newbie", "email": "new@example.com"})
        await controller.flush()
        release.set()
        blur_results = await blur

        # The blur itself saw the slow remote verdict...
        assert blur_results.field_errors["username"] == ["Username is already taken"]
        # ...but the newer edit's result is what the form shows
        assert controller.field_errors["username"] == []
        assert controller.state == FormState.VALID
        assert controller.commit_count == 1

    @pytest.mark.asyncio
    async def test_slow_edit_evaluation_does_not_overwrite_newer_blur(self, remote_schema_dict):
        remote_schema_dict["sections"][0]["fields"][0]["validations"][1]["trigger"] = "on_change"
        started = asyncio.Event()
        release = asyncio.Event()

        async def unique_username(field_id, value, data):
            if value == "admin":
                started.set()
                await release.wait()
                return "Username is already taken"
            return True

        config = EngineConfig(debounce_seconds=0.01, remote_timeout_seconds=5)
        checker = InProcessRemoteChecker({"unique_username": unique_username})
        handle = form_engine.load_schema(remote_schema_dict, config=config, remote_checker=checker)
        controller = handle.controller()

        controller.on_data_change({"username": "admin"})
        await asyncio.wait_for(started.wait(), timeout=1)
        blur_results = await controller.on_field_blur("username", {"username": "newbie"})
        assert blur_results.field_errors["username"] == []

        release.set()
        await controller.flush()

        # The edit's evaluation still settles fields the blur did not claim
        assert controller.data == {"username": "newbie"}
        assert controller.field_errors["username"] == []
        assert controller.field_errors["email"] == []
        assert controller.state == FormState.VALID
        assert controller.commit_count == 2
        await controller.aclose()


class TestShortCircuit:
    @pytest.mark.asyncio
    async def test_invalid_pattern_not_reached(self, engine_config):
        schema = {
            "id": "promo",
            "sections": [
                {
                    "id": "s",
                    "fields": [
                        {"id": "has_code", "type": "checkbox"},
                        {"id": "code"},
                        {
                            "id": "bonus",
                            "required": True,
                            "visibility_conditions": {
                                "op": "and",
                                "expressions": [
                                    {"op": "equals", "field": "has_code", "value": True},
                                    {"op": "matches", "field": "code", "pattern": "(unclosed"},
                                ],
                            },
                        },
                    ],
                }
            ],
        }
        handle = form_engine.load_schema(schema, config=engine_config)

        off = form_engine.get_conditional_state(handle, {"has_code": False, "code": "X"})
        assert off["bonus"].is_visible is False
        assert off["bonus"].evaluation_error is None
        assert (await form_engine.validate_for_submit(handle, {"has_code": False, "code": "X"})).is_valid

        on = form_engine.get_conditional_state(handle, {"has_code": True, "code": "X"})
        assert on["bonus"].is_visible is False
        assert on["bonus"].is_enabled is False
        assert "Invalid regex" in on["bonus"].evaluation_error


class TestDeterminism:
    @pytest.mark.asyncio
    async def test_graph_and_results_are_stable(self, address_schema_dict, engine_config):
        handle = form_engine.load_schema(address_schema_dict, config=engine_config)
        assert build(handle.schema) == handle.graph

        data = {"country": "US", "zip": "1", "city": ""}
        runs = [await handle.validate_all(data) for _ in range(3)]
        assert runs[0] == runs[1] == runs[2]

    @pytest.mark.asyncio
    async def test_scoped_validation_matches_full_validation(self, address_handle, date_range_handle):
        cases = [
            (address_handle, {"country": "US", "zip": "abc", "city": "Boston"}),
            (date_range_handle, {"startDate": "2024-01-02", "endDate": "2024-01-01"}),
        ]
        for handle, data in cases:
            full = await handle.validate_all(data, TriggerPolicy.ON_BLUR)
            for field_id in handle.field_ids:
                scoped = await handle.validate_field(field_id, data, TriggerPolicy.ON_BLUR)
                assert scoped == full.restricted_to(scoped.evaluated_fields)


class TestSubmitFlow:
    @pytest.mark.asyncio
    async def test_fix_errors_then_submit(self, address_handle):
        submitted = []
        controller = address_handle.controller(submit_handler=submitted.append)

        await controller.submit({"country": "US", "zip": "12"})
        assert controller.state == FormState.INVALID
        assert submitted == []

        await controller.submit({"country": "US", "zip": "12345", "city": "Austin"})
        assert controller.state == FormState.SUBMITTED
        assert submitted == [{"country": "US", "zip": "12345", "city": "Austin"}]
