"""Tests for the per-form controller state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from form_engine.config.engine_config import EngineConfig
from form_engine.runtime.remote import InProcessRemoteChecker
from form_engine.session.controller import FormController, FormState
from form_engine.session.handle import EngineHandle


class TestDataChange:
    @pytest.mark.asyncio
    async def test_debounced_commit(self, address_handle):
        updates = MagicMock()
        controller = address_handle.controller(on_update=updates)

        controller.on_data_change({"country": "US", "zip": "1"})
        assert controller.state == FormState.VALIDATING
        await controller.flush()

        assert controller.state == FormState.INVALID
        assert controller.field_errors["zip"] == ["ZIP must be 5 digits"]
        assert controller.conditional_state["zip"].is_visible
        assert controller.commit_count == 1
        updates.assert_called_once_with(controller)

    @pytest.mark.asyncio
    async def test_valid_state(self, address_handle):
        controller = address_handle.controller()
        controller.on_data_change({"country": "CA"})
        await controller.flush()
        assert controller.state == FormState.VALID
        assert controller.is_valid

    @pytest.mark.asyncio
    async def test_initial_data_from_defaults(self, address_schema_dict, engine_config):
        address_schema_dict["defaults"] = {"country": "DE"}
        controller = EngineHandle.create(address_schema_dict, config=engine_config).controller()
        assert controller.data == {"country": "DE"}
        assert controller.state == FormState.IDLE

    @pytest.mark.asyncio
    async def test_update_callback_errors_are_logged(self, address_handle):
        controller = address_handle.controller(on_update=MagicMock(side_effect=RuntimeError("ui gone")))
        controller.on_data_change({"country": "CA"})
        await controller.flush()
        assert controller.commit_count == 1


class TestAutosave:
    @pytest.mark.asyncio
    async def test_autosave_receives_latest_data(self, address_handle):
        autosave = AsyncMock()
        controller = address_handle.controller(autosave=autosave)

        controller.on_data_change({"country": "U"})
        controller.on_data_change({"country": "US"})
        await controller.flush_autosave()

        autosave.assert_awaited_once_with({"country": "US"})
        assert controller.autosave_count == 1

    @pytest.mark.asyncio
    async def test_autosave_failure_does_not_break_validation(self, address_handle):
        controller = address_handle.controller(autosave=MagicMock(side_effect=OSError("disk full")))
        controller.on_data_change({"country": "CA"})
        await controller.flush_autosave()
        await controller.flush()
        assert controller.autosave_count == 0
        assert controller.state == FormState.VALID


class TestSubmit:
    @pytest.mark.asyncio
    async def test_invalid_submit_blocks_handler(self, address_handle):
        handler = AsyncMock()
        controller = address_handle.controller(submit_handler=handler)

        results = await controller.submit({"country": "US"})

        assert not results.is_valid
        assert controller.state == FormState.INVALID
        assert controller.field_errors["zip"] == ["required"]
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_valid_submit_passes_effective_data(self, address_handle):
        handler = AsyncMock()
        controller = address_handle.controller(submit_handler=handler)

        await controller.submit({"country": "US", "zip": "12345"})

        assert controller.state == FormState.SUBMITTED
        handler.assert_awaited_once_with({"country": "US", "zip": "12345"})

    @pytest.mark.asyncio
    async def test_submit_without_handler(self, address_handle):
        controller = address_handle.controller()
        await controller.submit({"country": "CA"})
        assert controller.state == FormState.SUBMITTED

    @pytest.mark.asyncio
    async def test_handler_failure(self, address_handle):
        handler = AsyncMock(side_effect=ConnectionError("backend down"))
        controller = address_handle.controller(submit_handler=handler)

        await controller.submit({"country": "CA"})

        assert controller.state == FormState.SUBMIT_FAILED
        assert controller.submit_error == "backend down"

    @pytest.mark.asyncio
    async def test_submit_cancels_pending_debounce(self, address_handle):
        controller = address_handle.controller()
        task = controller.on_data_change({"country": "US"})
        await controller.submit({"country": "CA"})
        await asyncio.sleep(0.03)
        assert task.cancelled
        assert controller.commit_count == 1

    @pytest.mark.asyncio
    async def test_submit_uses_current_data(self, address_handle):
        controller = address_handle.controller()
        controller.on_data_change({"country": "CA"})
        results = await controller.submit()
        assert results.is_valid


class TestBlur:
    @pytest.mark.asyncio
    async def test_blur_merges_scoped_results(self, address_handle):
        controller = address_handle.controller()
        controller.on_data_change({"country": "US", "zip": "1", "city": 5})
        await controller.flush()
        assert controller.field_errors["city"] == ["Expected text value"]

        await controller.on_field_blur("zip", {"country": "US", "zip": "12345", "city": 5})

        assert controller.field_errors["zip"] == []
        # city is outside the blur scope and keeps its previous result
        assert controller.field_errors["city"] == ["Expected text value"]


class TestClose:
    @pytest.mark.asyncio
    async def test_close_prevents_commit(self, address_handle):
        updates = MagicMock()
        controller = address_handle.controller(on_update=updates)
        task = controller.on_data_change({"country": "US"})
        controller.close()
        await asyncio.sleep(0.03)

        assert task.cancelled
        assert controller.commit_count == 0
        updates.assert_not_called()

    @pytest.mark.asyncio
    async def test_aclose_cancels_in_flight_remote_checks(self, remote_schema_dict):
        remote_schema_dict["sections"][0]["fields"][0]["validations"][1]["trigger"] = "on_change"
        calls = []
        never = asyncio.Event()

        async def unique_username(field_id, value, data):
            calls.append(value)
            await never.wait()

        config = EngineConfig(debounce_seconds=0.01, remote_timeout_seconds=5)
        checker = InProcessRemoteChecker({"unique_username": unique_username})
        handle = EngineHandle.create(remote_schema_dict, config=config, remote_checker=checker)
        updates = MagicMock()
        controller = handle.controller(on_update=updates)

        debounced = controller.on_data_change({"username": "admin"})
        while len(calls) < 1:
            await asyncio.sleep(0.005)
        blur = asyncio.ensure_future(controller.on_field_blur("username", {"username": "root"}))
        while len(calls) < 2:
            await asyncio.sleep(0.005)

        await controller.aclose()
        await controller.flush()
        with pytest.raises(asyncio.CancelledError):
            await blur

        assert calls == ["admin", "root"]
        assert debounced.cancelled
        assert controller.commit_count == 0
        updates.assert_not_called()

    @pytest.mark.asyncio
    async def test_closed_controller_rejects_calls(self, address_handle):
        controller = address_handle.controller()
        await controller.aclose()
        assert controller.closed
        with pytest.raises(RuntimeError, match="closed"):
            controller.on_data_change({})
        with pytest.raises(RuntimeError):
            await controller.submit({})

    def test_controller_is_per_instance(self, address_handle):
        first = FormController(address_handle)
        second = FormController(address_handle)
        assert first.data is not second.data
