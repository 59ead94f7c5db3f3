"""
Unit tests for the converter model and the built-in converter library.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from meshbridge.converters import DEFAULT_GROUP_CONVERTERS, ConversionResult, Converter, ConverterMap, DispatchMeta
from meshbridge.converters.general import cover_position_tilt, cover_state, lock, on_off
from meshbridge.converters.helpers import to_number, transtime
from meshbridge.converters.lighting import light_brightness_step, light_color_colortemp, light_onoff_brightness


def make_target():
    target = MagicMock()
    target.address = "0x0001/1"
    target.command = AsyncMock()
    target.write = AsyncMock()
    target.read = AsyncMock()
    return target


def make_meta(message=None, state=None, options=None, members_state=None):
    return DispatchMeta(
        endpoint_name=None,
        options=options or {},
        message=message or {},
        state=state or {},
        members_state=members_state,
    )


class TestConverterMap:
    """Tests for ConverterMap"""

    def test_first_declared_wins(self):
        """Test the first converter declaring a key owns it"""
        cmap = ConverterMap([on_off, light_onoff_brightness])

        assert cmap.find("state") is on_off
        assert cmap.find("brightness") is light_onoff_brightness
        assert cmap.find("color") is None

    def test_for_converters_is_cached(self):
        """Test the same capability set reuses the precomputed map"""
        first = ConverterMap.for_converters(DEFAULT_GROUP_CONVERTERS)
        second = ConverterMap.for_converters(list(DEFAULT_GROUP_CONVERTERS))

        assert first is second
        assert "state" in first
        assert len(first) == len(DEFAULT_GROUP_CONVERTERS)

    def test_converters_compare_by_identity(self):
        """Test equal-looking converters are still distinct"""
        a = Converter(name="x", keys=frozenset({"k"}))
        b = Converter(name="x", keys=frozenset({"k"}))

        assert a != b
        assert len({a, b}) == 2


class TestHelpers:
    """Tests for converter helpers"""

    def test_to_number_rejects_bool(self):
        """Test booleans are not numbers for attribute values"""
        with pytest.raises(ValueError, match="'brightness' expects a number"):
            to_number("brightness", True)

    def test_transtime_from_options(self):
        """Test the configured transition is used when the message has none"""
        assert transtime(make_meta(options={"transition": 1.5})) == 15
        assert transtime(make_meta(message={"transition": 0.3}, options={"transition": 1.5})) == 3
        assert transtime(make_meta()) == 0


class TestLightOnOffBrightness:
    """Tests for light_onoff_brightness"""

    @pytest.mark.asyncio
    async def test_on_with_brightness_single_command(self):
        """Test state and brightness are written together"""
        target = make_target()
        meta = make_meta(message={"state": "ON", "brightness": 200})

        result = await light_onoff_brightness.convert_set(target, "state", "ON", meta)

        target.command.assert_awaited_once_with(
            "genLevelCtrl", "moveToLevelWithOnOff", {"level": 200, "transtime": 0}
        )
        assert result.state == {"state": "ON", "brightness": 200}
        assert result.read_after_write is None

    @pytest.mark.asyncio
    async def test_brightness_percent(self):
        """Test brightness_percent is scaled to the 0-254 range"""
        target = make_target()
        meta = make_meta(message={"brightness_percent": 50})

        result = await light_onoff_brightness.convert_set(target, "brightness_percent", 50, meta)

        assert result.state == {"state": "ON", "brightness": 127}

    @pytest.mark.asyncio
    async def test_off(self):
        """Test plain off"""
        target = make_target()
        meta = make_meta(message={"state": "OFF"})

        result = await light_onoff_brightness.convert_set(target, "state", "OFF", meta)

        target.command.assert_awaited_once_with("genOnOff", "off")
        assert result.state == {"state": "OFF"}

    @pytest.mark.asyncio
    async def test_off_with_transition_fades(self):
        """Test off with a transition fades to zero and asks for a follow-up read"""
        target = make_target()
        meta = make_meta(message={"state": "OFF", "transition": 2})

        result = await light_onoff_brightness.convert_set(target, "state", "OFF", meta)

        target.command.assert_awaited_once_with(
            "genLevelCtrl", "moveToLevelWithOnOff", {"level": 0, "transtime": 20}
        )
        assert result.read_after_write == 2

    @pytest.mark.asyncio
    async def test_toggle_predicts_from_prior_state(self):
        """Test toggle predicts the opposite of the cached state"""
        target = make_target()
        meta = make_meta(message={"state": "TOGGLE"}, state={"state": "ON"})

        result = await light_onoff_brightness.convert_set(target, "state", "TOGGLE", meta)

        target.command.assert_awaited_once_with("genOnOff", "toggle")
        assert result.state == {"state": "OFF"}

    @pytest.mark.asyncio
    async def test_toggle_unknown_prior_state(self):
        """Test toggle without a cached state predicts nothing"""
        target = make_target()
        meta = make_meta(message={"state": "toggle"})

        result = await light_onoff_brightness.convert_set(target, "state", "toggle", meta)

        assert result.state == {}

    @pytest.mark.asyncio
    async def test_group_fan_out(self):
        """Test group writes copy the prediction to every member"""
        target = make_target()
        meta = make_meta(message={"state": "ON"}, members_state={"m1": {}, "m2": {"state": "OFF"}})

        result = await light_onoff_brightness.convert_set(target, "state", "ON", meta)

        assert result.members_state == {"m1": {"state": "ON"}, "m2": {"state": "ON"}}

    @pytest.mark.asyncio
    async def test_invalid_state_raises(self):
        """Test an unknown state word raises"""
        target = make_target()
        meta = make_meta(message={"state": "sideways"})

        with pytest.raises(ValueError, match="Invalid state value"):
            await light_onoff_brightness.convert_set(target, "state", "sideways", meta)
        target.command.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_reads_level(self):
        """Test brightness reads query the level cluster"""
        target = make_target()

        await light_onoff_brightness.convert_get(target, "brightness", make_meta())

        target.read.assert_awaited_once_with("genLevelCtrl", ["currentLevel"])


class TestLightColor:
    """Tests for light_color_colortemp"""

    @pytest.mark.asyncio
    async def test_color_temp_clamped(self):
        """Test colour temperature is clamped to the supported mired range"""
        target = make_target()

        result = await light_color_colortemp.convert_set(target, "color_temp", 1000, make_meta())

        target.command.assert_awaited_once_with("lightingColorCtrl", "moveToColorTemp", {"colortemp": 500, "transtime": 0})
        assert result.state == {"color_temp": 500, "color_mode": "color_temp"}

    @pytest.mark.asyncio
    async def test_color_xy(self):
        """Test xy colours are sent as scaled integers"""
        target = make_target()

        result = await light_color_colortemp.convert_set(target, "color", {"x": 0.5, "y": 0.25}, make_meta())

        target.command.assert_awaited_once_with(
            "lightingColorCtrl", "moveToColor", {"colorx": 32768, "colory": 16384, "transtime": 0}
        )
        assert result.state["color_mode"] == "xy"

    @pytest.mark.asyncio
    async def test_color_hex(self):
        """Test hex colours are converted to xy"""
        target = make_target()

        result = await light_color_colortemp.convert_set(target, "color", "#ff0000", make_meta())

        assert target.command.await_args.args[1] == "moveToColor"
        assert result.state["color"]["x"] > result.state["color"]["y"]

    @pytest.mark.asyncio
    async def test_unsupported_color(self):
        """Test unusable colour values raise"""
        with pytest.raises(ValueError):
            await light_color_colortemp.convert_set(make_target(), "color", {"foo": 1}, make_meta())


class TestBrightnessStep:
    """Tests for light_brightness_step"""

    @pytest.mark.asyncio
    async def test_step_without_known_brightness(self):
        """Test a step is sent but nothing is predicted without a cached brightness"""
        target = make_target()

        result = await light_brightness_step.convert_set(target, "brightness_step", 20, make_meta())

        target.command.assert_awaited_once_with(
            "genLevelCtrl", "step", {"stepmode": 0, "stepsize": 20, "transtime": 0}
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_step_down_onoff_predicts_off(self):
        """Test stepping below zero with on/off predicts the light turning off"""
        target = make_target()
        meta = make_meta(state={"brightness": 10})

        result = await light_brightness_step.convert_set(target, "brightness_step_onoff", -50, meta)

        assert target.command.await_args.args[1] == "stepWithOnOff"
        assert result.state == {"brightness": 0, "state": "OFF"}


class TestGeneralConverters:
    """Tests for switch, cover and lock converters"""

    @pytest.mark.asyncio
    async def test_on_off(self):
        """Test plain switch on"""
        target = make_target()

        result = await on_off.convert_set(target, "state", "on", make_meta())

        target.command.assert_awaited_once_with("genOnOff", "on")
        assert result.state == {"state": "ON"}

    @pytest.mark.asyncio
    async def test_cover_stop_has_no_prediction(self):
        """Test stopping a cover predicts nothing"""
        target = make_target()

        result = await cover_state.convert_set(target, "state", "STOP", make_meta())

        target.command.assert_awaited_once_with("closuresWindowCovering", "stop")
        assert result is None

    @pytest.mark.asyncio
    async def test_cover_position_inverted(self):
        """Test invert_cover flips the percentage sent to the device"""
        target = make_target()

        result = await cover_position_tilt.convert_set(target, "position", 30, make_meta(options={"invert_cover": True}))

        target.command.assert_awaited_once_with(
            "closuresWindowCovering", "goToLiftPercentage", {"percentageliftvalue": 30}
        )
        assert result.state == {"position": 30}

    @pytest.mark.asyncio
    async def test_lock_requests_confirmatory_read(self):
        """Test lock writes do not self-report and ask for a read"""
        target = make_target()

        result = await lock.convert_set(target, "state", "LOCK", make_meta())

        target.command.assert_awaited_once_with("closuresDoorLock", "lockDoor", {"pincodevalue": ""})
        assert isinstance(result, ConversionResult)
        assert result.state == {"state": "LOCK"}
        assert result.read_after_write == pytest.approx(0.2)
