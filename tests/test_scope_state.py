import pytest

from rtplot.config.runtime import config_from_mapping
from rtplot.core.models import Sample
from rtplot.core.ring_store import RingStore
from rtplot.core.window import scrolling_window
from rtplot.gui.scope_state import RESOLUTION, STEP_MULTIPLIER, ScopeState


def _config():
    return config_from_mapping(
        {"grid": {"time": {"divisions": 10, "seconds_per_division": 1.0, "raw_per_second": 1000}}}
    )


def _store() -> RingStore:
    store = RingStore(channel_count=2)
    for t in range(0, 20_001, 100):
        store.append(Sample(timestamp=t, values=(3 * t, 7)))
    return store


def _frozen_state(store: RingStore) -> ScopeState:
    state = ScopeState(config=_config(), channel_count=store.channel_count)
    visible = state.visible_range(store.time_range())
    state.handle_key(" ", visible)
    return state


def test_live_window_follows_newest_sample() -> None:
    state = ScopeState(config=_config(), channel_count=2)
    assert state.visible_range(None) is None
    assert state.visible_range((0, 20_000)) == (10.0, 20.0)
    assert state.raw_range((10.0, 20.0)) == (10_000.0, 20_000.0)


def test_freeze_pins_the_window_and_selects_it_for_fitting() -> None:
    store = _store()
    state = _frozen_state(store)

    assert state.frozen
    assert state.fit_range == (10.0, 20.0)
    # New data does not move a frozen window.
    assert state.visible_range((0, 99_000)) == (10.0, 20.0)


def test_fit_mode_cycles_only_while_frozen() -> None:
    state = ScopeState(config=_config(), channel_count=2)
    state.handle_key("m", None)
    assert state.fit_degree is None

    state = _frozen_state(_store())
    seen = []
    for _ in range(4):
        state.handle_key("m", None)
        seen.append(state.fit_degree)
    assert seen == [0, 1, 2, None]


def test_unfreeze_clears_the_fit() -> None:
    state = _frozen_state(_store())
    state.handle_key("m", None)
    state.handle_key(" ", None)
    assert not state.frozen
    assert state.fit_degree is None
    assert state.fit_range is None
    assert state.fit_request() is None


def test_fit_window_moves_and_resizes_inside_visible_range() -> None:
    state = _frozen_state(_store())

    # Already spanning the whole view: cannot move or grow.
    state.handle_key("h", None)
    state.handle_key("k", None)
    assert state.fit_range == (10.0, 20.0)

    state.handle_key("j", None, repeat=True)
    step = RESOLUTION * STEP_MULTIPLIER
    assert state.fit_range == pytest.approx((10.0 + step, 20.0 - step))

    state.handle_key("h", None)
    assert state.fit_range == pytest.approx((10.0 + step - RESOLUTION, 20.0 - step - RESOLUTION))
    state.handle_key("l", None)
    state.handle_key("l", None)
    assert state.fit_range == pytest.approx((10.0 + step + RESOLUTION, 20.0 - step + RESOLUTION))


def test_shrinking_stops_at_minimum_width() -> None:
    state = _frozen_state(_store())
    for _ in range(1000):
        state.handle_key("j", None, repeat=True)
    start, end = state.fit_range
    assert 0.0 < end - start < 1.0


def test_focus_keys() -> None:
    state = _frozen_state(_store())
    state.handle_key("2", None)
    assert state.focused_channel == 1
    state.handle_key("9", None)
    assert state.focused_channel == 1
    state.handle_key("0", None)
    assert state.focused_channel is None


def test_current_fit_uses_focused_channel_and_is_cached() -> None:
    store = _store()
    state = _frozen_state(store)
    state.handle_key("m", None)
    state.handle_key("m", None)
    assert state.current_fit(store) is None

    state.handle_key("1", None)
    request = state.fit_request()
    assert request is not None
    assert (request.channel, request.degree) == (0, 1)
    assert (request.t0, request.t1) == (10_000, 20_000)

    result = state.current_fit(store)
    assert result is not None
    assert result.coefficients[1] == pytest.approx(3.0)
    assert state.current_fit(store) is result


def test_quit_key() -> None:
    state = ScopeState(config=_config())
    state.handle_key("q", None)
    assert state.should_close


def test_live_window_scrolls_with_the_newest_sample() -> None:
    state = ScopeState(config=_config(), channel_count=2)
    assert state.visible_range((0, 20_000)) == scrolling_window(20.0, state.span)
    assert state.visible_range((15_000, 15_500)) == (5.5, 15.5)
    state.handle_key(" ", state.visible_range((0, 20_000)))
    assert state.visible_range((0, 90_000)) == (10.0, 20.0)
