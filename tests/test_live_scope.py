from __future__ import annotations

from types import SimpleNamespace

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pytest  # noqa: E402

from rtplot.config.runtime import config_from_mapping  # noqa: E402
from rtplot.core.models import Sample  # noqa: E402
from rtplot.core.ring_store import RingStore  # noqa: E402
from rtplot.gui.live_scope import LiveScope  # noqa: E402


@pytest.fixture
def scope():
    config = config_from_mapping(
        {
            "channels": [{"label": "a"}, {"label": "b", "raw_offset": 100, "raw_per_division": 10}],
            "grid": {"time": {"divisions": 10, "seconds_per_division": 1.0, "raw_per_second": 100}},
            "plot": {"max_points_per_line": 100},
        }
    )
    store = RingStore(channel_count=2)
    for t in range(0, 5000, 2):
        store.append(Sample(timestamp=t, values=(t // 100, 100 + t % 20)))
    fig, ax = plt.subplots()
    yield LiveScope(store, config, fig=fig, ax=ax)
    plt.close(fig)


def _key(name: str) -> SimpleNamespace:
    return SimpleNamespace(key=name)


def test_update_draws_decimated_channels(scope: LiveScope) -> None:
    scope.update(0)

    assert len(scope._lines) == 2
    x, y = scope._lines[0].get_data()
    assert 0 < len(x) <= 100
    assert x[-1] == pytest.approx(0.0)
    assert np.min(x) >= -10.0
    _, y1 = scope._lines[1].get_data()
    assert np.max(np.abs(y1)) <= 2.0


def test_frozen_fit_is_drawn_with_label(scope: LiveScope) -> None:
    for key in (" ", "m", "m", "1"):
        scope.on_key(_key(key))
    scope.update(1)

    fit_x, _ = scope._fit_line.get_data()
    assert len(fit_x) > 0
    assert scope._status.get_text().startswith("k = ")
    assert scope.state.current_fit(scope.store).coefficients[1] == pytest.approx(0.01, rel=0.05)


def test_status_prompts_for_focus(scope: LiveScope) -> None:
    scope.on_key(_key(" "))
    scope.on_key(_key("m"))
    scope.update(2)
    assert "focus" in scope._status.get_text()
    assert len(scope._fit_line.get_data()[0]) == 0


def test_waiting_for_data() -> None:
    config = config_from_mapping({})
    fig, ax = plt.subplots()
    try:
        view = LiveScope(RingStore(), config, fig=fig, ax=ax)
        view.update(0)
        assert view._status.get_text() == "waiting for data"
    finally:
        plt.close(fig)


def test_unchanged_frames_are_not_redrawn(scope: LiveScope) -> None:
    scope.update(0)
    scope._lines[0].set_data([], [])
    scope.update(1)
    assert len(scope._lines[0].get_data()[0]) == 0

    scope.store.append(Sample(timestamp=5000, values=(50, 100)))
    scope.update(2)
    x, _ = scope._lines[0].get_data()
    assert len(x) > 0
    assert x[-1] == pytest.approx(0.0)
