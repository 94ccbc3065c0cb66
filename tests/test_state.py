import numpy as np

from cinegrade.pipeline.request import EditState
from cinegrade.pipeline.state import (
    EditSubmitted, Invalidated, Phase, PreviewCleared, PreviewPublished,
    RenderFinished, SchedulerState, StaleDiscarded, StartRender, transition,
)

SOURCE = np.zeros((4, 4, 4), dtype=np.float32)


def run(state, event):
    return transition(state, event)


def edit(exposure):
    return EditSubmitted(SOURCE, EditState(exposure=exposure))


def image(value):
    return np.full((2, 2, 4), value, dtype=np.float32)


def test_first_edit_starts_a_render():
    state, effects = run(SchedulerState(), edit(0.1))
    assert state.phase is Phase.RENDERING
    assert state.pending is None
    assert len(effects) == 1 and isinstance(effects[0], StartRender)
    assert effects[0].request.edit_state.exposure == 0.1
    assert state.in_flight is effects[0].request


def test_rapid_edits_coalesce_into_latest():
    state, effects = run(SchedulerState(), edit(0.1))
    first = effects[0].request
    started = [first]

    for exposure in (0.2, 0.3, 0.4, 0.5):
        state, effects = run(state, edit(exposure))
        assert effects == []
    assert state.pending.edit_state.exposure == 0.5

    state, effects = run(state, RenderFinished(first, image(0.1)))
    assert isinstance(effects[0], PreviewPublished)
    assert isinstance(effects[1], StartRender)
    started.append(effects[1].request)

    state, effects = run(state, RenderFinished(started[-1], image(0.5)))
    assert [type(e) for e in effects] == [PreviewPublished]
    assert state.phase is Phase.IDLE
    assert state.preview_request_id == started[-1].request_id

    # Only the first and the last edit were ever rendered
    assert [r.edit_state.exposure for r in started] == [0.1, 0.5]


def test_request_ids_increase():
    state, effects = run(SchedulerState(), edit(0.1))
    first = effects[0].request
    state, _ = run(state, edit(0.2))
    assert state.pending.request_id > first.request_id


def test_invalidate_mid_render_discards_result():
    state, effects = run(SchedulerState(), edit(0.1))
    in_flight = effects[0].request
    state, _ = run(state, edit(0.2))

    state, effects = run(state, Invalidated())
    assert state.pending is None
    assert state.phase is Phase.RENDERING
    assert state.generation == in_flight.generation + 1

    state, effects = run(state, RenderFinished(in_flight, image(0.1)))
    assert [type(e) for e in effects] == [StaleDiscarded]
    assert state.preview is None
    assert state.phase is Phase.IDLE


def test_edit_after_invalidate_publishes_new_generation():
    state, effects = run(SchedulerState(), edit(0.1))
    stale = effects[0].request
    state, _ = run(state, Invalidated())
    state, effects = run(state, edit(0.7))
    assert effects == []  # still waiting for the stale render

    state, effects = run(state, RenderFinished(stale, image(0.1)))
    assert isinstance(effects[0], StaleDiscarded)
    fresh = effects[1].request
    assert fresh.generation == state.generation

    state, effects = run(state, RenderFinished(fresh, image(0.7)))
    assert isinstance(effects[0], PreviewPublished)
    assert effects[0].request.edit_state.exposure == 0.7


def test_invalidate_clears_published_preview():
    state, effects = run(SchedulerState(), edit(0.1))
    state, _ = run(state, RenderFinished(effects[0].request, image(0.1)))
    assert state.preview is not None

    kept, effects = run(state, Invalidated(clear_preview=False))
    assert effects == [] and kept.preview is not None

    cleared, effects = run(state, Invalidated())
    assert [type(e) for e in effects] == [PreviewCleared]
    assert cleared.preview is None


def test_failed_render_publishes_nothing_and_keeps_draining():
    state, effects = run(SchedulerState(), edit(0.1))
    first = effects[0].request
    state, _ = run(state, edit(0.2))

    state, effects = run(state, RenderFinished(first, None))
    assert [type(e) for e in effects] == [StartRender]
    assert state.preview is None


def test_unknown_completion_is_ignored():
    state, effects = run(SchedulerState(), edit(0.1))
    in_flight = effects[0].request
    state, _ = run(state, RenderFinished(in_flight, image(0.1)))

    again, effects = run(state, RenderFinished(in_flight, image(0.9)))
    assert effects == []
    assert again is state
