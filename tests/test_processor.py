import threading

import numpy as np
import pytest

from cinegrade.pipeline.processor import PreviewRenderer
from cinegrade.pipeline.request import EditState
from conftest import make_gradient

SOURCE = np.zeros((4, 4, 4), dtype=np.float32)


def gated_render(gate, calls):
    def render(source, edit_state):
        calls.append(edit_state.exposure)
        gate.wait(5)
        return np.full((2, 2, 4), edit_state.exposure, dtype=np.float32)
    return render


@pytest.fixture
def renderer_factory(qapp):
    created = []

    def factory(**kwargs):
        renderer = PreviewRenderer(**kwargs)
        created.append(renderer)
        return renderer

    yield factory
    for renderer in created:
        renderer.shutdown()


def test_rapid_edits_render_first_and_last(renderer_factory):
    gate, calls, published = threading.Event(), [], []
    renderer = renderer_factory(render_func=gated_render(gate, calls))
    renderer.preview_ready.connect(lambda image, request_id: published.append(float(image[0, 0, 0])))

    for exposure in (0.1, 0.2, 0.3, 0.4, 0.5):
        renderer.submit(SOURCE, EditState(exposure=exposure))
    assert not renderer.is_idle

    gate.set()
    assert renderer.wait_until_idle()
    assert calls == [0.1, 0.5]
    assert published[-1] == pytest.approx(0.5)
    assert renderer.preview[0, 0, 0] == pytest.approx(0.5)


def test_invalidate_during_render_drops_result(renderer_factory):
    gate, calls, published = threading.Event(), [], []
    renderer = renderer_factory(render_func=gated_render(gate, calls))
    renderer.preview_ready.connect(lambda image, request_id: published.append(request_id))

    renderer.submit(SOURCE, EditState(exposure=0.3))
    renderer.invalidate()
    gate.set()

    assert renderer.wait_until_idle()
    assert published == []
    assert renderer.preview is None


def test_failing_render_does_not_stall_the_queue(renderer_factory):
    def render(source, edit_state):
        if edit_state.exposure < 0:
            raise RuntimeError("render failed")
        return np.ones((2, 2, 4), dtype=np.float32)

    renderer = renderer_factory(render_func=render)
    renderer.submit(SOURCE, EditState(exposure=-1.0))
    renderer.submit(SOURCE, EditState(exposure=1.0))

    assert renderer.wait_until_idle()
    assert renderer.preview is not None
    assert renderer.state.preview_request_id == 2


def test_default_render_produces_display_buffer(renderer_factory):
    renderer = renderer_factory()
    renderer.submit(make_gradient(), EditState())

    assert renderer.wait_until_idle(timeout=60.0)
    preview = renderer.preview
    assert preview.shape == (48, 64, 4)
    assert preview.min() >= 0.0 and preview.max() <= 1.0
