import numpy as np
import pytest

from cinegrade import file_io, utils
from cinegrade.pipeline.cache_manager import CachedImage, ImageCacheManager
from cinegrade.pipeline.export import ExportRenderer
from cinegrade.pipeline.request import EditState, SourceAsset
from cinegrade.workers.export_worker import ExportWorker
from conftest import make_flat, make_gradient


@pytest.fixture
def developed(monkeypatch):
    """Replace raw development with a flat buffer and count the calls."""
    calls = []

    def fake_develop(payload, half_size=False):
        calls.append(payload)
        return make_flat(30, 40, 0.6)

    monkeypatch.setattr(file_io, "develop_raw", fake_develop)
    return calls


def test_full_res_preferred_over_preview():
    asset = SourceAsset(preview=make_flat(6, 8), full_res=make_flat(30, 40))
    result = ExportRenderer().render(asset, EditState(apply_preset=False))
    assert result.ok
    assert result.source == "full"
    assert result.image.shape == (30, 40, 4)


def test_preview_used_when_no_full_res():
    asset = SourceAsset(preview=make_flat(6, 8))
    result = ExportRenderer().render(asset, EditState())
    assert result.source == "preview"
    assert result.image.shape == (6, 8, 4)


def test_nothing_to_export():
    result = ExportRenderer().render(SourceAsset(), EditState())
    assert not result.ok
    assert result.source == "none"
    assert not ExportRenderer().render(None, EditState()).ok


def test_raw_preferred_and_developed_once(developed):
    asset = SourceAsset(preview=make_flat(6, 8), full_res=make_flat(12, 16), raw_payload=b"sensor")
    renderer = ExportRenderer()

    first = renderer.render(asset, EditState(apply_preset=False))
    second = renderer.render(asset, EditState(exposure=0.5, apply_preset=False))
    assert first.source == second.source == "raw"
    assert first.image.shape == (30, 40, 4)
    assert developed == [b"sensor"]


def test_raw_skipped_when_disabled(developed):
    asset = SourceAsset(full_res=make_flat(12, 16), raw_payload=b"sensor")
    result = ExportRenderer().render(asset, EditState(), export_from_raw=False)
    assert result.source == "full"
    assert developed == []


def test_failed_raw_development_falls_back_to_full(monkeypatch):
    def broken(payload, half_size=False):
        raise OSError("not a raw file")

    monkeypatch.setattr(file_io, "develop_raw", broken)
    asset = SourceAsset(full_res=make_flat(12, 16), raw_payload=b"junk")
    assert ExportRenderer().render(asset, EditState()).source == "full"


def _raising_render(img, state):
    raise RuntimeError("graph failed")


@pytest.mark.parametrize("render_func", [
    _raising_render,
    lambda img, state: np.zeros((0, 0, 4), dtype=np.float32),
    lambda img, state: None,
])
def test_graph_failure_exports_ungraded_full_res(render_func):
    full = make_gradient(12, 16)
    asset = SourceAsset(preview=make_flat(6, 8), full_res=full)
    result = ExportRenderer(render_func=render_func).render(asset, EditState())
    assert result.source == "fallback"
    np.testing.assert_array_equal(result.image, utils.rasterize(full))


def test_export_output_is_clipped():
    asset = SourceAsset(full_res=make_flat(4, 4, 0.9))
    result = ExportRenderer().render(asset, EditState(apply_preset=False, exposure=2.0))
    assert result.image.max() <= 1.0


def test_cache_evicts_least_recently_used():
    cache = ImageCacheManager(max_items=2)
    for key in ("a", "b", "c"):
        cache.put(key, CachedImage(key, np.zeros((2, 2, 4), dtype=np.float32)))
    assert "a" not in cache
    assert len(cache) == 2

    cache.get("b")
    cache.put("d", CachedImage("d", np.zeros((2, 2, 4), dtype=np.float32)))
    assert "b" in cache and "c" not in cache


def test_cache_memory_limit_keeps_newest():
    cache = ImageCacheManager(max_items=10, max_memory_mb=1)
    big = np.zeros((512, 512, 4), dtype=np.float32)  # 4 MB
    cache.put("a", CachedImage("a", big))
    cache.put("b", CachedImage("b", big))
    assert "b" in cache and "a" not in cache

    cache.discard("b")
    assert len(cache) == 0
    assert cache.current_memory_mb == pytest.approx(0.0)


def test_cache_replacing_an_entry_counts_memory_once():
    cache = ImageCacheManager()
    buffer = np.zeros((256, 256, 4), dtype=np.float32)  # 1 MB
    cache.put("a", CachedImage("a", buffer))
    cache.put("a", CachedImage("a", buffer))
    assert len(cache) == 1
    assert cache.current_memory_mb == pytest.approx(1.0)


def test_export_worker_emits_result(qapp):
    asset = SourceAsset(full_res=make_flat(12, 16))
    worker = ExportWorker(ExportRenderer(), asset, EditState())
    results = []
    worker.signals.finished.connect(results.append)

    # Run worker directly
    worker.run()

    assert len(results) == 1
    assert results[0].ok and results[0].source == "full"
