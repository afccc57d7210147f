import os
import signal
import threading
import time
from datetime import datetime, timedelta

import pytest

from cache_manager import CacheCurator
from conftest import FakeClock, make_artwork
from http_client import OperationCancelled
from image_processor import ImageProcessingError
from main import WallArtApp

NOW = datetime(2024, 6, 1, 8, 0, 0)


class DummyOrchestrator:
    def __init__(self, results=None) -> None:
        self.results = list(results or [])
        self.calls = 0

    def fetch_next(self, cancel_event=None):
        self.calls += 1
        result = self.results.pop(0) if self.results else (None, None)
        if isinstance(result, Exception):
            raise result
        return result


class DummyProcessor:
    def __init__(self, cache_dir, error=None) -> None:
        self.cache_dir = cache_dir
        self.error = error
        self.count = 0

    def process(self, image_bytes, metadata, cancel_event=None):
        if self.error:
            raise self.error
        self.count += 1
        path = os.path.join(self.cache_dir, f"{self.count:03d}_{metadata.id}.jpg")
        with open(path, "wb") as handle:
            handle.write(image_bytes)
        return path


class DummySetter:
    def __init__(self) -> None:
        self.applied = []

    def set_wallpaper(self, path) -> None:
        self.applied.append(path)


class DummyAutostart:
    def __init__(self) -> None:
        self.states = []

    def set_enabled(self, enabled) -> None:
        self.states.append(enabled)


class DummyMonitor:
    def subscribe(self, event, callback) -> None:
        pass

    def unsubscribe(self, event, callback) -> None:
        pass

    def stop(self) -> None:
        pass


class DummyHttp:
    def close(self) -> None:
        pass


def make_app(store, tmp_path, results=None, processor_error=None):
    cache = CacheCurator(str(tmp_path / "cache"))
    app = WallArtApp(
        store=store,
        http=DummyHttp(),
        orchestrator=DummyOrchestrator(results),
        processor=DummyProcessor(cache.cache_dir, processor_error),
        cache=cache,
        wallpaper_setter=DummySetter(),
        autostart=DummyAutostart(),
        event_monitor=DummyMonitor(),
        clock=FakeClock(NOW),
    )
    return app


def seed_cache(app, name="20240101_000000_old.jpg"):
    path = os.path.join(app.cache.cache_dir, name)
    with open(path, "wb") as handle:
        handle.write(b"old")
    return path


def test_successful_update_records_rotation(store, tmp_path) -> None:
    artwork = make_artwork("seurat")
    app = make_app(store, tmp_path, [(artwork, b"bytes")])

    assert app.update_wallpaper("manual") is True
    config = store.current
    assert config.active_artwork == artwork
    assert config.history == [artwork]
    assert config.last_update_time == NOW
    assert app.wallpaper_setter.applied[0].endswith("001_seurat.jpg")


def test_fallback_when_no_artwork_available(store, tmp_path) -> None:
    app = make_app(store, tmp_path, [(None, None)])
    old = seed_cache(app)

    assert app.update_wallpaper() is False
    assert app.wallpaper_setter.applied == [old]
    assert store.current.history == []


def test_fallback_when_processing_fails(store, tmp_path) -> None:
    app = make_app(store, tmp_path, [(make_artwork(), b"junk")],
                   processor_error=ImageProcessingError("bad image"))
    old = seed_cache(app)

    assert app.update_wallpaper() is False
    assert app.wallpaper_setter.applied == [old]


def test_no_fallback_without_cache(store, tmp_path) -> None:
    app = make_app(store, tmp_path, [(None, None)])
    assert app.update_wallpaper() is False
    assert app.wallpaper_setter.applied == []


def test_cancelled_update_keeps_wallpaper(store, tmp_path) -> None:
    app = make_app(store, tmp_path, [OperationCancelled("superseded")])
    seed_cache(app)

    assert app.update_wallpaper() is False
    assert app.wallpaper_setter.applied == []


def test_history_keeps_twenty_newest(store, tmp_path) -> None:
    artworks = [make_artwork(f"art{i}") for i in range(25)]
    app = make_app(store, tmp_path, [(artwork, b"x") for artwork in artworks])

    for _ in artworks:
        app.update_wallpaper()

    history = store.current.history
    assert len(history) == 20
    assert history[0].id == "art24"
    assert history[-1].id == "art5"


def test_cache_bound_applied_after_rotation(store, tmp_path) -> None:
    store.update(lambda config: setattr(config, "cache_bounds", 2))
    app = make_app(store, tmp_path, [(make_artwork(f"a{i}"), b"x") for i in range(4)])

    for _ in range(4):
        app.update_wallpaper()

    names = [os.path.basename(path) for path in app.cache.list_images()]
    assert names == ["003_a2.jpg", "004_a3.jpg"]


def test_skip_blacklists_active_artwork(store, tmp_path) -> None:
    current = make_artwork("boring")
    store.update(lambda config: config.record_rotation(current, NOW - timedelta(minutes=5)))
    app = make_app(store, tmp_path, [(make_artwork("fresh"), b"x")])

    assert app.skip_current() is True
    config = store.current
    assert "boring" in config.blacklisted_artwork_ids
    assert config.active_artwork.id == "fresh"
    assert app.scheduler.next_run_time == NOW + timedelta(minutes=60)


def test_rotation_due(store, tmp_path) -> None:
    app = make_app(store, tmp_path)
    assert app.is_rotation_due() is True

    store.update(lambda config: setattr(config, "last_update_time", NOW - timedelta(minutes=10)))
    assert app.is_rotation_due() is False

    store.update(lambda config: setattr(config, "last_update_time", NOW - timedelta(minutes=61)))
    assert app.is_rotation_due() is True


def test_set_update_interval(store, tmp_path) -> None:
    app = make_app(store, tmp_path)

    app.set_update_interval(1440)
    assert store.current.update_interval_minutes == 1440
    assert app.scheduler.interval == timedelta(minutes=1440)

    app.set_update_interval(7)
    assert store.current.update_interval_minutes == 60
    assert app.scheduler.interval == timedelta(minutes=60)


def test_settings_commands(store, tmp_path) -> None:
    app = make_app(store, tmp_path)

    app.set_provider_enabled("Cleveland Museum of Art", False)
    assert store.current.is_provider_enabled("Cleveland Museum of Art") is False
    with pytest.raises(ValueError):
        app.set_provider_enabled("Louvre", True)

    config = app.set_style(dimming=0.4, position="BottomLeft", scale=9)
    assert (config.background_dimming, config.typography_position, config.typography_scale) == (0.4, "BottomLeft", 5.0)

    app.set_autostart(False)
    assert store.current.autostart_enabled is False
    assert app.autostart.states == [False]


def test_clear_cache(store, tmp_path) -> None:
    app = make_app(store, tmp_path)
    seed_cache(app, "a.jpg")
    seed_cache(app, "b.png")
    assert app.clear_cache() == 2


def wait_until(predicate, timeout=5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def start_in_background(app):
    runner = threading.Thread(target=app.start, daemon=True)
    runner.start()
    return runner


def test_pause_stops_scheduler_and_resume_restarts_it(store, tmp_path) -> None:
    store.update(lambda config: setattr(config, "last_update_time", NOW))
    app = make_app(store, tmp_path)
    runner = start_in_background(app)
    try:
        assert wait_until(lambda: app.scheduler.running)

        assert app.toggle_pause() is True
        assert app.paused is True
        assert app.scheduler.running is False

        assert app.toggle_pause() is False
        assert app.scheduler.running is True
    finally:
        app.stop()
        runner.join(timeout=5)
    assert not runner.is_alive()


def test_start_while_paused_skips_rotation_until_resumed(store, tmp_path) -> None:
    app = make_app(store, tmp_path, [(make_artwork("late"), b"x")])
    app.pause()
    runner = start_in_background(app)
    try:
        assert wait_until(lambda: app._started)
        assert app.orchestrator.calls == 0
        assert app.scheduler.running is False

        app.resume()
        assert app.scheduler.running is True
    finally:
        app.stop()
        runner.join(timeout=5)


def test_resume_after_stop_does_not_restart_scheduler(store, tmp_path) -> None:
    app = make_app(store, tmp_path)
    app.pause()
    app.stop()
    app.resume()
    assert app.paused is False
    assert app.scheduler.running is False


def test_termination_signal_ends_run_loop(store, tmp_path) -> None:
    store.update(lambda config: setattr(config, "last_update_time", NOW))
    app = make_app(store, tmp_path)
    runner = start_in_background(app)
    assert wait_until(lambda: app.scheduler.running)

    app._handle_signal(signal.SIGTERM, None)
    runner.join(timeout=5)

    assert not runner.is_alive()
    assert app.scheduler.running is False


def test_signal_handlers_installed_from_main_thread(store, tmp_path, monkeypatch) -> None:
    installed = {}
    monkeypatch.setattr(signal, "signal", lambda signum, handler: installed.setdefault(signum, handler))
    app = make_app(store, tmp_path)

    app._install_signal_handlers()
    assert installed[signal.SIGTERM] == app._handle_signal
    assert installed[signal.SIGINT] == app._handle_signal

    installed.clear()
    worker = threading.Thread(target=app._install_signal_handlers)
    worker.start()
    worker.join()
    assert installed == {}
