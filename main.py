import argparse
import logging
import os
import signal
import sys
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from art_providers import build_providers
from cache_manager import CacheCurator
from config import AppDataDir, CacheDirectory, ConfigFileName, LogFileName, LogLevel, ProviderNames
from configuration_store import ConfigurationError, ConfigurationStore
from desktop import AutostartManager, WallpaperError, WallpaperSetter
from http_client import HttpClient, OperationCancelled, check_cancelled
from image_processor import ImageProcessor
from models import WallArtConfig
from provider_orchestrator import ArtProviderOrchestrator
from scheduler_service import RotationScheduler
from system_events import SystemEventMonitor


def configure_logging(verbose: bool = False) -> str:
    os.makedirs(AppDataDir, exist_ok=True)
    log_path = os.path.join(AppDataDir, LogFileName)
    level = logging.DEBUG if verbose else getattr(logging, LogLevel, logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path, encoding='utf-8'),
            logging.StreamHandler()
        ]
    )
    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return log_path


class WallArtApp:
    def __init__(
        self,
        store: Optional[ConfigurationStore] = None,
        http: Optional[HttpClient] = None,
        orchestrator: Optional[ArtProviderOrchestrator] = None,
        processor: Optional[ImageProcessor] = None,
        cache: Optional[CacheCurator] = None,
        wallpaper_setter: Optional[WallpaperSetter] = None,
        autostart: Optional[AutostartManager] = None,
        event_monitor: Optional[SystemEventMonitor] = None,
        scheduler: Optional[RotationScheduler] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self.logger.info("Initializing WallArtApp")
        self._clock = clock

        self.store = store or ConfigurationStore(os.path.join(AppDataDir, ConfigFileName))
        self.http = http or HttpClient()
        self.orchestrator = orchestrator or ArtProviderOrchestrator(
            build_providers(self.http), self.store, self.http
        )
        self.cache = cache or CacheCurator(str(CacheDirectory))
        self.processor = processor or ImageProcessor(self.store, cache_dir=self.cache.cache_dir, clock=clock)
        self.wallpaper_setter = wallpaper_setter or WallpaperSetter()
        self.autostart = autostart or AutostartManager()
        self.event_monitor = event_monitor or SystemEventMonitor()
        self.scheduler = scheduler or RotationScheduler(
            lambda: self.update_wallpaper("scheduled"),
            self._interval(self.store.current),
            event_monitor=self.event_monitor,
            clock=clock,
        )

        self._stop_event = threading.Event()
        self._state_lock = threading.Lock()
        self._started = False
        self._stopped = False
        self._paused = False
        self._update_lock = threading.Lock()
        self._cancel_lock = threading.Lock()
        self._cancel_event: Optional[threading.Event] = None

    @staticmethod
    def _interval(config: WallArtConfig) -> timedelta:
        return timedelta(minutes=config.update_interval_minutes)

    def start(self) -> None:
        self.logger.info("Starting WallArt")
        if self.store.load_warning:
            self.logger.warning("Settings were reset: %s", self.store.load_warning)

        config = self.store.current
        self._apply_autostart(config.autostart_enabled)
        with self._state_lock:
            self._started = True
            paused = self._paused
        if paused:
            self.logger.info("Background fetching is paused; no rotation until resumed")
        else:
            if self.is_rotation_due(config):
                self.update_wallpaper("startup")
            else:
                self.logger.info("Last rotation at %s is recent; keeping current wallpaper", config.last_update_time)
            self.scheduler.start()
        self._run_loop()

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        with self._state_lock:
            if self._paused:
                return
            self._paused = True
        self.scheduler.stop()
        self.logger.info("Background fetching paused.")

    def resume(self) -> None:
        with self._state_lock:
            if not self._paused:
                return
            self._paused = False
            restart = self._started and not self._stopped
        if restart:
            self.scheduler.start()
        self.logger.info("Background fetching resumed.")

    def toggle_pause(self) -> bool:
        """Flip between paused and running. Returns the new paused state."""
        if self._paused:
            self.resume()
        else:
            self.pause()
        return self._paused

    def stop(self) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
        self._stop_event.set()
        with self._cancel_lock:
            if self._cancel_event is not None:
                self._cancel_event.set()
        self.scheduler.dispose()
        self.event_monitor.stop()
        self.http.close()
        self.logger.info("WallArt stopped")

    def _install_signal_handlers(self) -> None:
        # signal.signal only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in (signal.SIGINT, signal.SIGTERM):
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum, frame) -> None:
        self.logger.info("Received signal %s, shutting down", signum)
        self._stop_event.set()

    def _run_loop(self) -> None:
        self._install_signal_handlers()
        try:
            self._stop_event.wait()
        except KeyboardInterrupt:
            self.logger.info("Interrupted, shutting down")
        finally:
            self.stop()

    def is_rotation_due(self, config: Optional[WallArtConfig] = None) -> bool:
        config = config or self.store.current
        last = config.last_update_time
        if last is None:
            return True
        if last.tzinfo is not None:
            last = last.astimezone().replace(tzinfo=None)
        return self._clock() - last >= self._interval(config)

    def update_wallpaper(self, trigger: str = "scheduled") -> bool:
        """Fetch, render and apply one artwork. Returns True when a new artwork was applied."""
        # a newer request supersedes whatever is still running
        with self._cancel_lock:
            if self._cancel_event is not None:
                self._cancel_event.set()
            cancel_event = threading.Event()
            self._cancel_event = cancel_event

        with self._update_lock:
            self.logger.info("Changing wallpaper (trigger: %s)", trigger)
            try:
                check_cancelled(cancel_event)
                artwork, image_bytes = self.orchestrator.fetch_next(cancel_event)
                if artwork is None or image_bytes is None:
                    self.logger.warning("No new artwork available, falling back to cache")
                    self.apply_fallback()
                    return False

                path = self.processor.process(image_bytes, artwork, cancel_event)
                check_cancelled(cancel_event)
                self.wallpaper_setter.set_wallpaper(path)
                self.store.update(lambda config: config.record_rotation(artwork, self._clock()))
                self.logger.info("Wallpaper updated: %s by %s (%s)", artwork.title, artwork.artist,
                                 artwork.provider_name)

                self.cache.enforce_bound(self.store.current.cache_bounds)
                return True
            except OperationCancelled:
                self.logger.info("Wallpaper update (%s) cancelled by a newer request", trigger)
                return False
            except Exception as error:
                self.logger.error("Wallpaper update failed: %s", error)
                self.apply_fallback()
                return False

    def apply_fallback(self) -> bool:
        path = self.cache.latest_fallback()
        if not path:
            self.logger.warning("No cached wallpaper available for fallback")
            return False
        try:
            self.wallpaper_setter.set_wallpaper(path)
        except WallpaperError as error:
            self.logger.error("Fallback wallpaper could not be applied: %s", error)
            return False
        self.logger.info("Fallback wallpaper applied: %s", os.path.basename(path))
        return True

    def force_update(self) -> bool:
        self.scheduler.manual_trigger()
        return self.update_wallpaper("manual")

    def skip_current(self) -> bool:
        active = self.store.current.active_artwork
        if active is not None:
            self.store.update(lambda config: config.blacklist(active.id))
            self.logger.info("Blacklisted artwork %s (%s)", active.id, active.title)
        return self.force_update()

    def set_update_interval(self, minutes: int) -> None:
        def apply(config: WallArtConfig) -> None:
            config.update_interval_minutes = minutes

        config = self.store.update(apply)
        if config.update_interval_minutes != minutes:
            self.logger.warning("Interval %s is not supported, using %s minutes",
                                minutes, config.update_interval_minutes)
        self.scheduler.update_interval(self._interval(config))

    def set_provider_enabled(self, name: str, enabled: bool) -> None:
        if name not in ProviderNames:
            raise ValueError(f"Unknown provider '{name}'. Use one of: {', '.join(ProviderNames)}.")

        def apply(config: WallArtConfig) -> None:
            config.provider_toggles[name] = bool(enabled)

        self.store.update(apply)

    def set_style(self, dimming: Optional[float] = None, blur: Optional[float] = None,
                  position: Optional[str] = None, scale: Optional[float] = None) -> WallArtConfig:
        def apply(config: WallArtConfig) -> None:
            if dimming is not None:
                config.background_dimming = dimming
            if blur is not None:
                config.background_blur = blur
            if position is not None:
                config.typography_position = position
            if scale is not None:
                config.typography_scale = scale

        return self.store.update(apply)

    def set_autostart(self, enabled: bool) -> None:
        def apply(config: WallArtConfig) -> None:
            config.autostart_enabled = bool(enabled)

        self.store.update(apply)
        self._apply_autostart(enabled)

    def _apply_autostart(self, enabled: bool) -> None:
        try:
            self.autostart.set_enabled(enabled)
        except OSError as error:
            self.logger.error("Could not update autostart registration: %s", error)

    def clear_cache(self) -> int:
        return self.cache.clear_all()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Rotate public-domain museum paintings as the desktop wallpaper.")
    parser.add_argument("--once", action="store_true", help="rotate once and exit")
    parser.add_argument("--skip", action="store_true", help="blacklist the current artwork, rotate and exit")
    parser.add_argument("--clear-cache", action="store_true", help="delete cached wallpapers")
    parser.add_argument("--autostart", action="store_true", help="launched at login")
    parser.add_argument("--verbose", action="store_true", help="debug logging")
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    logger = logging.getLogger(__name__)
    if args.autostart:
        logger.info("Launched from autostart")

    try:
        app = WallArtApp()
    except ConfigurationError as error:
        logger.error("%s", error)
        return 1

    if args.clear_cache:
        app.clear_cache()
        if not (args.once or args.skip):
            return 0
    if args.skip:
        return 0 if app.skip_current() else 1
    if args.once:
        return 0 if app.update_wallpaper("manual") else 1

    app.start()
    return 0


if __name__ == "__main__":
    sys.exit(main())
