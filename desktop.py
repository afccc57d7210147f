"""
Desktop integration: applying the wallpaper and registering the app to start at login.
"""

import ctypes
import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import platformdirs

logger = logging.getLogger(__name__)

SPI_SETDESKWALLPAPER = 20
SPIF_UPDATEINIFILE = 0x01
SPIF_SENDWININICHANGE = 0x02
COMMAND_TIMEOUT = 15

RUN_KEY_PATH = r"Software\Microsoft\Windows\CurrentVersion\Run"
RUN_VALUE_NAME = "WallArt"
DESKTOP_ENTRY_NAME = "wallart.desktop"


class WallpaperError(RuntimeError):
    """No mechanism on this platform managed to apply the wallpaper"""


def _run_command(cmd: Sequence[str]) -> None:
    if not shutil.which(cmd[0]):
        raise WallpaperError(f"{cmd[0]} is not available")
    proc = subprocess.run(list(cmd), check=False, capture_output=True, text=True, timeout=COMMAND_TIMEOUT)
    if proc.returncode != 0:
        raise WallpaperError(f"{cmd[0]} exited with {proc.returncode}: {proc.stderr.strip()[:200]}")


class WallpaperSetter:
    def __init__(self, platform: str = sys.platform,
                 runner: Callable[[Sequence[str]], None] = _run_command):
        self.platform = platform
        self._run = runner

    def _strategies(self) -> List[Tuple[str, Callable[[str], None]]]:
        if self.platform.startswith("win"):
            return [
                ("IDesktopWallpaper", self._apply_desktop_wallpaper),
                ("SystemParametersInfo", self._apply_spi),
                ("registry", self._apply_registry),
            ]
        if self.platform == "darwin":
            return [("osascript", self._apply_osascript)]
        return [("gsettings", self._apply_gsettings), ("feh", self._apply_feh)]

    def set_wallpaper(self, image_path: str) -> None:
        path = os.path.abspath(image_path)
        if not os.path.isfile(path):
            raise WallpaperError(f"Wallpaper file does not exist: {path}")

        errors = []
        for name, apply in self._strategies():
            try:
                apply(path)
                logger.info("Wallpaper applied via %s: %s", name, os.path.basename(path))
                return
            except (OSError, subprocess.SubprocessError, WallpaperError) as error:
                logger.warning("Setting wallpaper via %s failed: %s", name, error)
                errors.append(f"{name}: {error}")
        raise WallpaperError("Could not set wallpaper (" + "; ".join(errors) + ")")

    def _apply_desktop_wallpaper(self, path: str) -> None:
        """Set the image on every monitor through the shell's IDesktopWallpaper COM object"""
        from win_wallpaper import DesktopWallpaperController

        controller = DesktopWallpaperController()
        try:
            monitor_ids = controller.monitor_ids()
            if not monitor_ids:
                raise WallpaperError("IDesktopWallpaper reported no monitors")
            for monitor_id in monitor_ids:
                controller.set_wallpaper(monitor_id, path)
        finally:
            controller.close()

    def _apply_spi(self, path: str) -> None:
        result = ctypes.windll.user32.SystemParametersInfoW(  # type: ignore[attr-defined]
            SPI_SETDESKWALLPAPER, 0, path, SPIF_UPDATEINIFILE | SPIF_SENDWININICHANGE
        )
        if not result:
            raise ctypes.WinError()  # type: ignore[attr-defined]

    def _apply_registry(self, path: str) -> None:
        import winreg

        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, r"Control Panel\Desktop", 0, winreg.KEY_SET_VALUE) as key:
            winreg.SetValueEx(key, "Wallpaper", 0, winreg.REG_SZ, path)
        self._run(["RUNDLL32.EXE", "user32.dll,UpdatePerUserSystemParameters", "1", "True"])

    def _apply_gsettings(self, path: str) -> None:
        uri = Path(path).as_uri()
        self._run(["gsettings", "set", "org.gnome.desktop.background", "picture-uri", uri])
        self._run(["gsettings", "set", "org.gnome.desktop.background", "picture-uri-dark", uri])

    def _apply_feh(self, path: str) -> None:
        self._run(["feh", "--bg-fill", path])

    def _apply_osascript(self, path: str) -> None:
        escaped = path.replace("\\", "\\\\").replace('"', '\\"')
        script = f'tell application "System Events" to tell every desktop to set picture to "{escaped}"'
        self._run(["osascript", "-e", script])


def launch_command() -> str:
    """Command line used to start the app at login"""
    script = os.path.abspath(sys.argv[0] or "main.py")
    if script.endswith(".py"):
        return f'"{sys.executable}" "{script}" --autostart'
    return f'"{script}" --autostart'


class AutostartManager:
    def __init__(self, platform: str = sys.platform, autostart_dir: Optional[str] = None,
                 command: Optional[str] = None):
        self.platform = platform
        self.autostart_dir = autostart_dir or os.path.join(platformdirs.user_config_dir(), "autostart")
        self.command = command or launch_command()

    @property
    def desktop_entry_path(self) -> str:
        return os.path.join(self.autostart_dir, DESKTOP_ENTRY_NAME)

    def set_enabled(self, enabled: bool) -> None:
        if self.platform.startswith("win"):
            self._set_run_key(enabled)
        elif self.platform.startswith("linux"):
            self._set_desktop_entry(enabled)
        else:
            logger.info("Autostart is not supported on %s; skipping.", self.platform)
            return
        logger.info("Autostart %s", "enabled" if enabled else "disabled")

    def _set_run_key(self, enabled: bool) -> None:
        import winreg

        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, RUN_KEY_PATH, 0, winreg.KEY_SET_VALUE) as key:
            if enabled:
                winreg.SetValueEx(key, RUN_VALUE_NAME, 0, winreg.REG_SZ, self.command)
            else:
                try:
                    winreg.DeleteValue(key, RUN_VALUE_NAME)
                except FileNotFoundError:
                    pass

    def _set_desktop_entry(self, enabled: bool) -> None:
        path = self.desktop_entry_path
        if not enabled:
            if os.path.exists(path):
                os.remove(path)
            return
        os.makedirs(self.autostart_dir, exist_ok=True)
        entry = "\n".join([
            "[Desktop Entry]",
            "Type=Application",
            "Name=WallArt",
            "Comment=Rotates museum artworks as the desktop wallpaper",
            f"Exec={self.command}",
            "X-GNOME-Autostart-enabled=true",
            "",
        ])
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(entry)
