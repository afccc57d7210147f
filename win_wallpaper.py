"""
Windows shell IDesktopWallpaper access through ctypes.

Windows only: the COM prototypes below need ctypes.WINFUNCTYPE, so desktop.py
imports this module lazily from its Windows code path.
"""

import ctypes
import uuid
from typing import List

CLSID_DESKTOP_WALLPAPER = uuid.UUID("{C2CF3110-460E-4FC1-B9D0-8A1C0C9CC4BD}")
IID_IDESKTOP_WALLPAPER = uuid.UUID("{B92B56A9-8B55-4E14-9A89-0199BBB6F93B}")
CLSCTX_ALL = 23
COINIT_APARTMENTTHREADED = 0x2


class GUID(ctypes.Structure):
    _fields_ = [
        ("Data1", ctypes.c_ulong),
        ("Data2", ctypes.c_ushort),
        ("Data3", ctypes.c_ushort),
        ("Data4", ctypes.c_ubyte * 8),
    ]

    @classmethod
    def from_uuid(cls, value: uuid.UUID) -> "GUID":
        raw = value.bytes_le
        data4 = (ctypes.c_ubyte * 8).from_buffer_copy(raw[8:])
        return cls(
            ctypes.c_ulong(int.from_bytes(raw[0:4], "little")),
            ctypes.c_ushort(int.from_bytes(raw[4:6], "little")),
            ctypes.c_ushort(int.from_bytes(raw[6:8], "little")),
            data4,
        )


HRESULT = ctypes.c_long
LPVOID = ctypes.c_void_p
LPWSTR = ctypes.c_wchar_p
UINT = ctypes.c_uint

QueryInterfaceProto = ctypes.WINFUNCTYPE(HRESULT, LPVOID, ctypes.POINTER(GUID), ctypes.POINTER(LPVOID))
AddRefProto = ctypes.WINFUNCTYPE(ctypes.c_ulong, LPVOID)
ReleaseProto = ctypes.WINFUNCTYPE(ctypes.c_ulong, LPVOID)
SetWallpaperProto = ctypes.WINFUNCTYPE(HRESULT, LPVOID, LPWSTR, LPWSTR)
GetMonitorDevicePathAtProto = ctypes.WINFUNCTYPE(HRESULT, LPVOID, UINT, ctypes.POINTER(LPWSTR))
GetMonitorDevicePathCountProto = ctypes.WINFUNCTYPE(HRESULT, LPVOID, ctypes.POINTER(UINT))


class IDesktopWallpaperVtbl(ctypes.Structure):
    # slot order must match the interface; unused slots are plain pointers
    _fields_ = [
        ("QueryInterface", QueryInterfaceProto),
        ("AddRef", AddRefProto),
        ("Release", ReleaseProto),
        ("SetWallpaper", SetWallpaperProto),
        ("GetWallpaper", LPVOID),
        ("GetMonitorDevicePathAt", GetMonitorDevicePathAtProto),
        ("GetMonitorDevicePathCount", GetMonitorDevicePathCountProto),
        ("GetMonitorRECT", LPVOID),
        ("SetBackgroundColor", LPVOID),
        ("GetBackgroundColor", LPVOID),
        ("SetPosition", LPVOID),
        ("GetPosition", LPVOID),
        ("SetSlideshow", LPVOID),
        ("GetSlideshow", LPVOID),
        ("SetSlideshowOptions", LPVOID),
        ("GetSlideshowOptions", LPVOID),
        ("AdvanceSlideshow", LPVOID),
        ("GetStatus", LPVOID),
        ("Enable", LPVOID),
    ]


class IDesktopWallpaper(ctypes.Structure):
    _fields_ = [("lpVtbl", ctypes.POINTER(IDesktopWallpaperVtbl))]


class DesktopWallpaperController:
    """One COM session on the calling thread. Always close() it."""

    def __init__(self) -> None:
        self._iface = None
        self._ole32 = ctypes.OleDLL("ole32")
        hr = self._ole32.CoInitializeEx(None, COINIT_APARTMENTTHREADED)
        if hr not in (0, 1):
            raise ctypes.WinError(hr)

        self._ole32.CoCreateInstance.argtypes = [
            ctypes.POINTER(GUID),
            LPVOID,
            ctypes.c_ulong,
            ctypes.POINTER(GUID),
            ctypes.POINTER(LPVOID),
        ]
        self._ole32.CoCreateInstance.restype = HRESULT
        self._ole32.CoTaskMemFree.argtypes = [LPVOID]
        self._ole32.CoTaskMemFree.restype = None

        clsid_guid = GUID.from_uuid(CLSID_DESKTOP_WALLPAPER)
        iid_guid = GUID.from_uuid(IID_IDESKTOP_WALLPAPER)
        iface_ptr = LPVOID()

        hr = self._ole32.CoCreateInstance(
            ctypes.byref(clsid_guid),
            None,
            CLSCTX_ALL,
            ctypes.byref(iid_guid),
            ctypes.byref(iface_ptr),
        )
        if hr != 0:
            self._ole32.CoUninitialize()
            raise ctypes.WinError(hr)

        self._iface = ctypes.cast(iface_ptr.value, ctypes.POINTER(IDesktopWallpaper))
        self._vtable = self._iface.contents.lpVtbl.contents

    def _check(self, hr: int) -> None:
        if hr != 0:
            raise ctypes.WinError(hr)

    def monitor_ids(self) -> List[str]:
        count = UINT()
        self._check(self._vtable.GetMonitorDevicePathCount(self._iface, ctypes.byref(count)))

        ids: List[str] = []
        for index in range(count.value):
            path_ptr = LPWSTR()
            self._check(self._vtable.GetMonitorDevicePathAt(self._iface, index, ctypes.byref(path_ptr)))
            monitor_id = path_ptr.value
            self._ole32.CoTaskMemFree(ctypes.cast(path_ptr, LPVOID))
            if monitor_id:
                ids.append(monitor_id)
        return ids

    def set_wallpaper(self, monitor_id: str, image_path: str) -> None:
        self._check(self._vtable.SetWallpaper(self._iface, monitor_id, image_path))

    def close(self) -> None:
        if self._iface:
            self._vtable.Release(self._iface)
            self._iface = None
        self._ole32.CoUninitialize()
