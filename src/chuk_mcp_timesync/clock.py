"""Setting the operating system wall clock."""

import ctypes
import logging
import sys
import time
from datetime import datetime

logger = logging.getLogger(__name__)


class _SystemTime(ctypes.Structure):
    _fields_ = [
        ("wYear", ctypes.c_uint16),
        ("wMonth", ctypes.c_uint16),
        ("wDayOfWeek", ctypes.c_uint16),
        ("wDay", ctypes.c_uint16),
        ("wHour", ctypes.c_uint16),
        ("wMinute", ctypes.c_uint16),
        ("wSecond", ctypes.c_uint16),
        ("wMilliseconds", ctypes.c_uint16),
    ]


class SystemClock:
    """Clock setter backed by the host OS. Usually needs elevated privileges."""

    def set_system_clock(self, when: datetime) -> bool:
        """Set the wall clock to ``when``.

        Returns:
            True if the OS accepted the new time
        """
        try:
            if sys.platform == "win32":
                return self._set_windows(when)
            time.clock_settime(time.CLOCK_REALTIME, when.timestamp())
            return True
        except OSError as e:
            logger.error("Failed to set system clock to %s: %s", when.isoformat(), e)
            return False

    @staticmethod
    def _set_windows(when: datetime) -> bool:
        local = when.astimezone()
        st = _SystemTime(
            local.year,
            local.month,
            (local.weekday() + 1) % 7,  # SYSTEMTIME counts from Sunday
            local.day,
            local.hour,
            local.minute,
            local.second,
            local.microsecond // 1000,
        )
        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        ok = bool(kernel32.SetLocalTime(ctypes.byref(st)))
        if not ok:
            logger.error("SetLocalTime rejected %s", local.isoformat())
        return ok
