"""Desktop notifications for prayer times."""

import logging
import threading
import time

from plyer import notification as plyer_notification

logger = logging.getLogger(__name__)

APP_NAME = "Solat Times"
APP_ICON = ""  # Path to icon file; empty = default
NOTIFY_TIMEOUT = 30  # seconds a notification stays on screen

# tag -> monotonic time its notification leaves the screen
_visible = {}
_visible_lock = threading.Lock()


def _send_plyer(title: str, message: str, timeout: int = 10) -> bool:
    """Send a desktop notification via plyer (cross-platform). Returns False if the backend failed."""
    kwargs = dict(
        app_name=APP_NAME,
        title=title,
        message=message,
        timeout=timeout,
    )
    if APP_ICON:
        kwargs["app_icon"] = APP_ICON
    try:
        plyer_notification.notify(**kwargs)
    except Exception as exc:
        # plyer raises NotImplementedError or backend errors (no dbus, no toast host)
        logger.warning("Desktop notification failed: %s", exc)
        return False
    return True


def show_notification(title: str, message: str, tag: str, timeout: int = NOTIFY_TIMEOUT, callback=None) -> bool:
    """
    Show a notification identified by tag.

    While a notification with the same tag is still on screen, a second one
    replaces it instead of stacking: no new OS toast is sent, but callback
    still receives the new text. Returns True if an OS toast was sent.
    """
    now = time.monotonic()
    with _visible_lock:
        still_visible = _visible.get(tag, 0) > now
        if not still_visible:
            _visible[tag] = now + timeout
    sent = False
    if still_visible:
        logger.debug("Notification %r still visible; replacing", tag)
    else:
        sent = _send_plyer(title, message, timeout=timeout)
    if callback:
        callback(title, message)
    return sent


def clear_visible() -> None:
    with _visible_lock:
        _visible.clear()


def notify_prayer_time(prayer_name: str, callback=None) -> bool:
    """
    Send a desktop notification when prayer time arrives.
    Optionally calls callback(title, message); the caller decides which thread it runs on.
    """
    title = "🕌 Prayer Time"
    message = f"It's time for {prayer_name}"
    return show_notification(title, message, tag=prayer_name, callback=callback)
