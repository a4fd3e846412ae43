"""Cross-platform notifications for phase boundaries.

This module provides:
- Native OS notifications (Windows toast, macOS notification center, Linux notify-send)
- Short sound cues (winsound, afplay, paplay/aplay)
- NotificationDispatcher: maps timer cues to both, never raising
"""

from __future__ import annotations

import logging
import platform
import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pomosync.core.types import NotificationKind

logger = logging.getLogger(__name__)

APP_NAME = "Pomosync"

# Sound per cue: (Windows alias, macOS system sound)
_SOUNDS: dict[NotificationKind, tuple[str, str]] = {
    NotificationKind.WORK: ("SystemAsterisk", "Blow"),
    NotificationKind.BREAK: ("SystemAsterisk", "Glass"),
    NotificationKind.COMPLETE: ("SystemExclamation", "Hero"),
    NotificationKind.TIME_ENTRY: ("SystemAsterisk", "Pop"),
}

_LINUX_PLAYERS = (
    ["paplay", "/usr/share/sounds/freedesktop/stereo/complete.oga"],
    ["aplay", "-q", "/usr/share/sounds/sound-icons/prompt.wav"],
)


@dataclass
class Notification:
    """Represents a notification to display."""

    title: str
    message: str
    persistent: bool = False


def _notify_windows(notification: Notification) -> bool:
    """Send notification on Windows using PowerShell toast.

    Args:
        notification: The notification to send.

    Returns:
        True if notification was sent successfully.
    """
    duration = "long" if notification.persistent else "short"
    ps_script = f'''
    [Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null
    [Windows.Data.Xml.Dom.XmlDocument, Windows.Data.Xml.Dom.XmlDocument, ContentType = WindowsRuntime] | Out-Null

    $template = @"
    <toast duration="{duration}">
        <visual>
            <binding template="ToastText02">
                <text id="1">{notification.title}</text>
                <text id="2">{notification.message}</text>
            </binding>
        </visual>
    </toast>
"@

    $xml = New-Object Windows.Data.Xml.Dom.XmlDocument
    $xml.LoadXml($template)
    $toast = New-Object Windows.UI.Notifications.ToastNotification $xml
    [Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier("{APP_NAME}").Show($toast)
    '''
    try:
        subprocess.run(
            ["powershell", "-ExecutionPolicy", "Bypass", "-Command", ps_script],
            capture_output=True,
            check=False,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
        return True
    except Exception as e:
        logger.debug("Windows notification failed: %s", e)
        return False


def _notify_macos(notification: Notification) -> bool:
    """Send notification on macOS using osascript."""
    title = notification.title.replace('"', '\\"')
    message = notification.message.replace('"', '\\"')
    script = f'display notification "{message}" with title "{title}"'
    try:
        subprocess.run(["osascript", "-e", script], capture_output=True, check=True)
        return True
    except Exception as e:
        logger.debug("macOS notification failed: %s", e)
        return False


def _notify_linux(notification: Notification) -> bool:
    """Send notification on Linux using notify-send.

    Persistent notifications use critical urgency, which most
    notification daemons keep on screen until dismissed.
    """
    urgency = "critical" if notification.persistent else "normal"
    try:
        subprocess.run(
            [
                "notify-send",
                "--urgency", urgency,
                "--app-name", APP_NAME,
                notification.title,
                notification.message,
            ],
            capture_output=True,
            check=True,
        )
        return True
    except FileNotFoundError:
        logger.debug("notify-send not found")
        return False
    except Exception as e:
        logger.debug("Linux notification failed: %s", e)
        return False


def send_notification(notification: Notification) -> bool:
    """Send a system notification.

    Args:
        notification: The notification to send.

    Returns:
        True if notification was sent, False if failed or unavailable.
    """
    system = platform.system()

    if system == "Windows":
        return _notify_windows(notification)
    elif system == "Darwin":
        return _notify_macos(notification)
    elif system == "Linux":
        return _notify_linux(notification)
    else:
        logger.warning("Notifications not supported on %s", system)
        return False


def play_sound(kind: NotificationKind) -> bool:
    """Play the short cue for ``kind`` without blocking.

    Returns:
        True if a player was started.
    """
    windows_alias, mac_sound = _SOUNDS.get(kind, _SOUNDS[NotificationKind.WORK])
    system = platform.system()
    try:
        if system == "Windows":
            import winsound

            winsound.PlaySound(windows_alias, winsound.SND_ALIAS | winsound.SND_ASYNC)
            return True
        if system == "Darwin":
            subprocess.Popen(["afplay", f"/System/Library/Sounds/{mac_sound}.aiff"])
            return True
        for cmd in _LINUX_PLAYERS:
            try:
                subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
                return True
            except FileNotFoundError:
                continue
    except Exception as e:
        logger.debug("Sound cue failed: %s", e)
    return False


class NotificationDispatcher:
    """Delivers timer cues as a sound plus a system notification.

    Delivery failures are logged and swallowed: a missing notification
    daemon must never affect the timer.
    """

    def __init__(
        self,
        sound: bool = True,
        popup: bool = True,
        kinds: Iterable[NotificationKind] | None = None,
        send: Callable[[Notification], bool] = send_notification,
        play: Callable[[NotificationKind], bool] = play_sound,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sound: Play a sound cue.
            popup: Show a system notification.
            kinds: Cues to deliver (default all).
            send: Notification backend.
            play: Sound backend.
        """
        self._sound = sound
        self._popup = popup
        self._kinds = frozenset(kinds) if kinds is not None else frozenset(NotificationKind)
        self._send = send
        self._play = play

    def notify(
        self,
        kind: NotificationKind,
        title: str,
        body: str,
        persistent: bool = False,
    ) -> None:
        """Deliver a cue.

        Args:
            kind: Which boundary was reached.
            title: Notification title.
            body: Notification text.
            persistent: Keep the notification until dismissed.
        """
        if kind not in self._kinds:
            return
        logger.info("%s: %s", title, body)
        try:
            if self._sound and kind != NotificationKind.TIME_ENTRY:
                self._play(kind)
            if self._popup:
                self._send(Notification(title=title, message=body, persistent=persistent))
        except Exception as e:
            logger.warning("Failed to deliver %s notification: %s", kind.value, e)
