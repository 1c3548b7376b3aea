"""Adhan playback through the pygame mixer."""

import io
import logging
import os
import threading

import pygame
import requests

logger = logging.getLogger(__name__)

ADHAN_ASSET = "/adhan.mp3"


def clamp_volume(volume: float) -> float:
    return max(0.0, min(1.0, float(volume)))


def find_adhan(fetch=None, path: str = ""):
    """The cached adhan asset when fetch is given, else the local file at path, else None."""
    if fetch is not None:
        try:
            return fetch(ADHAN_ASSET)
        except (LookupError, requests.RequestException) as exc:
            logger.warning("Adhan asset unavailable: %s", exc)
    if path and os.path.isfile(path):
        return path
    return None


class AdhanPlayer:
    """
    Plays one adhan at a time at the configured volume.

    The mixer is opened lazily on the first play, so a machine without an
    audio device only loses sound, not the rest of the app.
    """

    def __init__(self, volume: float = 0.5, muted: bool = False):
        self.volume = clamp_volume(volume)
        self.muted = muted
        self.is_playing = False
        self._mixer_ready = False
        self._lock = threading.Lock()

    def _ensure_mixer(self) -> bool:
        if not self._mixer_ready:
            try:
                pygame.mixer.init()
            except pygame.error as exc:
                logger.warning("Audio device unavailable: %s", exc)
                return False
            self._mixer_ready = True
        return True

    def set_volume(self, volume: float) -> None:
        with self._lock:
            self.volume = clamp_volume(volume)
            if self._mixer_ready:
                pygame.mixer.music.set_volume(self.volume)

    def set_muted(self, muted: bool) -> None:
        self.muted = muted
        if muted:
            self.stop()

    def play(self, source) -> bool:
        """
        Play source, a file path or the raw bytes of an mp3.

        Returns False when muted or when playback could not start.
        """
        if self.muted:
            return False
        with self._lock:
            if not self._ensure_mixer():
                return False
            try:
                pygame.mixer.music.stop()
                if isinstance(source, (bytes, bytearray)):
                    pygame.mixer.music.load(io.BytesIO(source), "mp3")
                else:
                    pygame.mixer.music.load(str(source))
                pygame.mixer.music.set_volume(self.volume)
                pygame.mixer.music.play()
            except pygame.error as exc:
                logger.error("Could not play adhan: %s", exc)
                return False
            self.is_playing = True
        logger.info("Adhan playback started at volume %.2f", self.volume)
        return True

    def stop(self) -> None:
        with self._lock:
            if self.is_playing and self._mixer_ready:
                pygame.mixer.music.stop()
            self.is_playing = False
