"""
Server side of the Web Playback SDK: token callback, device tracking and playback commands.
The SDK's getOAuthToken callback pulls from get_oauth_token() every time; no token is kept here.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from player_web.config import TRANSFER_ATTEMPTS, TRANSFER_RETRY_DELAY
from player_web.errors import RefreshTemporarilyUnavailable, SessionError
from player_web.spotify import SpotifyAPIError, SpotifyClient

logger = logging.getLogger(__name__)


def _is_transient(error: Exception) -> bool:
    if isinstance(error, RefreshTemporarilyUnavailable):
        return True
    if isinstance(error, SpotifyAPIError):
        return error.status == 429 or error.status >= 500
    return False


class PlaybackController:
    def __init__(
        self,
        spotify: SpotifyClient,
        *,
        transfer_attempts: int = TRANSFER_ATTEMPTS,
        retry_delay: float = TRANSFER_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._spotify = spotify
        self.transfer_attempts = max(1, transfer_attempts)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.device_id: str | None = None

    async def get_oauth_token(self) -> str:
        return await self._spotify.token()

    async def on_ready(self, device_id: str) -> bool:
        """
        Record the SDK device and make it the active one (without starting playback).
        Transient failures are retried with linear back-off; returns whether the transfer succeeded.
        """
        logger.info("Spotify player ready: device_id=%s", device_id)
        self.device_id = device_id
        for attempt in range(1, self.transfer_attempts + 1):
            try:
                await self._spotify.transfer_playback(device_id, play=False)
                return True
            except (SpotifyAPIError, SessionError) as e:
                if not _is_transient(e) or attempt == self.transfer_attempts:
                    logger.error("Failed to auto-transfer playback to %s: %s", device_id, e)
                    return False
                logger.warning("Transfer to %s failed (attempt %s/%s): %s", device_id, attempt, self.transfer_attempts, e)
                await self._sleep(self.retry_delay * attempt)
        return False

    def on_not_ready(self, device_id: str) -> None:
        logger.warning("Player not ready: device_id=%s", device_id)
        if self.device_id == device_id:
            self.device_id = None

    async def play(self, context_uri: str | None = None, uris: list[str] | None = None) -> None:
        await self._spotify.start_playback(self.device_id, context_uri=context_uri, uris=uris)

    async def pause(self) -> None:
        await self._spotify.pause_playback(self.device_id)

    async def next(self) -> None:
        await self._spotify.skip_to_next(self.device_id)

    async def previous(self) -> None:
        await self._spotify.skip_to_previous(self.device_id)

    async def devices(self) -> dict:
        return await self._spotify.get_available_devices()
