"""Instagram Graph and YouTube Data API clients for post view counts."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import InstagramConfig, YouTubeConfig, settings
from ..models import Platform

logger = logging.getLogger(__name__)

INSTAGRAM_POST = re.compile(r"instagram\.com/(?:p|reel)/([A-Za-z0-9_-]+)")
YOUTUBE_VIDEO = (
    re.compile(r"youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]{11})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([A-Za-z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([A-Za-z0-9_-]{11})"),
)


class SocialAPIError(RuntimeError):
    pass


@dataclass(slots=True)
class PostMetrics:
    views: int
    likes: int = 0
    comments: int = 0


def detect_platform(post_url: str) -> Platform:
    if "instagram.com" in post_url:
        return Platform.INSTAGRAM
    if "youtube.com" in post_url or "youtu.be" in post_url:
        return Platform.YOUTUBE
    return Platform.OTHER


def instagram_media_id(post_url: str) -> str | None:
    match = INSTAGRAM_POST.search(post_url)
    return match.group(1) if match else None


def youtube_video_id(post_url: str) -> str | None:
    for pattern in YOUTUBE_VIDEO:
        match = pattern.search(post_url)
        if match:
            return match.group(1)
    return None


async def _get_json(client: httpx.AsyncClient, name: str, path: str, params: dict[str, str]) -> Any:
    try:
        response = await client.get(path, params=params)
    except httpx.HTTPError as exc:
        logger.error("%s request %s failed: %s", name, path, exc)
        raise SocialAPIError(str(exc)) from exc
    if response.status_code >= 400:
        logger.error("%s API error %s: %s", name, path, response.text)
        raise SocialAPIError(response.text)
    return response.json()


class InstagramClient:
    def __init__(
        self,
        config: InstagramConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings.instagram
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._config.access_token.get_secret_value())

    async def close(self) -> None:
        await self._client.aclose()

    async def post_metrics(self, post_url: str) -> PostMetrics | None:
        """Insights for a post or reel; video views, falling back to impressions."""

        media_id = instagram_media_id(post_url)
        if not media_id or not self.configured:
            return None
        data = await _get_json(
            self._client,
            "Instagram",
            f"/{media_id}/insights",
            {
                "metric": "impressions,reach,video_views,likes,comments",
                "access_token": self._config.access_token.get_secret_value(),
            },
        )
        values: dict[str, int] = {}
        for metric in data.get("data") or []:
            points = metric.get("values") or [{}]
            values[metric.get("name")] = int(points[0].get("value") or 0)
        views = values["video_views"] if "video_views" in values else values.get("impressions", 0)
        return PostMetrics(views=views, likes=values.get("likes", 0), comments=values.get("comments", 0))


class YouTubeClient:
    def __init__(
        self,
        config: YouTubeConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings.youtube
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=self._config.timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self._config.api_key.get_secret_value())

    async def close(self) -> None:
        await self._client.aclose()

    async def post_metrics(self, post_url: str) -> PostMetrics | None:
        video_id = youtube_video_id(post_url)
        if not video_id or not self.configured:
            return None
        data = await _get_json(
            self._client,
            "YouTube",
            "/videos",
            {"part": "statistics", "id": video_id, "key": self._config.api_key.get_secret_value()},
        )
        items = data.get("items") or []
        if not items:
            return None
        stats = items[0].get("statistics") or {}
        return PostMetrics(
            views=int(stats.get("viewCount", 0)),
            likes=int(stats.get("likeCount", 0)),
            comments=int(stats.get("commentCount", 0)),
        )


class SocialMetricsClient:
    """Routes a post URL to the platform that hosts it."""

    def __init__(
        self,
        instagram: InstagramClient | None = None,
        youtube: YouTubeClient | None = None,
    ) -> None:
        self.instagram = instagram or InstagramClient()
        self.youtube = youtube or YouTubeClient()

    async def close(self) -> None:
        await self.instagram.close()
        await self.youtube.close()

    async def post_metrics(self, post_url: str) -> tuple[Platform, PostMetrics] | None:
        platform = detect_platform(post_url)
        if platform == Platform.INSTAGRAM:
            metrics = await self.instagram.post_metrics(post_url)
        elif platform == Platform.YOUTUBE:
            metrics = await self.youtube.post_metrics(post_url)
        else:
            return None
        if metrics is None:
            return None
        return platform, metrics


_default_client: SocialMetricsClient | None = None


def get_social_client() -> SocialMetricsClient:
    global _default_client
    if _default_client is None:
        _default_client = SocialMetricsClient()
    return _default_client


__all__ = [
    "InstagramClient",
    "PostMetrics",
    "SocialAPIError",
    "SocialMetricsClient",
    "YouTubeClient",
    "detect_platform",
    "get_social_client",
    "instagram_media_id",
    "youtube_video_id",
]
