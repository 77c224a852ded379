import httpx
import pytest
from pydantic import SecretStr

from viral_payouts.config import InstagramConfig, YouTubeConfig
from viral_payouts.models import Platform
from viral_payouts.services.social import (
    InstagramClient,
    SocialAPIError,
    SocialMetricsClient,
    YouTubeClient,
    detect_platform,
    instagram_media_id,
    youtube_video_id,
)


def test_post_url_parsing():
    assert detect_platform("https://www.instagram.com/p/Cx1AbC/") == Platform.INSTAGRAM
    assert detect_platform("https://youtu.be/dQw4w9WgXcQ") == Platform.YOUTUBE
    assert detect_platform("https://x.com/a/status/1") == Platform.OTHER
    assert instagram_media_id("https://www.instagram.com/reel/Cx1AbC/?igsh=1") == "Cx1AbC"
    assert youtube_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=3") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://www.youtube.com/shorts/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://www.youtube.com/channel/abc") is None


@pytest.mark.asyncio
async def test_instagram_prefers_video_views():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"name": "impressions", "values": [{"value": 9_000}]},
                    {"name": "video_views", "values": [{"value": 4_200}]},
                    {"name": "likes", "values": [{"value": 310}]},
                ]
            },
        )

    client = InstagramClient(
        InstagramConfig(access_token=SecretStr("ig-token")), transport=httpx.MockTransport(handler)
    )
    metrics = await client.post_metrics("https://www.instagram.com/p/Cx1AbC/")

    assert (metrics.views, metrics.likes, metrics.comments) == (4_200, 310, 0)
    assert seen[0].path.endswith("/Cx1AbC/insights")
    assert seen[0].params["access_token"] == "ig-token"
    await client.close()


@pytest.mark.asyncio
async def test_unconfigured_clients_fetch_nothing():
    def handler(request):
        raise AssertionError("no request expected")

    client = SocialMetricsClient(
        InstagramClient(InstagramConfig(), transport=httpx.MockTransport(handler)),
        YouTubeClient(YouTubeConfig(), transport=httpx.MockTransport(handler)),
    )
    assert await client.post_metrics("https://www.instagram.com/p/Cx1AbC/") is None
    assert await client.post_metrics("https://youtu.be/dQw4w9WgXcQ") is None
    await client.close()


@pytest.mark.asyncio
async def test_youtube_statistics_and_errors():
    def handler(request):
        if request.url.params["id"] == "AAAAAAAAAAA":
            return httpx.Response(403, json={"error": {"message": "quota"}})
        return httpx.Response(
            200,
            json={"items": [{"statistics": {"viewCount": "15000", "likeCount": "900", "commentCount": "12"}}]},
        )

    client = SocialMetricsClient(
        InstagramClient(InstagramConfig()),
        YouTubeClient(YouTubeConfig(api_key=SecretStr("yt-key")), transport=httpx.MockTransport(handler)),
    )
    platform, metrics = await client.post_metrics("https://youtu.be/dQw4w9WgXcQ")
    assert platform == Platform.YOUTUBE
    assert (metrics.views, metrics.likes, metrics.comments) == (15_000, 900, 12)

    with pytest.raises(SocialAPIError):
        await client.post_metrics("https://www.youtube.com/watch?v=AAAAAAAAAAA")
    await client.close()
