"""Tests for mentionfeed.services.socialdata."""

import asyncio
from datetime import datetime, timezone
from typing import List

import httpx
import pytest

from mentionfeed.services.socialdata import SocialDataClient, _tweet_to_post


def _tweet(i: int, **overrides) -> dict:
    tweet = {
        "id_str": str(1000 + i),
        "full_text": f"post number {i} mentioning @zora",
        "tweet_created_at": "2024-10-05T15:12:00.000000Z",
        "favorite_count": 10 + i,
        "retweet_count": 3,
        "reply_count": 2,
        "quote_count": 1,
        "views_count": 500,
        "user": {
            "id_str": "42",
            "name": "Alice",
            "screen_name": "alice",
            "profile_image_url_https": "https://pbs.twimg.com/profile_images/1/a_normal.jpg",
            "followers_count": 321,
        },
    }
    tweet.update(overrides)
    return tweet


def _client(handler, captured: List[httpx.Request] = None) -> SocialDataClient:
    def wrapped(request: httpx.Request) -> httpx.Response:
        if captured is not None:
            captured.append(request)
        return handler(request)

    return SocialDataClient("test-key", transport=httpx.MockTransport(wrapped))


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------

class TestTweetToPost:
    def test_fields_are_mapped(self):
        post = _tweet_to_post(_tweet(1))
        assert post.external_id == "1001"
        assert post.content == "post number 1 mentioning @zora"
        assert post.author_handle == "alice"
        assert post.author_name == "Alice"
        assert post.author_avatar.endswith("a_normal.jpg")
        assert post.author_followers == 321
        assert post.like_count == 11
        assert post.reply_count == 2
        assert post.created_at == datetime(2024, 10, 5, 15, 12, tzinfo=timezone.utc)
        assert post.post_url == "https://x.com/alice/status/1001"

    def test_quotes_count_as_reposts(self):
        post = _tweet_to_post(_tweet(1, retweet_count=3, quote_count=1))
        assert post.repost_count == 4

    def test_missing_avatar_is_none(self):
        tweet = _tweet(1)
        tweet["user"]["profile_image_url_https"] = ""
        assert _tweet_to_post(tweet).author_avatar is None


# ---------------------------------------------------------------------------
# search()
# ---------------------------------------------------------------------------

class TestSocialDataSearch:
    def test_request_shape(self):
        captured: List[httpx.Request] = []
        client = _client(lambda r: httpx.Response(200, json={"tweets": []}), captured)
        asyncio.run(client.search("@zora"))

        request = captured[0]
        assert request.url.host == "api.socialdata.tools"
        assert request.url.params["query"] == "@zora"
        assert request.url.params["type"] == "Latest"
        assert request.headers["authorization"] == "Bearer test-key"

    def test_success_maps_posts_and_reports_credits(self):
        client = _client(lambda r: httpx.Response(200, json={"tweets": [_tweet(1), _tweet(2)]}))
        result = asyncio.run(client.search("@zora"))
        assert result.error is None
        assert result.source == "socialdata.tools"
        assert [p.external_id for p in result.posts] == ["1001", "1002"]
        assert result.credits_used == 2

    def test_truncates_but_counts_all_returned_items(self):
        tweets = [_tweet(i) for i in range(20)]
        client = _client(lambda r: httpx.Response(200, json={"tweets": tweets}))
        result = asyncio.run(client.search("@zora", max_results=5))
        assert [p.external_id for p in result.posts] == ["1000", "1001", "1002", "1003", "1004"]
        assert result.credits_used == 20

    def test_non_success_status_is_typed_failure(self):
        client = _client(lambda r: httpx.Response(402, text="Insufficient balance"))
        result = asyncio.run(client.search("@zora"))
        assert result.posts == []
        assert result.error.kind == "api_error"
        assert result.error.status == 402
        assert result.error.body == "Insufficient balance"
        assert "402" in result.error.message

    def test_transport_error_is_failure(self):
        def boom(request):
            raise httpx.ConnectError("dns failure", request=request)

        result = asyncio.run(_client(boom).search("@zora"))
        assert result.error.kind == "api_error"
        assert result.error.status is None

    def test_malformed_tweet_is_skipped(self):
        bad = _tweet(2, tweet_created_at="not a date")
        client = _client(lambda r: httpx.Response(200, json={"tweets": [_tweet(1), bad]}))
        result = asyncio.run(client.search("@zora"))
        assert [p.external_id for p in result.posts] == ["1001"]
        assert result.credits_used == 2

    def test_non_object_tweet_is_skipped(self):
        payload = {"tweets": [_tweet(1), "oops", None, _tweet(3, user=None)]}
        client = _client(lambda r: httpx.Response(200, json=payload))
        result = asyncio.run(client.search("@zora"))
        assert [p.external_id for p in result.posts] == ["1001"]
        assert result.credits_used == 4


class TestSocialDataClientConstruction:
    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            SocialDataClient("")
