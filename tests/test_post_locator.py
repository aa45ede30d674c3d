"""Tests for locating embedded post data."""

import pytest

from postvault.core.exceptions import PostNotFoundError
from postvault.core.post_locator import (
    PostLocator,
    build_post_info,
    build_post_url,
    extract_media_items,
    extract_shortcode,
    is_valid_shortcode,
    resolve_owner,
)
from postvault.core.session import ExtractionSession

from conftest import MEDIA_ID, POST_URL, SHORTCODE, embed_post, make_post, post_page


@pytest.fixture
def session():
    return ExtractionSession()


class TestShortcodes:
    @pytest.mark.parametrize("url, expected", [
        ("https://www.instagram.com/p/Cxyz123ABCd/", "Cxyz123ABCd"),
        ("https://www.instagram.com/reel/Cxyz123ABCd/?igsh=abc", "Cxyz123ABCd"),
        ("https://www.instagram.com/reels/Cxyz123ABCd", "Cxyz123ABCd"),
        ("https://www.instagram.com/alice/p/Cxyz123ABCd/", "Cxyz123ABCd"),
        ("/p/Cxyz123ABCd/", "Cxyz123ABCd"),
        ("https://www.instagram.com/alice/", None),
    ])
    def test_extract_shortcode(self, url, expected):
        assert extract_shortcode(url) == expected

    def test_shortcode_validation(self):
        assert is_valid_shortcode("Cxyz123AB-_")
        assert not is_valid_shortcode("short")
        assert not is_valid_shortcode("")

    def test_build_post_url(self):
        assert build_post_url("reel", "ABC") == "https://www.instagram.com/reel/ABC/"
        assert build_post_url("post", "ABC") == "https://www.instagram.com/p/ABC/"


class TestResolveOwner:
    def test_prefers_user(self):
        owner = resolve_owner(make_post())

        assert owner.username == "alice"
        assert owner.user_id == "42"
        assert owner.full_name == "Alice A"

    def test_falls_back_to_owner_then_caption_user(self):
        post = make_post(user=None, owner={"id": "7", "username": "owen"})
        assert resolve_owner(post).username == "owen"

        post = make_post(user=None, caption={"text": "hi", "user": {"pk": 9, "username": "cap"}})
        owner = resolve_owner(post)
        assert owner.username == "cap"
        assert owner.user_id == "9"

    def test_falls_back_to_coauthor(self):
        post = make_post(user=None, coauthor_producers=[{"pk": "5", "username": "collab"}])

        assert resolve_owner(post).username == "collab"

    def test_falls_back_to_page_header(self):
        from bs4 import BeautifulSoup

        html = '<header><a role="link" href="/headeruser/">x</a><img src="https://cdn/h.jpg"></header>'
        owner = resolve_owner(make_post(user=None), BeautifulSoup(html, "lxml"), POST_URL)

        assert owner.username == "headeruser"
        assert owner.profile_pic_url == "https://cdn/h.jpg"

    def test_falls_back_to_url_path(self):
        owner = resolve_owner(make_post(user=None), None, f"https://www.instagram.com/pathuser/p/{SHORTCODE}/")

        assert owner.username == "pathuser"

    def test_unknown_when_nothing_matches(self):
        assert resolve_owner(make_post(user=None), None, POST_URL).username == "unknown"


class TestMediaItems:
    def test_single_image(self):
        items = extract_media_items(make_post())

        assert len(items) == 1
        assert items[0].media_type == "image"
        assert items[0].url == "https://cdn/img.jpg"

    def test_carousel_with_video(self):
        post = make_post(media_type=8, carousel_media=[
            {"pk": "1", "image_versions2": {"candidates": [{"url": "https://cdn/1.jpg"}]}},
            {
                "pk": "2",
                "video_versions": [{"url": "https://cdn/2.mp4", "width": 720, "height": 1280}],
                "image_versions2": {"candidates": [{"url": "https://cdn/2.jpg"}]},
            },
        ])

        items = extract_media_items(post)

        assert [i.media_type for i in items] == ["image", "video"]
        assert items[1].url == "https://cdn/2.mp4"
        assert items[1].thumbnail_url == "https://cdn/2.jpg"


class TestPostLocator:
    def test_locates_embedded_post(self, session):
        html = post_page(make_post(comment_count=12))

        record = PostLocator(session).locate(html, SHORTCODE, POST_URL)

        assert record.media_id == MEDIA_ID
        assert record.shortcode == SHORTCODE
        assert record.owner.username == "alice"
        assert record.comment_count == 12
        assert record.caption == "hello world"
        assert len(record.media_items) == 1

    def test_media_id_from_compound_id(self, session):
        post = make_post()
        del post["pk"]

        record = PostLocator(session).locate(post_page(post), SHORTCODE, POST_URL)

        assert record.media_id == MEDIA_ID

    def test_skips_invalid_json_and_other_posts(self, session):
        broken = f'<script type="application/json">{{"{SHORTCODE}": </script>'
        other = embed_post(make_post(code="OtherPost12", pk="1"))
        html = post_page(make_post(), extra=broken + other)

        record = PostLocator(session).locate(html, SHORTCODE, POST_URL)

        assert record.media_id == MEDIA_ID

    def test_missing_post_raises(self, session):
        html = post_page(make_post(code="OtherPost12"))

        with pytest.raises(PostNotFoundError):
            PostLocator(session).locate(html, SHORTCODE, POST_URL)

    def test_result_is_cached_until_navigation(self, session):
        locator = PostLocator(session)
        first = locator.locate(post_page(make_post()), SHORTCODE, POST_URL)

        assert locator.locate("<html></html>", SHORTCODE, POST_URL) is first

        session.navigated()
        with pytest.raises(PostNotFoundError):
            locator.locate("<html></html>", SHORTCODE, POST_URL)

    def test_header_fallback_through_locate(self, session):
        header = '<header><a role="link" href="https://www.instagram.com/fromheader/">x</a></header>'
        html = post_page(make_post(user=None), header=header)

        record = PostLocator(session).locate(html, SHORTCODE, POST_URL)

        assert record.owner.username == "fromheader"


class TestPostInfo:
    def test_reel_post_info(self, session):
        record = PostLocator(session).locate(post_page(make_post()), SHORTCODE, POST_URL)

        info = build_post_info(record, f"https://www.instagram.com/reel/{SHORTCODE}/")

        assert info.post_type == "reel"
        assert info.post_url == f"https://www.instagram.com/reel/{SHORTCODE}/"
        assert info.posted_at.startswith("2023-11-14")
        assert info.posted_date.year == 2023
        assert info.username == "alice"
