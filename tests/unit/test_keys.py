"""Unit tests for the storage key scheme."""

import pytest

from reelhub.core.errors import InvalidIdentity
from reelhub.models.media import ContentIdentity, ContentKind
from reelhub.storage.keys import (
    make_audiobook_key,
    make_key,
    make_video_key,
    parse_key,
    validate_token,
)


class TestMakeKey:
    def test_video_key(self):
        assert make_video_key("alpha", "123") == "alpha+123"

    def test_audiobook_key(self):
        assert make_audiobook_key("9981") == "audiobook+9981"

    def test_identity_kinds_never_collide(self):
        video = make_key(ContentIdentity.video("alpha", "9981"))
        audiobook = make_key(ContentIdentity.audiobook("9981"))
        assert video != audiobook

    def test_audiobook_provider_key_reserved_for_videos(self):
        with pytest.raises(InvalidIdentity):
            make_video_key("audiobook", "1")

    @pytest.mark.parametrize(
        "provider_key, item_id",
        [("al+pha", "1"), ("alpha", "1+2"), ("", "1"), ("alpha", ""), ("al pha", "1")],
    )
    def test_rejects_malformed_tokens(self, provider_key, item_id):
        with pytest.raises(InvalidIdentity):
            make_video_key(provider_key, item_id)

    def test_accepts_dash_and_underscore(self):
        assert make_video_key("my_site-2", "a-b_c") == "my_site-2+a-b_c"


class TestParseKey:
    def test_parse_video_key(self):
        identity = parse_key("alpha+123")

        assert identity.kind == ContentKind.VIDEO
        assert identity.provider_key == "alpha"
        assert identity.item_id == "123"

    def test_parse_audiobook_key(self):
        identity = parse_key("audiobook+77")

        assert identity == ContentIdentity.audiobook("77")

    def test_parse_inverts_make(self):
        for identity in (ContentIdentity.video("beta", "x_1"), ContentIdentity.audiobook("5")):
            assert parse_key(make_key(identity)) == identity

    @pytest.mark.parametrize("key", ["alpha", "alpha+", "+1", "alpha+1+2"])
    def test_rejects_malformed_keys(self, key):
        with pytest.raises(InvalidIdentity):
            parse_key(key)


def test_validate_token_returns_string():
    assert validate_token("abc", "field") == "abc"

    with pytest.raises(InvalidIdentity, match="field"):
        validate_token(None, "field")
