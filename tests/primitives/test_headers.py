import base64

import pytest

from tollgate.models.errors import InvalidTokenError, MalformedAuthHeaderError
from tollgate.primitives.headers import parse_basic_auth, strip_bearer


def _basic(raw: str) -> str:
    return "Basic " + base64.b64encode(raw.encode()).decode("ascii")


class TestParseBasicAuth:
    def test_decodes_client_id_and_secret(self):
        assert parse_basic_auth(_basic("key:secret")) == ("key", "secret")

    def test_scheme_is_case_insensitive(self):
        header = _basic("key:secret").replace("Basic", "basic")

        assert parse_basic_auth(header) == ("key", "secret")

    def test_secret_may_contain_colons(self):
        assert parse_basic_auth(_basic("key:se:cr:et")) == ("key", "se:cr:et")

    def test_percent_encoded_values_are_decoded(self):
        assert parse_basic_auth(_basic("my%20key:p%40ss")) == ("my key", "p@ss")

    def test_plus_is_decoded_as_space(self):
        assert parse_basic_auth(_basic("my+key:a+b%2Bc")) == ("my key", "a b+c")

    @pytest.mark.parametrize(
        "header",
        [
            None,
            "",
            "Bearer abc",
            "Basic",
            "Basic !!!not-base64!!!",
            _basic("no-colon"),
            _basic(":secret-only"),
        ],
    )
    def test_malformed_headers_raise(self, header):
        with pytest.raises(MalformedAuthHeaderError):
            parse_basic_auth(header)


class TestStripBearer:
    def test_strips_scheme(self):
        assert strip_bearer("Bearer abc.def") == "abc.def"

    def test_scheme_is_case_insensitive(self):
        assert strip_bearer("bearer abc") == "abc"

    @pytest.mark.parametrize("value", [None, "", "Bearer", "Bearer   ", "Basic abc", "abc"])
    def test_invalid_values_raise_invalid_token(self, value):
        with pytest.raises(InvalidTokenError):
            strip_bearer(value)
