"""Unit tests for CORS policy resolution."""

import pytest

from conduit.kernel.cors import CorsPolicy, OriginMode
from conduit.kernel.errors import ConfigurationError


class TestOriginMode:
    """Wildcard and enumerated origins are exclusive."""

    def test_wildcard_string(self):
        policy = CorsPolicy.from_table({"origins": "*"}, listener="public")

        assert policy.mode == OriginMode.WILDCARD
        assert policy.is_wildcard
        assert policy.allow_credentials is False
        assert policy.allows_origin("https://anything.example")

    def test_wildcard_in_list(self):
        policy = CorsPolicy.from_table({"origins": ["*"]})

        assert policy.is_wildcard

    def test_explicit_origins(self):
        policy = CorsPolicy.from_table(
            {"origins": ["https://a.example", "https://b.example"]},
            listener="public",
        )

        assert policy.mode == OriginMode.EXPLICIT
        assert policy.origins == frozenset({"https://a.example", "https://b.example"})
        assert policy.allow_credentials is True
        assert policy.allows_origin("https://a.example")
        assert not policy.allows_origin("https://evil.example")

    def test_single_origin_string(self):
        policy = CorsPolicy.from_table({"origins": "https://a.example"})

        assert policy.mode == OriginMode.EXPLICIT
        assert policy.origins == frozenset({"https://a.example"})

    def test_mixing_wildcard_and_origins_rejected(self):
        with pytest.raises(ConfigurationError, match="cannot mix"):
            CorsPolicy.from_table({"origins": ["*", "https://a.example"]}, listener="public")

    def test_missing_table_denies_every_origin(self):
        policy = CorsPolicy.from_table(None, listener="public")

        assert policy.mode == OriginMode.EXPLICIT
        assert policy.origins == frozenset()
        assert not policy.allows_origin("https://a.example")

    def test_empty_origin_rejected(self):
        with pytest.raises(ConfigurationError):
            CorsPolicy.from_table({"origins": ["https://a.example", " "]})

    def test_non_string_origin_rejected(self):
        with pytest.raises(ConfigurationError):
            CorsPolicy.from_table({"origins": [1]})


class TestMethodsAndHeaders:
    """Tests for methods, headers and max-age."""

    def test_methods_upper_cased_and_deduplicated(self):
        policy = CorsPolicy.from_table({"methods": ["get", "GET", "post"]})

        assert policy.methods == ("GET", "POST")

    def test_headers_keep_order(self):
        policy = CorsPolicy.from_table({"headers": ["Authorization", "Content-Type"]})

        assert policy.headers == ("Authorization", "Content-Type")

    def test_invalid_header_token_rejected(self):
        with pytest.raises(ConfigurationError):
            CorsPolicy.from_table({"headers": ["Bad Header"]})

    def test_methods_must_be_list(self):
        with pytest.raises(ConfigurationError):
            CorsPolicy.from_table({"methods": "GET"})

    def test_max_age(self):
        policy = CorsPolicy.from_table({"max-age": 3600})

        assert policy.max_age_seconds == 3600

    def test_max_age_defaults_to_zero(self):
        assert CorsPolicy.from_table({}).max_age_seconds == 0

    @pytest.mark.parametrize("value", [-1, "3600", True, 1.5])
    def test_invalid_max_age_rejected(self, value):
        with pytest.raises(ConfigurationError):
            CorsPolicy.from_table({"max-age": value})
