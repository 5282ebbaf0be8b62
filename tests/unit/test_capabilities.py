"""Unit tests for capability resolution."""

import pytest

from conduit.kernel.capabilities import Capability, CapabilitySet, ResourceType
from conduit.kernel.errors import ConfigurationError


class TestCapabilitySet:
    """Tests for CapabilitySet.from_document and resolve."""

    def test_enabled_flag_resolves_true(self):
        caps = CapabilitySet.from_document({"User": {"allow_register": True}})

        assert caps.resolve(ResourceType.USER, Capability.ALLOW_REGISTER) is True

    def test_disabled_flag_resolves_false(self):
        caps = CapabilitySet.from_document({"Article": {"allow_delete": False}})

        assert caps.resolve(ResourceType.ARTICLE, Capability.ALLOW_DELETE) is False

    def test_absent_block_is_disabled(self):
        """Nothing configured means nothing enabled."""
        caps = CapabilitySet.from_document({})

        for resource in (ResourceType.USER, ResourceType.PROFILE, ResourceType.ARTICLE):
            for cap in Capability:
                assert caps.resolve(resource, cap) is False

    def test_unknown_pair_is_disabled(self):
        """A capability that does not belong to the resource is never enabled."""
        caps = CapabilitySet.from_document({"User": {"allow_register": True}})

        assert caps.resolve(ResourceType.USER, Capability.ALLOW_DELETE) is False
        assert caps.resolve(ResourceType.TAG, Capability.ALLOW_UPDATE) is False

    def test_unknown_names_are_disabled(self):
        caps = CapabilitySet.from_document({"User": {"allow_register": True}})

        assert caps.resolve("Widget", "allow_register") is False
        assert caps.resolve("User", "allow_everything") is False

    def test_string_names_resolve(self):
        caps = CapabilitySet.from_document({"Profile": {"allow_update": True}})

        assert caps.resolve("Profile", "allow_update") is True

    def test_unknown_key_in_block_is_ignored(self):
        caps = CapabilitySet.from_document({"User": {"allow_register": True, "allow_admin": True}})

        assert caps.resolve(ResourceType.USER, Capability.ALLOW_REGISTER) is True
        assert caps.resolve("User", "allow_admin") is False

    def test_non_boolean_value_rejected(self):
        with pytest.raises(ConfigurationError):
            CapabilitySet.from_document({"Article": {"allow_delete": "yes"}})

    def test_non_table_block_rejected(self):
        with pytest.raises(ConfigurationError):
            CapabilitySet.from_document({"Article": True})


class TestCommentCapabilities:
    """Comment gating follows the Article block."""

    def test_comments_follow_article_flag(self):
        enabled = CapabilitySet.from_document({"Article": {"allow_comments": True}})
        disabled = CapabilitySet.from_document({"Article": {"allow_comments": False}})

        assert enabled.resolve(ResourceType.COMMENT, Capability.ALLOW_COMMENTS) is True
        assert disabled.resolve(ResourceType.COMMENT, Capability.ALLOW_COMMENTS) is False

    def test_comment_block_is_not_read(self):
        caps = CapabilitySet.from_document({"Comment": {"allow_comments": True}})

        assert caps.resolve(ResourceType.COMMENT, Capability.ALLOW_COMMENTS) is False


class TestForResource:
    """Tests for CapabilitySet.for_resource."""

    def test_lists_every_known_flag(self):
        caps = CapabilitySet.from_document({"Article": {"allow_update": True}})

        assert caps.for_resource(ResourceType.ARTICLE) == {
            "allow_comments": False,
            "allow_delete": False,
            "allow_update": True,
        }

    def test_resource_without_flags(self):
        assert CapabilitySet().for_resource(ResourceType.TAG) == {}
