"""Unit tests for resource models (kubeforge.project.resource)."""

from __future__ import annotations

import pytest

from kubeforge.project.errors import InvalidResourceError
from kubeforge.project.resource import API, GVK, Resource, Webhooks, api_package_path, regular_plural


def _resource(**fields) -> Resource:
    defaults = {"group": "cache", "domain": "my.domain", "version": "v1alpha1", "kind": "Memcached"}
    defaults.update(fields)
    return Resource(**defaults)


class TestRegularPlural:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "kind, plural",
        [
            ("Memcached", "memcacheds"),
            ("CronJob", "cronjobs"),
            ("Policy", "policies"),
            ("Gateway", "gateways"),
            ("Index", "indexes"),
            ("Bus", "buses"),
        ],
    )
    def test_regular_plural(self, kind, plural):
        assert regular_plural(kind) == plural


class TestGVK:
    @pytest.mark.unit
    def test_qualified_group(self):
        assert GVK(group="cache", domain="my.domain", version="v1", kind="A").qualified_group == "cache.my.domain"
        assert GVK(group="", domain="my.domain", version="v1", kind="A").qualified_group == "my.domain"
        assert GVK(group="cache", version="v1", kind="A").qualified_group == "cache"

    @pytest.mark.unit
    def test_equality_uses_qualified_group(self):
        a = GVK(group="cache", domain="my.domain", version="v1", kind="A")
        b = GVK(group="cache.my", domain="domain", version="v1", kind="A")
        assert a.is_equal_to(b)
        assert not a.is_equal_to(a.normalized())

    @pytest.mark.unit
    def test_normalized_strips_domain(self):
        gvk = GVK(group="cache", domain="my.domain", version="v1", kind="A").normalized()
        assert gvk.domain == ""
        assert gvk.group == "cache"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "fields, message",
        [
            ({"group": "", "domain": "", "version": "v1", "kind": "A"}, "group or domain"),
            ({"group": "Cache", "version": "v1", "kind": "A"}, "invalid group"),
            ({"group": "cache", "version": "1", "kind": "A"}, "invalid version"),
            ({"group": "cache", "version": "v1", "kind": "memcached"}, "uppercase"),
        ],
    )
    def test_validate_fields(self, fields, message):
        with pytest.raises(InvalidResourceError, match=message):
            GVK(**fields).validate_fields()

    @pytest.mark.unit
    def test_str(self):
        assert str(GVK(group="cache", domain="my.domain", version="v1", kind="A")) == "cache.my.domain/v1, Kind=A"


class TestResourceUpdate:
    @pytest.mark.unit
    def test_flags_are_ored(self):
        tracked = _resource(api=API(crd_version="v1", namespaced=True))
        tracked.update(_resource(controller=True, webhooks=Webhooks(webhook_version="v1", defaulting=True)))
        assert tracked.has_api()
        assert tracked.has_controller()
        assert tracked.has_defaulting_webhook()
        assert not tracked.has_validation_webhook()

    @pytest.mark.unit
    def test_update_never_clears_flags(self):
        tracked = _resource(controller=True)
        tracked.update(_resource(controller=False))
        assert tracked.controller is True

    @pytest.mark.unit
    def test_crd_version_can_only_be_set_once(self):
        tracked = _resource(api=API(crd_version="v1"))
        with pytest.raises(InvalidResourceError, match="CRD versions do not match"):
            tracked.update(_resource(api=API(crd_version="v1beta1")))

    @pytest.mark.unit
    def test_webhook_version_conflict(self):
        tracked = _resource(webhooks=Webhooks(webhook_version="v1"))
        with pytest.raises(InvalidResourceError, match="webhook versions do not match"):
            tracked.update(_resource(webhooks=Webhooks(webhook_version="v1beta1")))

    @pytest.mark.unit
    def test_spokes_merged_without_duplicates(self):
        tracked = _resource(webhooks=Webhooks(webhook_version="v1", conversion=True, spoke=["v1"]))
        tracked.update(_resource(webhooks=Webhooks(webhook_version="v1", conversion=True, spoke=["v1", "v2"])))
        assert tracked.webhooks.spoke == ["v1", "v2"]

    @pytest.mark.unit
    def test_different_gvk_rejected(self):
        with pytest.raises(InvalidResourceError, match="another GVK"):
            _resource().update(_resource(kind="Other"))

    @pytest.mark.unit
    def test_path_and_plural_filled_when_missing(self):
        tracked = _resource()
        tracked.update(_resource(path="example.com/api/v1alpha1", plural="memcachedz"))
        assert tracked.path == "example.com/api/v1alpha1"
        assert tracked.plural == "memcachedz"


class TestResourceHelpers:
    @pytest.mark.unit
    def test_replacer(self):
        resource = _resource(plural="")
        replacer = resource.replacer()
        assert replacer.replace("api/%[group]/%[version]/%[kind]_types.go") == "api/cache/v1alpha1/memcached_types.go"
        assert replacer.replace("%[plural]") == "memcacheds"

    @pytest.mark.unit
    def test_package_name_falls_back_to_domain(self):
        assert _resource(group="", domain="my.domain").package_name() == "mydomain"
        assert _resource(group="web-app").package_name() == "webapp"
        assert _resource().import_alias() == "cachev1alpha1"

    @pytest.mark.unit
    def test_is_regular_plural(self):
        assert _resource().is_regular_plural()
        assert _resource(plural="memcacheds").is_regular_plural()
        assert not _resource(plural="memcachedz").is_regular_plural()

    @pytest.mark.unit
    def test_to_document_omits_empty_sections(self):
        document = _resource(api=API(crd_version="v1", namespaced=True), controller=True).to_document()
        assert document == {
            "group": "cache",
            "domain": "my.domain",
            "version": "v1alpha1",
            "kind": "Memcached",
            "api": {"crdVersion": "v1", "namespaced": True},
            "controller": True,
        }

    @pytest.mark.unit
    def test_validate_rejects_unsupported_crd_version(self):
        with pytest.raises(InvalidResourceError, match="unsupported CRD version"):
            _resource(api=API(crd_version="v1beta1")).validate_fields()

    @pytest.mark.unit
    def test_unknown_fields_forbidden(self):
        with pytest.raises(ValueError):
            Resource(version="v1", kind="A", unknown=True)


class TestApiPackagePath:
    @pytest.mark.unit
    def test_single_group(self):
        assert api_package_path("example.com/op", "cache", "v1", False) == "example.com/op/api/v1"

    @pytest.mark.unit
    def test_multigroup(self):
        assert api_package_path("example.com/op", "cache", "v1", True) == "example.com/op/api/cache/v1"
