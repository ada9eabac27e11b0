"""Tests for the go.kubebuilder.io/v4 layout plugin."""

from __future__ import annotations

from pathlib import Path

import pytest

from kubeforge.plugin.base import PluginError, SubcommandContext
from kubeforge.plugins.go_v4 import GoV4Plugin, complete_resource, find_tracked, repo_from_go_mod
from kubeforge.project import new_config
from kubeforge.project.errors import DuplicateResourceError
from kubeforge.project.resource import API, GVK, Resource, Webhooks
from kubeforge.scaffolder import ScaffoldError

MEMCACHED = GVK(group="cache", domain="my.domain", version="v1alpha1", kind="Memcached")


def _ctx(root: Path, config, resource: Resource | None = None, **options) -> SubcommandContext:
    force = options.pop("force", False)
    return SubcommandContext(config=config, root=root, resource=resource, options=options, force=force)


def _api_request(gvk: GVK = MEMCACHED, controller: bool = True) -> Resource:
    return Resource(
        group=gvk.group,
        version=gvk.version,
        kind=gvk.kind,
        api=API(crd_version="v1", namespaced=True),
        controller=controller,
    )


class TestInit:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_init_scaffolds_skeleton(self, tmp_project_dir):
        config = new_config("3")
        await GoV4Plugin().init(
            _ctx(tmp_project_dir, config, domain="example.com", repo="github.com/example/op", project_name="Op")
        )
        assert config.get_domain() == "example.com"
        assert config.get_repository() == "github.com/example/op"
        assert config.get_project_name() == "op"
        for rel in ("go.mod", "Makefile", "cmd/main.go", "Dockerfile", ".gitignore", "hack/boilerplate.go.txt"):
            assert (tmp_project_dir / rel).is_file(), rel
        assert (tmp_project_dir / "go.mod").read_text(encoding="utf-8").startswith("module github.com/example/op\n")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_init_defaults_domain_and_reads_go_mod(self, tmp_project_dir):
        (tmp_project_dir / "go.mod").write_text("module github.com/example/existing\n\ngo 1.23\n", encoding="utf-8")
        config = new_config("3")
        await GoV4Plugin().init(_ctx(tmp_project_dir, config))
        assert config.get_domain() == "my.domain"
        assert config.get_repository() == "github.com/example/existing"
        assert config.get_project_name() == "test-project"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_init_requires_repo(self, tmp_project_dir):
        with pytest.raises(PluginError, match="--repo is required"):
            await GoV4Plugin().init(_ctx(tmp_project_dir, new_config("3")))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_init_refuses_existing_makefile(self, tmp_project_dir):
        (tmp_project_dir / "Makefile").write_text("all:\n", encoding="utf-8")
        with pytest.raises(ScaffoldError, match="Makefile already exists"):
            await GoV4Plugin().init(_ctx(tmp_project_dir, new_config("3"), repo="github.com/example/op"))
        assert not (tmp_project_dir / "go.mod").exists()

    @pytest.mark.unit
    def test_repo_from_go_mod_missing(self, tmp_path):
        assert repo_from_go_mod(tmp_path) == ""


class TestEdit:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_toggle_multigroup(self, tmp_project_dir, v3_config):
        await GoV4Plugin().edit(_ctx(tmp_project_dir, v3_config, multigroup=True))
        assert v3_config.is_multigroup()
        await GoV4Plugin().edit(_ctx(tmp_project_dir, v3_config, multigroup=None))
        assert v3_config.is_multigroup()
        await GoV4Plugin().edit(_ctx(tmp_project_dir, v3_config, multigroup=False))
        assert not v3_config.is_multigroup()


class TestCreateAPI:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_api_records_and_scaffolds(self, tmp_project_dir, v3_config):
        ctx = _ctx(tmp_project_dir, v3_config, _api_request())
        await GoV4Plugin().create_api(ctx)

        tracked = v3_config.get_resource(MEMCACHED)
        assert tracked.has_api() and tracked.has_controller()
        assert tracked.path == "github.com/example/memcached/api/v1alpha1"
        assert ctx.resource == tracked

        types_go = (tmp_project_dir / "api/v1alpha1/memcached_types.go").read_text(encoding="utf-8")
        assert "type MemcachedSpec struct" in types_go
        assert (tmp_project_dir / "api/v1alpha1/groupversion_info.go").is_file()
        assert (tmp_project_dir / "config/samples/cache_v1alpha1_memcached.yaml").is_file()
        controller = (tmp_project_dir / "internal/controller/memcached_controller.go").read_text(encoding="utf-8")
        assert "resources=memcacheds," in controller
        assert 'cachev1alpha1 "github.com/example/memcached/api/v1alpha1"' in controller

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_multigroup_layout(self, tmp_project_dir, v3_config):
        v3_config.set_multigroup()
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        assert (tmp_project_dir / "api/cache/v1alpha1/memcached_types.go").is_file()
        assert (tmp_project_dir / "internal/controller/cache/memcached_controller.go").is_file()
        assert v3_config.get_resource(MEMCACHED).path == "github.com/example/memcached/api/cache/v1alpha1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_create_needs_force(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        with pytest.raises(DuplicateResourceError, match="API already exists"):
            await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request(), force=True))
        assert v3_config.resources_length() == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_controller_for_core_type(self, tmp_project_dir, v3_config):
        request = Resource(group="apps", version="v1", kind="Deployment", controller=True)
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, request))
        tracked = v3_config.get_resource(GVK(group="apps", domain="k8s.io", version="v1", kind="Deployment"))
        assert tracked.core
        assert tracked.path == "k8s.io/api/apps/v1"
        controller = (tmp_project_dir / "internal/controller/deployment_controller.go").read_text(encoding="utf-8")
        assert "groups=apps.k8s.io,resources=deployments," in controller

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_nothing_requested(self, tmp_project_dir, v3_config):
        request = Resource(group="cache", version="v1alpha1", kind="Memcached")
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, request))
        assert v3_config.resources_length() == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_external_path_with_api_rejected(self, tmp_project_dir, v3_config):
        ctx = _ctx(tmp_project_dir, v3_config, _api_request(), external_api_path="github.com/other/api/v1")
        with pytest.raises(PluginError, match="--external-api-path"):
            await GoV4Plugin().create_api(ctx)

    @pytest.mark.unit
    def test_complete_resource_external(self, tmp_project_dir, v3_config):
        request = Resource(group="cert-manager", version="v1", kind="Certificate", controller=True)
        ctx = _ctx(
            tmp_project_dir,
            v3_config,
            external_api_path="github.com/cert-manager/cert-manager/pkg/apis/certmanager/v1",
            external_api_domain="io",
        )
        resource = complete_resource(ctx, request)
        assert resource.external
        assert resource.domain == "io"
        assert resource.path.startswith("github.com/cert-manager/")


class TestCreateWebhook:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_for_tracked_api(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        request = Resource(
            group="cache",
            version="v1alpha1",
            kind="Memcached",
            webhooks=Webhooks(webhook_version="v1", defaulting=True),
        )
        await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))

        tracked = v3_config.get_resource(MEMCACHED)
        assert tracked.has_defaulting_webhook()
        assert not tracked.has_validation_webhook()
        webhook = (tmp_project_dir / "internal/webhook/v1alpha1/memcached_webhook.go").read_text(encoding="utf-8")
        assert "MemcachedCustomDefaulter" in webhook
        assert "MemcachedCustomValidator" not in webhook

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_adding_validation_regenerates_file(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        for hooks in (Webhooks(webhook_version="v1", defaulting=True), Webhooks(webhook_version="v1", validation=True)):
            request = Resource(group="cache", version="v1alpha1", kind="Memcached", webhooks=hooks)
            await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))
        webhook = (tmp_project_dir / "internal/webhook/v1alpha1/memcached_webhook.go").read_text(encoding="utf-8")
        assert "MemcachedCustomDefaulter" in webhook
        assert "MemcachedCustomValidator" in webhook

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_webhook_needs_force(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        request = Resource(
            group="cache", version="v1alpha1", kind="Memcached", webhooks=Webhooks(webhook_version="v1", defaulting=True)
        )
        await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))
        with pytest.raises(PluginError, match="defaulting webhook .* already exists"):
            await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))
        await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request, force=True))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_for_unknown_resource(self, tmp_project_dir, v3_config):
        request = Resource(
            group="cache", version="v1alpha1", kind="Memcached", webhooks=Webhooks(webhook_version="v1", validation=True)
        )
        with pytest.raises(PluginError, match="run 'create api' first"):
            await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_without_types(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        request = Resource(group="cache", version="v1alpha1", kind="Memcached", webhooks=Webhooks(webhook_version="v1"))
        with pytest.raises(PluginError, match="at least one of"):
            await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))

    @pytest.mark.unit
    def test_find_tracked_uses_project_domain(self, v3_config):
        v3_config.add_resource(Resource.from_gvk(MEMCACHED, api=API(crd_version="v1", namespaced=True)))
        request = Resource(group="cache", version="v1alpha1", kind="Memcached")
        assert find_tracked(v3_config, request).gvk == MEMCACHED
        assert find_tracked(v3_config, request.model_copy(update={"kind": "Other"})) is None


class TestDeleteAPI:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_removes_files_and_record(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        await GoV4Plugin().delete_api(_ctx(tmp_project_dir, v3_config, Resource.from_gvk(MEMCACHED)))
        assert v3_config.resources_length() == 0
        assert not (tmp_project_dir / "api/v1alpha1/memcached_types.go").exists()
        assert not (tmp_project_dir / "api/v1alpha1/groupversion_info.go").exists()
        assert not (tmp_project_dir / "internal/controller/memcached_controller.go").exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_keeps_shared_group_version_file(self, tmp_project_dir, v3_config):
        other = GVK(group="cache", domain="my.domain", version="v1alpha1", kind="Redis")
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request(other)))
        await GoV4Plugin().delete_api(_ctx(tmp_project_dir, v3_config, Resource.from_gvk(MEMCACHED)))
        assert (tmp_project_dir / "api/v1alpha1/groupversion_info.go").is_file()
        assert (tmp_project_dir / "api/v1alpha1/redis_types.go").is_file()
        assert v3_config.has_resource(other)


class TestDeleteWebhook:
    WEBHOOK_FILE = "internal/webhook/v1alpha1/memcached_webhook.go"

    async def _with_webhooks(self, root: Path, config, **types) -> None:
        await GoV4Plugin().create_api(_ctx(root, config, _api_request()))
        request = Resource(
            group="cache", version="v1alpha1", kind="Memcached", webhooks=Webhooks(webhook_version="v1", **types)
        )
        await GoV4Plugin().create_webhook(_ctx(root, config, request))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_one_type_rerenders_file(self, tmp_project_dir, v3_config):
        await self._with_webhooks(tmp_project_dir, v3_config, defaulting=True, validation=True)
        await GoV4Plugin().delete_webhook(
            _ctx(tmp_project_dir, v3_config, Resource.from_gvk(MEMCACHED), validation=True)
        )
        tracked = v3_config.get_resource(MEMCACHED)
        assert tracked.has_defaulting_webhook()
        assert not tracked.has_validation_webhook()
        webhook = (tmp_project_dir / self.WEBHOOK_FILE).read_text(encoding="utf-8")
        assert "MemcachedCustomDefaulter" in webhook
        assert "MemcachedCustomValidator" not in webhook

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_delete_all_types_removes_file(self, tmp_project_dir, v3_config):
        await self._with_webhooks(tmp_project_dir, v3_config, defaulting=True, conversion=True)
        await GoV4Plugin().delete_webhook(_ctx(tmp_project_dir, v3_config, Resource.from_gvk(MEMCACHED)))
        tracked = v3_config.get_resource(MEMCACHED)
        assert not tracked.has_webhooks()
        assert tracked.has_api() and tracked.has_controller()
        assert not (tmp_project_dir / self.WEBHOOK_FILE).exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_type_not_scaffolded(self, tmp_project_dir, v3_config):
        await self._with_webhooks(tmp_project_dir, v3_config, defaulting=True)
        with pytest.raises(PluginError, match="has no conversion webhook"):
            await GoV4Plugin().delete_webhook(
                _ctx(tmp_project_dir, v3_config, Resource.from_gvk(MEMCACHED), conversion=True)
            )
        assert (tmp_project_dir / self.WEBHOOK_FILE).is_file()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_resource_without_webhooks(self, tmp_project_dir, v3_config):
        await GoV4Plugin().create_api(_ctx(tmp_project_dir, v3_config, _api_request()))
        with pytest.raises(PluginError, match="has no webhooks"):
            await GoV4Plugin().delete_webhook(_ctx(tmp_project_dir, v3_config, Resource.from_gvk(MEMCACHED)))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_webhook_only_resource_is_untracked(self, tmp_project_dir, v3_config):
        request = Resource(
            group="apps", version="v1", kind="Deployment", webhooks=Webhooks(webhook_version="v1", defaulting=True)
        )
        await GoV4Plugin().create_webhook(_ctx(tmp_project_dir, v3_config, request))
        tracked = v3_config.get_resources()[0]
        await GoV4Plugin().delete_webhook(_ctx(tmp_project_dir, v3_config, tracked))
        assert v3_config.resources_length() == 0
