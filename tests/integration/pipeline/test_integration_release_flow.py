# tests/integration/pipeline/test_integration_release_flow.py — v1
"""End-to-end release flow: build -> test -> push, promoted to deploy.

Runs real shell commands against the json and sqlite cache backends and
dotenv secret bundles, the way a CI host would.
"""

from __future__ import annotations

import pytest

from conveyor.api.facade import Conveyor
from conveyor.core.models import JobStatus, PipelineStatus, TriggerEvent

REGISTRY_PASSWORD = "reg1stry-Pa55"
KUBE_TOKEN = "kube-t0ken-xyz"
SHA = "feedfacecafebeef0000111122223333deadbeef"

RELEASE = """
name: release
environment:
  REGISTRY: registry.example.test
blocks:
  - name: Build
    jobs:
      - name: image
        commands:
          - cache: restore
            key: image-${CONVEYOR_GIT_COMMIT_SHA}
            on_miss:
              - echo building >> build.log
              - mkdir -p dist && echo "image $CONVEYOR_ARTIFACT_TAG" > dist/image.tar
            store_after: [dist]
          - cat dist/image.tar
  - name: Test
    jobs:
      - name: unit
        commands: ["echo unit ok"]
      - name: smoke
        commands: ["test -n \\"$REGISTRY\\""]
  - name: Push
    jobs:
      - name: push
        secrets: [registry]
        commands:
          - echo "login $REGISTRY_USER:$REGISTRY_PASSWORD @ $REGISTRY"
          - echo "pushed $REGISTRY/app:$CONVEYOR_ARTIFACT_TAG"
promotions:
  - name: deploy-staging
    pipeline: deploy
    mode: auto
    when:
      result: passed
      branches: [master]
"""

DEPLOY = """
name: deploy
environment:
  CLUSTER_CONTEXT: staging-cluster
blocks:
  - name: Deploy
    jobs:
      - name: rollout
        secrets: [kube]
        commands:
          - echo "kubectl --context $CLUSTER_CONTEXT --token $KUBE_TOKEN set image app=$CONVEYOR_ARTIFACT_TAG"
"""


@pytest.fixture
def release_project(project):
    project.add_definition("release.yml", RELEASE)
    project.add_definition("deploy.yaml", DEPLOY)
    project.add_bundle("registry", REGISTRY_USER="ci-bot", REGISTRY_PASSWORD=REGISTRY_PASSWORD)
    project.add_bundle("kube", KUBE_TOKEN=KUBE_TOKEN)
    return project


def _push(branch: str = "master") -> TriggerEvent:
    return TriggerEvent(branch=branch, commit_sha=SHA)


@pytest.mark.parametrize("cache_backend", ["json", "sqlite"])
class TestReleaseFlow:
    @pytest.mark.asyncio
    async def test_master_release_promotes_to_deploy(self, release_project, cache_backend):
        settings = release_project.settings(cache_backend=cache_backend)
        async with Conveyor.from_settings(settings) as conveyor:
            release_id = await conveyor.trigger("release", _push())
            await conveyor.wait_idle()
            release = conveyor.get(release_id)
            chain = conveyor.runs(release.workflow_id)

        assert release.status == PipelineStatus.PASSED
        assert [r.definition for r in chain] == ["release", "deploy"]
        deploy = chain[1]
        assert deploy.status == PipelineStatus.PASSED

        tag = f"master_feedfac_{release.workflow_id}"
        rollout = deploy.block("Deploy").job("rollout")
        assert f"kubectl --context staging-cluster --token *** set image app={tag}" in rollout.output

        push = release.block("Push").job("push")
        assert "login ***:*** @ registry.example.test" in push.output
        assert f"pushed registry.example.test/app:{tag}" in push.output

    @pytest.mark.asyncio
    async def test_second_release_of_same_commit_restores_image(self, release_project, cache_backend):
        settings = release_project.settings(cache_backend=cache_backend)
        async with Conveyor.from_settings(settings) as conveyor:
            first = await conveyor.wait(await conveyor.trigger("release", _push("feature-x")))
            second = await conveyor.wait(await conveyor.trigger("release", _push("feature-x")))
            await conveyor.wait_idle()
            keys = await conveyor.cache_store.list_keys("image-")

        assert keys == [f"image-{SHA}"]
        first_build = first.block("Build").job("image")
        second_build = second.block("Build").job("image")
        assert f"cache miss for image-{SHA}" in first_build.output
        assert "$ echo building >> build.log" in first_build.output
        assert f"cache hit for image-{SHA} (1 files restored)" in second_build.output
        assert "$ echo building >> build.log" not in second_build.output
        # The restored image carries the first workflow's tag
        assert f"image feature-x_feedfac_{first.workflow_id}" in second_build.output
        # Feature branches are not deployed
        assert [r.definition for r in conveyor.runs()] == ["release", "release"]

    @pytest.mark.asyncio
    async def test_reports_never_contain_secrets(self, release_project, cache_backend):
        settings = release_project.settings(cache_backend=cache_backend)
        async with Conveyor.from_settings(settings) as conveyor:
            await conveyor.trigger("release", _push())
            await conveyor.wait_idle()
            run_ids = [r.id for r in conveyor.runs()]

        reports = sorted(release_project.reports.glob("*.json"))
        assert sorted(p.stem for p in reports) == sorted(run_ids)
        for report in reports:
            text = report.read_text()
            assert REGISTRY_PASSWORD not in text
            assert KUBE_TOKEN not in text


class TestConfigurationErrors:
    @pytest.mark.asyncio
    async def test_missing_bundle_file(self, release_project):
        (release_project.secrets / "kube.env").unlink()
        settings = release_project.settings()
        async with Conveyor.from_settings(settings) as conveyor:
            release_id = await conveyor.trigger("release", _push())
            await conveyor.wait_idle()
            runs = conveyor.runs()

        # The release itself passes; the promoted deploy cannot start
        assert conveyor.get(release_id).status == PipelineStatus.PASSED
        assert [r.definition for r in runs] == ["release"]

    @pytest.mark.asyncio
    async def test_bundle_removed_after_trigger(self, release_project):
        settings = release_project.settings()
        async with Conveyor.from_settings(settings) as conveyor:
            release_id = await conveyor.trigger("release", _push())
            (release_project.secrets / "registry.env").unlink()
            await conveyor.wait_idle()
            release = conveyor.get(release_id)

        push = release.block("Push").job("push")
        assert push.status == JobStatus.FAILED
        assert push.commands == []
        assert release.status == PipelineStatus.FAILED
