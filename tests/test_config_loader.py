"""Test cases for loading source definitions."""

import copy
import io

import pytest
import yaml

from cigraph.config.config_loader import ConfigLoader
from cigraph.config.global_config_loader import GeneratorSettings, load_settings
from cigraph.core.enums import PipelineKind, PullPolicy
from cigraph.core.errors import DuplicateName, UnknownVolume, UnresolvedDependency
from cigraph.core.models import SecretRef


class TestExampleDefinition:
    """The bundled Talos definition."""

    @pytest.fixture
    def definition(self, example_definition_path):
        return ConfigLoader.load_from_yaml(str(example_definition_path))

    def test_loads_and_validates(self, definition):
        report = definition.validate()

        assert report.ok, [str(error) for error in report.errors]

    def test_variants_expand_into_pipelines(self, definition):
        assert [p.name for p in definition.pipelines] == [
            "default", "cron-default",
            "integration-qemu", "cron-integration-qemu",
            "integration-provision", "cron-integration-provision",
            "e2e-gcp", "release", "notify",
        ]

    def test_notify_runs_last_after_everything(self, definition):
        assembled = definition.assembled()

        assert assembled[-1].name == "notify"
        assert list(assembled[-1].depends_on) == [p.name for p in assembled[:-1]]

    def test_variant_dependencies(self, definition):
        pipelines = {p.name: p for p in definition.pipelines}

        assert pipelines["cron-integration-qemu"].depends_on == ("cron-default",)
        assert pipelines["cron-integration-qemu"].steps == pipelines["integration-qemu"].steps
        assert pipelines["cron-default"].trigger.cron.include == ("thrice-daily", "nightly")

    def test_group_environment_overlay(self, definition):
        pipeline = {p.name: p for p in definition.pipelines}["integration-qemu"]

        assert pipeline.get_step("build").environment["IMAGE_REGISTRY"] == "registry.dev.siderolabs.io"
        assert "IMAGE_REGISTRY" not in pipeline.get_step("e2e-qemu").environment

    def test_from_secret_becomes_secret_reference(self, definition):
        push = definition.pipelines[0].get_step("push")

        assert push.environment["GHCR_PASSWORD"] == SecretRef("ghcr_token")

    def test_release_step_dependencies(self, definition):
        release = {p.name: p for p in definition.pipelines}["release"]

        assert release.get_step("release").depends_on == (
            "build", "cloud-images", "talosctl-cni-bundle", "images", "sbcs", "iso", "push", "release-notes",
        )
        assert definition.validate().step_order["release"][-1] == "release"

    def test_hosted_cloud_pipeline(self, definition):
        e2e = {p.name: p for p in definition.pipelines}["e2e-gcp"]

        assert e2e.kind == PipelineKind.HOSTED_CLOUD
        assert e2e.services == ()
        assert e2e.token == SecretRef("digitalocean_token")

    def test_non_standard_volume_only_where_requested(self, definition):
        pipeline = {p.name: p for p in definition.pipelines}["integration-qemu"]

        assert "kvm" in [mount.name for mount in pipeline.get_step("e2e-qemu").volumes]
        assert "kvm" not in [mount.name for mount in pipeline.get_step("build").volumes]
        assert "kvm" in [volume.name for volume in pipeline.volumes]

    def test_emit_is_deterministic(self, example_definition_path):
        first = ConfigLoader.load_from_yaml(str(example_definition_path)).emit()
        second = ConfigLoader.load_from_yaml(str(example_definition_path)).emit()

        assert first == second
        kinds = [doc['kind'] for doc in yaml.safe_load_all(first)]
        assert kinds[:5] == ['secret'] * 5
        assert kinds[5:] == ['pipeline'] * 9


class TestConfigLoader:
    """Test suite for ConfigLoader."""

    def test_minimal_definition(self, minimal_definition):
        definition = ConfigLoader.load_from_dict(minimal_definition)

        assert definition.validate().ok
        assert len(definition.registry) == 6
        assert definition.registry.frozen
        assert [s.name for s in definition.secrets] == ["ghcr_token"]
        assert definition.schedules is None

    def test_load_from_stream(self, minimal_definition):
        stream = io.StringIO(yaml.safe_dump(minimal_definition))

        definition = ConfigLoader.load_from_stream(stream)

        assert [p.name for p in definition.pipelines] == ["default", "integration", "notify"]

    def test_empty_stream_is_rejected(self):
        with pytest.raises(ValueError, match="Empty"):
            ConfigLoader.load_from_stream(io.StringIO(""))

    def test_unknown_top_level_key(self, minimal_definition):
        minimal_definition['pipeline'] = []

        with pytest.raises(ValueError, match="pipeline"):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_unknown_step_key_names_its_location(self, minimal_definition):
        minimal_definition['pipelines'][0]['steps'][1]['dependson'] = ['build']

        with pytest.raises(ValueError, match=r"pipelines\[0\]\.steps\[1\]"):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_list_condition_is_include_shorthand(self, minimal_definition):
        definition = ConfigLoader.load_from_dict(minimal_definition)
        integration = definition.pipelines[1]

        assert integration.trigger.event.include == ("promote",)
        assert integration.trigger.target.include == ("integration",)

    def test_named_trigger_and_overlay_list(self, minimal_definition):
        minimal_definition['pipelines'][0]['trigger'] = ['default', {'branch': ['main']}]

        trigger = ConfigLoader.load_from_dict(minimal_definition).pipelines[0].trigger

        assert trigger.event.exclude == ("tag", "promote", "cron")
        assert trigger.branch.include == ("main",)
        assert trigger.branch.exclude == ()

    def test_unknown_named_trigger(self, minimal_definition):
        minimal_definition['pipelines'][0]['trigger'] = 'nightly'

        with pytest.raises(ValueError, match="unknown trigger 'nightly'"):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_invalid_cron_expression(self, minimal_definition):
        minimal_definition['schedules'] = [{'name': 'nightly', 'cron': 'every night'}]

        with pytest.raises(ValueError, match="invalid cron"):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_duplicate_volume_name(self, minimal_definition):
        minimal_definition['volumes'] = [
            {'name': 'tmp', 'kind': 'memory-temp', 'mount_path': '/tmp'},
            {'name': 'tmp', 'kind': 'ephemeral-temp', 'mount_path': '/var/tmp'},
        ]

        with pytest.raises(DuplicateName):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_duplicate_secret_name(self, minimal_definition):
        minimal_definition['secrets'].append({'name': 'ghcr_token', 'path': 'other', 'key': 'token'})

        with pytest.raises(DuplicateName):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_unknown_volume_reported_at_validation(self, minimal_definition):
        minimal_definition['pipelines'][1]['steps'][0]['volumes'] = ['kvm']

        report = ConfigLoader.load_from_dict(minimal_definition).validate()

        assert [type(error) for error in report.errors] == [UnknownVolume]

    def test_unresolved_step_dependency_reported(self, minimal_definition):
        minimal_definition['pipelines'][0]['steps'][1]['depends_on'] = ['biuld']

        report = ConfigLoader.load_from_dict(minimal_definition).validate()

        assert [type(error) for error in report.errors] == [UnresolvedDependency]
        assert report.errors[0].pipeline == "default"

    def test_environment_values(self, minimal_definition, monkeypatch):
        monkeypatch.setenv("CIGRAPH_TEST_TAG", "v1.4.0")
        minimal_definition['pipelines'][0]['steps'][0]['environment'] = {
            'PUSH': True,
            'TAG': '${CIGRAPH_TEST_TAG}',
            'ARCH': '${CIGRAPH_TEST_MISSING:amd64}',
        }

        build = ConfigLoader.load_from_dict(minimal_definition).pipelines[0].get_step("build")

        assert build.environment['PUSH'] == "true"
        assert build.environment['TAG'] == "v1.4.0"
        assert build.environment['ARCH'] == "amd64"

    def test_malformed_secret_reference(self, minimal_definition):
        minimal_definition['pipelines'][0]['steps'][0]['environment'] = {'TOKEN': {'secret': 'x'}}

        with pytest.raises(ValueError, match="from_secret"):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_pull_policy(self, minimal_definition):
        minimal_definition['pipelines'][0]['steps'][0]['pull'] = 'if-not-exists'

        build = ConfigLoader.load_from_dict(minimal_definition).pipelines[0].get_step("build")

        assert build.pull == PullPolicy.IF_NOT_EXISTS

    def test_settings_section_overrides_base(self, minimal_definition):
        minimal_definition['settings'] = {'command': 'make', 'runner': {'clone_depth': 1}}
        base = GeneratorSettings.from_dict({'build_image': 'example/builder:v1'})

        definition = ConfigLoader.load_from_dict(minimal_definition, base)

        build = definition.pipelines[0].get_step("build")
        assert build.commands == ("make build",)
        assert build.image == "example/builder:v1"
        assert definition.pipelines[0].clone_depth == 1
        assert definition.settings.runner.standard_type == "kubernetes"

    def test_loading_does_not_mutate_input(self, minimal_definition):
        snapshot = copy.deepcopy(minimal_definition)

        ConfigLoader.load_from_dict(minimal_definition)

        assert minimal_definition == snapshot


class TestGeneratorSettings:
    """Generator settings loading."""

    def test_unknown_settings_key(self):
        with pytest.raises(ValueError, match="Unknown settings keys"):
            GeneratorSettings.from_dict({'registy': 'x'})

    @pytest.mark.parametrize("section", ["docker", "hosted_cloud", "runner"])
    def test_unknown_nested_settings_key(self, section):
        with pytest.raises(ValueError, match=f"Unknown settings keys at {section}"):
            GeneratorSettings.from_dict({section: {'imagee': 'foo'}})

    def test_environment_settings_accept_any_key(self):
        settings = GeneratorSettings.from_dict({'environment': {'CI': 'true'}})

        assert settings.environment['CI'] == 'true'
        assert 'PLATFORM' in settings.environment

    def test_nested_typo_in_definition_settings(self, minimal_definition):
        minimal_definition['settings'] = {'docker': {'imagee': 'foo'}}

        with pytest.raises(ValueError, match="imagee"):
            ConfigLoader.load_from_dict(minimal_definition)

    def test_nested_overlay_keeps_other_fields(self):
        settings = GeneratorSettings.from_dict({'hosted_cloud': {'size': 'c-16'}})

        assert settings.hosted_cloud.size == 'c-16'
        assert settings.hosted_cloud.region == GeneratorSettings.default().hosted_cloud.region

    def test_missing_settings_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "missing.yaml"))

    def test_defaults_without_settings_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert load_settings() == GeneratorSettings.default()

    def test_settings_file_in_search_path(self, tmp_path, monkeypatch):
        (tmp_path / "cigraph.yaml").write_text("command: make\n")
        monkeypatch.chdir(tmp_path)

        assert load_settings().command == "make"
