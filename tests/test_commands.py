import json

import yaml

from management.commands import load_config_file, main


def write_config(tmp_path, data, name="config.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_render_prints_manifest(tmp_path, capsys, dynamo_config):
    path = write_config(tmp_path, dynamo_config)

    assert main(["render", "-f", path]) == 0

    manifest = yaml.safe_load(capsys.readouterr().out)
    assert manifest["kind"] == "DynamoGraphDeployment"
    assert manifest["spec"]["VllmWorker"]["replicas"] == 2


def test_render_with_provider_flag(tmp_path, capsys, dynamo_config):
    del dynamo_config["provider"]
    dynamo_config["namespace"] = "kuberay-system"
    path = write_config(tmp_path, dynamo_config)

    assert main(["render", "-f", path, "-p", "kuberay"]) == 0

    assert yaml.safe_load(capsys.readouterr().out)["kind"] == "RayService"


def test_render_invalid_config_fails(tmp_path, dynamo_config):
    dynamo_config["replicas"] = 0
    path = write_config(tmp_path, dynamo_config)

    assert main(["render", "-f", path]) == 1


def test_validate(tmp_path, capsys, dynamo_config):
    path = write_config(tmp_path, dynamo_config)
    assert main(["validate", "-f", path]) == 0
    assert "Config is valid" in capsys.readouterr().out

    dynamo_config["mode"] = "disaggregated"
    path = write_config(tmp_path, dynamo_config, "broken.yaml")
    assert main(["validate", "-f", path]) == 1
    assert "prefillReplicas: Required in disaggregated mode" in capsys.readouterr().out


def test_json_config_files_are_accepted(tmp_path, dynamo_config):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(dynamo_config))

    assert load_config_file(str(path))["modelId"] == "Qwen/Qwen3-0.6B"


def test_missing_arguments(tmp_path):
    assert main(["render"]) == 1
    assert main(["delete"]) == 1
    assert main(["render", "-f", str(tmp_path / "missing.yaml")]) == 1


def test_unknown_provider(tmp_path, dynamo_config):
    dynamo_config["provider"] = "kserve"
    path = write_config(tmp_path, dynamo_config)

    assert main(["validate", "-f", path]) == 1


def test_non_mapping_file(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")

    assert main(["render", "-f", str(path)]) == 1


def test_non_string_provider(tmp_path, dynamo_config):
    dynamo_config["provider"] = ["dynamo"]
    path = write_config(tmp_path, dynamo_config)

    assert main(["validate", "-f", path]) == 1
