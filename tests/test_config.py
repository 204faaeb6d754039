from pathlib import Path

import pytest

from pam_creds.config import CONFIG_ENV_KEY, ConfigError, load_config, parse_config
from pam_creds.pipeline import extract_from_text


def test_defaults_when_no_config_present(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_KEY, raising=False)
    monkeypatch.chdir(tmp_path)
    config = load_config()

    assert config.path is None
    assert config.input.header_shape == "auto"
    assert config.detection.resource_prefix == "PRIVATE_"
    assert config.detection.truthy_values == frozenset({"true", "1", "yes"})


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


def test_env_var_points_at_config(tmp_path, monkeypatch):
    config_path = Path(tmp_path) / "creds.yaml"
    config_path.write_text(
        "\n".join(
            [
                "# comments are fine",
                "input:",
                "  header_shape: unified",
                "  delimiter: ';'",
                "detection:",
                "  resource_prefix: HOST_",
                "  truthy_values: [true, '1', 'x']",
                "  default_columns:",
                "    password: 4",
                "output:",
                "  path: out/creds.json",
                "  pairs_csv: out/pairs.csv",
            ]
        ),
        encoding="utf-8",
    )
    monkeypatch.setenv(CONFIG_ENV_KEY, str(config_path))
    config = load_config()

    assert config.path == config_path
    assert config.input.header_shape == "unified"
    assert config.input.delimiter == ";"
    assert config.detection.resource_prefix == "HOST_"
    # YAML 1.1 loads bare `true` as a boolean; both of its spellings are kept.
    assert config.detection.truthy_values == frozenset({"true", "yes", "1", "x"})
    assert config.detection.default_columns == {"username": 0, "password": 4, "ssh_key": 2}
    assert config.output.path == (Path(tmp_path) / "out" / "creds.json").resolve()
    assert config.output.pairs_csv.name == "pairs.csv"


@pytest.mark.parametrize(
    "raw",
    [
        {"input": {"header_shape": "sideways"}},
        {"input": {"delimiter": ",,"}},
        {"detection": {"identity_pattern": "(["}},
        {"detection": {"truthy_values": "yes"}},
        {"detection": {"truthy_values": []}},
        {"detection": {"default_columns": {"email": 3}}},
        {"detection": {"default_columns": {"password": -1}}},
        {"detection": {"resource_prefix": ""}},
        {"output": ["not", "a", "mapping"]},
    ],
)
def test_invalid_settings_raise_config_error(raw):
    with pytest.raises(ConfigError):
        parse_config(raw)


def test_invalid_yaml_is_config_error(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("input: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


def test_bare_yaml_booleans_keep_yes_and_no(tmp_path):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "\n".join(
            [
                "detection:",
                "  truthy_values: [true, 1, yes]",
                "  falsy_values: [false, 0, no]",
            ]
        ),
        encoding="utf-8",
    )
    config = load_config(config_path)

    assert config.detection.truthy_values == frozenset({"true", "yes", "1"})
    assert config.detection.falsy_values == frozenset({"false", "no", "0"})

    text = "\n".join(
        [
            "Username,Password,SSH_Public_Key,Access,",
            ",,,Web,DB",
            ",,,PRIVATE_10.0.0.5,PRIVATE_10.0.0.6",
            "User carol,pw,,yes,no",
        ]
    )
    doc = extract_from_text(text, config, generated_at="2026-01-01T00:00:00Z").document
    assert doc["users"][0]["assigned_ips"] == ["10.0.0.5"]
