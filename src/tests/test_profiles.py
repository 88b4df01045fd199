import pytest

import profiles

CONFIG = """
# comment
; another comment
[default]
region = eu-west-1

[profile dev]
sso_session = corp
[profile  prod ]
[sso-session corp]
sso_region = eu-west-1
"""

CREDENTIALS = """
[default]
aws_access_key_id = x
[legacy]
"""


def test_parse_profile_names():
    assert profiles.parse_profile_names(CONFIG.splitlines()) == {"default", "dev", "prod"}


def test_load_profiles_sorted_and_deduplicated(tmp_path):
    config_file = tmp_path / "config"
    credentials_file = tmp_path / "credentials"
    config_file.write_text("[profile b]\n[profile a]\n[default]\n")
    credentials_file.write_text(CREDENTIALS)

    assert profiles.load_profiles([config_file, credentials_file]) == ["a", "b", "default", "legacy"]


def test_missing_files_contribute_nothing(tmp_path):
    (tmp_path / "credentials").write_text("[only]\n")

    assert profiles.load_profiles([tmp_path / "config", tmp_path / "credentials"]) == ["only"]
    assert profiles.load_profiles([tmp_path / "nope"]) == []


def test_unreadable_path_propagates(tmp_path):
    with pytest.raises(IsADirectoryError):
        profiles.load_profiles([tmp_path])


def test_default_paths_honour_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "cfg"))
    monkeypatch.delenv("AWS_SHARED_CREDENTIALS_FILE", raising=False)

    paths = profiles.default_profile_paths()

    assert paths[0] == tmp_path / "cfg"
    assert paths[1].name == "credentials"
