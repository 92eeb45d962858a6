"""Tests for src/profiles/config.py - profile.yaml loading and validation."""

import copy

import pytest
import yaml

from src.profiles.config import (
    DEFAULT_PROFILE_PATH,
    GROUP_ORDER,
    load_profile_config,
    profile_config_from_dict,
)
from src.profiles.errors import ConfigValidationError
from src.profiles.policies import load_policy_catalog


@pytest.fixture(scope="module")
def raw_profile():
    with open(DEFAULT_PROFILE_PATH) as f:
        return yaml.safe_load(f)


@pytest.fixture
def raw(raw_profile):
    return copy.deepcopy(raw_profile)


class TestLoadProfileConfig:
    def test_shipped_profile_loads(self):
        config = load_profile_config()
        assert config.display_mode == "r9twqeAdnRe"
        assert config.duplicate_identifiers == "strict"
        assert "NPL" in config.country_lists.elimination_estimate_exception
        assert config.confirmed_community == ("WuN5NAumc6J", "Z8mZlV7MnkP")
        assert config.survey_view == "WQHkspRCcD9"

    def test_load_from_tmp_file(self, tmp_path, raw):
        raw["max_workers"] = 3
        path = tmp_path / "profile.yaml"
        path.write_text(yaml.safe_dump(raw))
        assert load_profile_config(path).max_workers == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_profile_config(tmp_path / "missing.yaml")

    def test_config_is_read_only(self):
        config = load_profile_config()
        with pytest.raises(TypeError):
            config.population["total"] = "other"


class TestValidation:
    def test_missing_section(self, raw):
        del raw["estimates"]
        with pytest.raises(ConfigValidationError, match="estimates"):
            profile_config_from_dict(raw)

    def test_missing_field_in_section(self, raw):
        del raw["cases"]["indigenous_deaths"]
        with pytest.raises(ConfigValidationError, match="indigenous_deaths"):
            profile_config_from_dict(raw)

    def test_incomplete_efficacy_row(self, raw):
        del raw["efficacy"][1]["median"]
        with pytest.raises(ConfigValidationError, match=r"efficacy\[1\]"):
            profile_config_from_dict(raw)

    def test_unknown_transformation_rule(self, raw):
        raw["transformations"]["BJXyRAkf2HZ"] = ["multiplyBy1000"]
        with pytest.raises(ConfigValidationError):
            profile_config_from_dict(raw)

    def test_invalid_duplicate_policy(self, raw):
        raw["duplicate_identifiers"] = "ignore"
        with pytest.raises(ConfigValidationError, match="duplicate_identifiers"):
            profile_config_from_dict(raw)

    def test_overwrite_policy_accepted(self, raw):
        raw["duplicate_identifiers"] = "OVERWRITE"
        assert profile_config_from_dict(raw).duplicate_identifiers == "overwrite"

    def test_invalid_max_workers(self, raw):
        raw["max_workers"] = 0
        with pytest.raises(ConfigValidationError):
            profile_config_from_dict(raw)

    def test_missing_option_set(self, raw):
        del raw["option_sets"]["insecticide_class"]
        with pytest.raises(ConfigValidationError, match="insecticide_class"):
            profile_config_from_dict(raw)

    def test_community_must_be_list(self, raw):
        raw["cases"]["confirmed_community"] = "WuN5NAumc6J"
        with pytest.raises(ConfigValidationError, match="confirmed_community"):
            profile_config_from_dict(raw)

    def test_top_level_must_be_mapping(self):
        with pytest.raises(ConfigValidationError):
            profile_config_from_dict(["not", "a", "mapping"])


class TestQueryGroups:
    def test_groups_follow_fold_order(self):
        config = load_profile_config()
        names = [name for name, _ in config.query_groups(load_policy_catalog())]
        assert names == list(GROUP_ORDER)

    def test_policy_groups_come_from_catalog(self):
        config = load_profile_config()
        catalog = load_policy_catalog()
        groups = dict(config.query_groups(catalog))
        assert groups["policy_yes_no"] == tuple(d.yes_no_identifier for d in catalog)
        assert groups["policy_year"] == tuple(d.year_adopted_identifier for d in catalog)

    def test_empty_catalog_drops_policy_groups(self):
        names = [name for name, _ in load_profile_config().query_groups(())]
        assert "policy_yes_no" not in names
        assert "policy_year" not in names

    def test_cases_group_includes_indigenous_deaths(self):
        groups = dict(load_profile_config().query_groups(()))
        assert "xzCJwslAdtp" in groups["cases"]
        assert "Z8mZlV7MnkP" in groups["cases"]

    def test_shipped_groups_have_no_duplicates(self):
        config = load_profile_config()
        identifiers = [i for _, ids in config.query_groups(load_policy_catalog()) for i in ids]
        assert len(identifiers) == len(set(identifiers))

    def test_text_identifiers_cover_layout(self):
        config = load_profile_config()
        text = config.text_identifiers()
        assert "YNRlSV0dMPf" in text
        assert "e0EfJGiSb79" in text
        assert "aLWOXICfAbR" in text
        assert config.p_falciparum not in text
