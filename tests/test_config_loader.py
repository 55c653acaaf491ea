import json

import pytest
from pydantic import ValidationError

from psychmem.config.loader import (
    coerce_memory_config,
    convert_keys,
    convert_to_camel,
    get_db_path,
    load_config,
    save_config,
)
from psychmem.config.schema import Config, MemoryConfig
from psychmem.errors import ConfigInvalidError
from psychmem.memory.types import Classification


def test_convert_keys_is_recursive() -> None:
    data = {
        "memory": {
            "stmToLtmStrengthThreshold": 0.6,
            "scoringWeights": {"recency": 0.3},
        },
        "logLevel": "DEBUG",
    }

    converted = convert_keys(data)

    assert converted == {
        "memory": {
            "stm_to_ltm_strength_threshold": 0.6,
            "scoring_weights": {"recency": 0.3},
        },
        "log_level": "DEBUG",
    }


def test_convert_keys_leaves_list_values_alone() -> None:
    data = {"autoPromoteToLtm": ["bugfix", "decision"]}
    assert convert_keys(data) == {"auto_promote_to_ltm": ["bugfix", "decision"]}


def test_keys_survive_convert_round_trip() -> None:
    snake_data = {"memory": {"decay_rate": 0.02, "default_retrieval_limit": 10}, "log_level": "INFO"}
    assert convert_keys(convert_to_camel(snake_data)) == snake_data


def test_missing_file_gives_defaults(tmp_path) -> None:
    config = load_config(tmp_path / "absent.json")

    assert config.memory == MemoryConfig()
    assert config.memory.scoring_weights.importance == pytest.approx(0.25)
    assert config.memory.auto_promote_to_ltm == frozenset(
        {Classification.BUGFIX, Classification.LEARNING, Classification.DECISION}
    )


def test_load_camel_case_file(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "memory": {
            "stmToLtmStrengthThreshold": 0.6,
            "decayRate": 0.05,
            "autoPromoteToLtm": ["bugfix"],
            "scoringWeights": {"novelty": 0.2},
            "dbPath": "~/mem/test.db",
        }
    }))

    config = load_config(path)

    assert config.memory.stm_to_ltm_strength_threshold == pytest.approx(0.6)
    assert config.memory.decay_rate == pytest.approx(0.05)
    assert config.memory.auto_promote_to_ltm == frozenset({Classification.BUGFIX})
    assert config.memory.scoring_weights.novelty == pytest.approx(0.2)
    assert config.memory.scoring_weights.recency == pytest.approx(0.20)
    assert get_db_path(config).name == "test.db"
    assert "~" not in str(get_db_path(config))


@pytest.mark.parametrize("memory", [
    {"stmToLtmStrengthThreshold": 1.5},
    {"decayRate": -0.1},
    {"defaultRetrievalLimit": 0},
    {"scoringWeights": {"importance": 2.0}},
    {"autoPromoteToLtm": ["not-a-classification"]},
])
def test_out_of_range_values_are_rejected(tmp_path, memory) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"memory": memory}))

    with pytest.raises(ConfigInvalidError):
        load_config(path)


def test_invalid_json_is_rejected(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json")

    with pytest.raises(ConfigInvalidError):
        load_config(path)


def test_save_then_load(tmp_path) -> None:
    config = Config(memory=MemoryConfig(decay_rate=0.03, stm_to_ltm_frequency_threshold=5))
    path = save_config(config, tmp_path / "nested" / "config.json")

    saved = json.loads(path.read_text())
    assert saved["memory"]["decayRate"] == pytest.approx(0.03)
    assert load_config(path).memory == config.memory


def test_config_is_immutable() -> None:
    config = MemoryConfig()
    with pytest.raises(ValidationError):
        config.decay_rate = 0.5


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("PSYCHMEM_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("PSYCHMEM_MEMORY__DECAY_RATE", "0.05")

    config = Config()

    assert config.log_level == "DEBUG"
    assert config.memory.decay_rate == pytest.approx(0.05)


def test_coerce_memory_config() -> None:
    assert coerce_memory_config(None) == MemoryConfig()
    config = MemoryConfig(decay_rate=0.2)
    assert coerce_memory_config(config) is config
    assert coerce_memory_config({"decayRate": 0.2}).decay_rate == pytest.approx(0.2)

    with pytest.raises(ConfigInvalidError):
        coerce_memory_config({"stm_to_ltm_frequency_threshold": 0})


def test_coerce_memory_config_unwraps_root_config() -> None:
    root = Config(memory=MemoryConfig(decay_rate=0.2))
    assert coerce_memory_config(root).decay_rate == pytest.approx(0.2)
    assert coerce_memory_config(root) is root.memory


@pytest.mark.parametrize("value", [42, ["decayRate", 0.2], "decayRate=0.2"])
def test_coerce_memory_config_rejects_non_mappings(value) -> None:
    with pytest.raises(ConfigInvalidError):
        coerce_memory_config(value)
