import pytest
import yaml
from pydantic import ValidationError

from playground.config import PlaygroundConfig, load_config, save_config
from playground.schemas import RunOptions


def test_defaults() -> None:
    config = PlaygroundConfig()

    assert config.timeout_ms == 3000
    assert config.cap_bytes == 16000
    assert config.engine == "sandbox.interpreter:PythonInterpreter"
    assert config.memory_limit_mb is None


def test_load_config_from_yaml(tmp_path) -> None:
    config_file = tmp_path / "playground.yaml"
    with open(config_file, "w") as f:
        yaml.dump({"timeout_ms": 1000, "cap_bytes": 4000, "load_timeout_s": 5}, f)

    config = load_config(config_file)

    assert config.timeout_ms == 1000
    assert config.cap_bytes == 4000
    assert config.load_timeout_s == 5.0


def test_empty_yaml_gives_defaults(tmp_path) -> None:
    config_file = tmp_path / "empty.yaml"
    config_file.write_text("")

    assert load_config(config_file) == PlaygroundConfig()


def test_save_and_reload(tmp_path) -> None:
    config = PlaygroundConfig(timeout_ms=10000, cap_bytes=64000)
    path = tmp_path / "nested" / "config.yaml"

    save_config(config, path)

    assert load_config(path) == config


def test_missing_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        _ = load_config("/nonexistent/playground.yaml")


def test_unsupported_values_raise_value_error(tmp_path) -> None:
    config_file = tmp_path / "bad.yaml"
    with open(config_file, "w") as f:
        yaml.dump({"timeout_ms": 2000}, f)

    with pytest.raises(ValueError, match="Invalid configuration"):
        _ = load_config(config_file)


def test_non_mapping_yaml_raises(tmp_path) -> None:
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- 1\n- 2\n")

    with pytest.raises(ValueError):
        _ = load_config(config_file)


def test_engine_must_name_attribute() -> None:
    with pytest.raises(ValidationError):
        _ = PlaygroundConfig(engine="sandbox.interpreter")


def test_run_options_fall_back_to_config() -> None:
    config = PlaygroundConfig(timeout_ms=5000)

    assert config.run_options() == RunOptions(timeout_ms=5000, cap_bytes=16000)
    assert config.run_options(cap_bytes=4000) == RunOptions(timeout_ms=5000, cap_bytes=4000)


@pytest.mark.parametrize("timeout_ms", [0, 999, 2000, 60000])
def test_run_options_reject_unlisted_timeouts(timeout_ms) -> None:
    with pytest.raises(ValidationError):
        _ = RunOptions(timeout_ms=timeout_ms)
