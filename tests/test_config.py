import base64
import textwrap

import pytest

from statedelta.compare import Comparator
from statedelta.config import build_registry, load_config
from statedelta.errors import ConfigError

PREFIX = "SDTEST_"


def _write(tmp_path, text):
    path = tmp_path / "statedelta.yml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return (str(path),)


def test_defaults_when_no_file(tmp_path):
    cfg = load_config(files=(str(tmp_path / "missing.yml"),), env_prefix=PREFIX)
    assert cfg.logging.level == "INFO"
    assert cfg.logging.mask_secrets is True
    assert cfg.normalization.builtin is True
    assert cfg.normalization.folding == []


def test_file_then_env_then_override_precedence(tmp_path, monkeypatch):
    files = _write(tmp_path, """
      logging:
        level: WARNING
        mask_secrets: true
      normalization:
        builtin: true
    """)
    monkeypatch.setenv(PREFIX + "LOGGING__MASK_SECRETS", "false")
    monkeypatch.setenv(PREFIX + "LOGGING__LEVEL", "error")

    cfg = load_config({"logging": {"level": "debug"}}, files=files, env_prefix=PREFIX)

    assert cfg.logging.level == "DEBUG"           # override wins, upper-cased
    assert cfg.logging.mask_secrets is False      # env coerced to bool
    assert cfg.normalization.builtin is True      # from file


def test_env_interpolation(tmp_path, monkeypatch):
    files = _write(tmp_path, """
      logging:
        level: "${SDTEST_LEVEL_SOURCE}"
    """)
    monkeypatch.setenv("SDTEST_LEVEL_SOURCE", "WARNING")
    cfg = load_config(files=files, env_prefix="UNUSED_")
    assert cfg.logging.level == "WARNING"


def test_folding_rules_build_registry(tmp_path):
    files = _write(tmp_path, """
      normalization:
        folding:
          - name: blob-plain
            source: spec.plain
            target: spec.encoded
            match: {kind: Blob}
          - name: env-vars
            source: env
            target: vars
            encoding: identity
    """)
    cfg = load_config(files=files, env_prefix=PREFIX)
    registry = build_registry(cfg)
    assert [r.name for r in registry] == ["secret-string-data", "blob-plain", "env-vars"]
    assert not registry.frozen

    encoded = base64.b64encode(b"v").decode("ascii")
    cmp = Comparator(registry)
    assert cmp.compare(
        {"kind": "Blob", "spec": {"plain": {"k": "v"}}},
        {"kind": "Blob", "spec": {"encoded": {"k": encoded}}},
    ) == []


def test_builtin_rules_can_be_disabled(tmp_path):
    files = _write(tmp_path, """
      normalization:
        builtin: "no"
        folding:
          - {name: only, source: a, target: b}
    """)
    registry = build_registry(load_config(files=files, env_prefix=PREFIX))
    assert [r.name for r in registry] == ["only"]


@pytest.mark.parametrize("folding,message", [
    ("[{name: x, source: a}]", "target"),
    ("[{name: x, source: a, target: b, encoding: rot13}]", "rot13"),
    ("[{name: x, source: a, target: b, colour: red}]", "colour"),
    ("[{name: x, source: a, target: b, match: [1]}]", "match"),
    ("[just-a-string]", "mapping"),
    ("{name: x}", "list"),
])
def test_invalid_folding_entries(tmp_path, folding, message):
    files = _write(tmp_path, f"""
      normalization:
        folding: {folding}
    """)
    with pytest.raises(ConfigError) as exc:
        load_config(files=files, env_prefix=PREFIX)
    assert message in str(exc.value)


def test_invalid_log_level(tmp_path):
    with pytest.raises(ConfigError):
        load_config({"logging": {"level": "LOUD"}},
                    files=(str(tmp_path / "missing.yml"),), env_prefix=PREFIX)


def test_top_level_must_be_mapping(tmp_path):
    files = _write(tmp_path, "- 1\n- 2\n")
    with pytest.raises(ConfigError):
        load_config(files=files, env_prefix=PREFIX)


def test_config_error_is_value_error(tmp_path):
    with pytest.raises(ValueError):
        load_config({"logging": {"verbosity": 3}},
                    files=(str(tmp_path / "missing.yml"),), env_prefix=PREFIX)


@pytest.mark.parametrize("folding,message", [
    ("[{name: x, source: data, target: data}]", "folding[0]"),
    ("[{name: x, source: spec.x, target: spec}]", "overlap"),
    ("[{name: ok, source: a, target: b}, {name: x, source: a..b, target: c}]", "folding[1]"),
])
def test_unbuildable_folding_entries(tmp_path, folding, message):
    files = _write(tmp_path, f"""
      normalization:
        folding: {folding}
    """)
    with pytest.raises(ConfigError) as exc:
        load_config(files=files, env_prefix=PREFIX)
    assert message in str(exc.value)


def test_unknown_normalization_key(tmp_path):
    files = _write(tmp_path, """
      normalization:
        builtins: false
    """)
    with pytest.raises(ConfigError) as exc:
        load_config(files=files, env_prefix=PREFIX)
    assert "builtins" in str(exc.value)


def test_section_must_be_mapping(tmp_path):
    files = _write(tmp_path, """
      logging: loud
    """)
    with pytest.raises(ConfigError) as exc:
        load_config(files=files, env_prefix=PREFIX)
    assert "logging" in str(exc.value)


def test_configured_rule_overlapping_builtin_runs_after_it(tmp_path):
    files = _write(tmp_path, """
      normalization:
        folding:
          - name: secret-again
            source: stringData
            target: data
            encoding: identity
            match: {kind: Secret}
    """)
    registry = build_registry(load_config(files=files, env_prefix=PREFIX))
    assert [r.name for r in registry] == ["secret-string-data", "secret-again"]

    # the built-in folds first, so the identity rule has nothing left to do
    doc = {"kind": "Secret", "stringData": {"k": "v"}}
    out = registry.normalize_all(doc)
    assert out == {"kind": "Secret", "data": {"k": base64.b64encode(b"v").decode("ascii")}}


def test_match_list_accepts_alternatives(tmp_path):
    files = _write(tmp_path, """
      normalization:
        builtin: false
        folding:
          - name: blob-plain
            source: plain
            target: encoded
            match: {apiVersion: [example.io/v1, example.io/v2], kind: Blob}
    """)
    (rule,) = build_registry(load_config(files=files, env_prefix=PREFIX))
    assert rule.applies({"apiVersion": "example.io/v2", "kind": "Blob"})
    assert not rule.applies({"apiVersion": "example.io/v3", "kind": "Blob"})
    assert not rule.applies({"kind": "Blob"})
