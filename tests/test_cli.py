# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""Tests for CLI entry point."""
import json

import pytest

from leanprompt import __version__
from leanprompt.cli import _load_batch, _safe_name, main

MARKET_PROMPT = (
    "Please provide a very comprehensive and extremely detailed analysis "
    "of current market trends."
)
FAST = ["-p", "12", "-g", "4", "-e", "2", "--seed", "1"]


@pytest.fixture
def use_oracle(monkeypatch):
    """Route the CLI to an offline oracle instead of a real backend."""
    def _install(oracle):
        monkeypatch.setattr("leanprompt.cli._make_oracle", lambda args: oracle)
        return oracle
    return _install


def test_version_output(capsys):
    main(["version"])
    out = capsys.readouterr().out
    assert "v{}".format(__version__) in out


def test_help_no_crash(capsys):
    """Running with no args prints help without crashing."""
    main([])
    out = capsys.readouterr().out
    assert "usage" in out.lower()


def test_help_lists_commands(capsys):
    with pytest.raises(SystemExit):
        main(["-h"])
    out = capsys.readouterr().out
    for command in ("optimize", "batch", "check", "version"):
        assert command in out


class TestOptimizeCommand:

    def test_report(self, capsys, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        main(["optimize", MARKET_PROMPT] + FAST)
        out = capsys.readouterr().out
        assert "Genetic Prompt Optimization" in out
        assert "Token reduction" in out
        assert keyword_oracle.closed

    def test_json_output(self, capsys, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        main(["optimize", MARKET_PROMPT, "--json"] + FAST)
        record = json.loads(capsys.readouterr().out)
        assert record["original_prompt"] == MARKET_PROMPT
        assert record["genetic_config"]["population_size"] == 12
        assert record["genetic_config"]["max_token_reduction"] == 0.3
        assert record["genetic_config"]["min_similarity"] == 0.85
        assert record["results"]["generation_count"] <= 4

    def test_reduction_is_a_percentage(self, capsys, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        main(["optimize", MARKET_PROMPT, "--json", "-r", "20", "-s", "0.9"] + FAST)
        record = json.loads(capsys.readouterr().out)
        assert record["genetic_config"]["max_token_reduction"] == pytest.approx(0.2)
        assert record["genetic_config"]["min_similarity"] == 0.9
        assert record["results"]["token_reduction_percent"] <= 20 + 1e-9

    def test_yaml_config_below_flags(self, capsys, tmp_path, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        config = tmp_path / "genetic.yaml"
        config.write_text("population_size: 14\nmin_similarity: 0.8\nmutation_rate: 0.3\n")
        main(["optimize", MARKET_PROMPT, "--json", "--config", str(config), "-p", "16", "-g", "3"])
        cfg = json.loads(capsys.readouterr().out)["genetic_config"]
        assert cfg["population_size"] == 16
        assert cfg["min_similarity"] == 0.8
        assert cfg["mutation_rate"] == 0.3
        assert cfg["max_token_reduction"] == 0.3
        assert cfg["elite_size"] == 5

    def test_flags_complete_yaml_config(self, capsys, tmp_path, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        config = tmp_path / "genetic.yaml"
        config.write_text("population_size: 4\n")
        main(["optimize", MARKET_PROMPT, "--json", "--config", str(config), "-e", "2", "-g", "2"])
        cfg = json.loads(capsys.readouterr().out)["genetic_config"]
        assert cfg["population_size"] == 4
        assert cfg["elite_size"] == 2

    def test_malformed_config_exits(self, capsys, tmp_path, use_oracle, make_bow_oracle):
        oracle = use_oracle(make_bow_oracle())
        config = tmp_path / "genetic.yaml"
        config.write_text("population_size: [\n")
        with pytest.raises(SystemExit) as exc:
            main(["optimize", MARKET_PROMPT, "--config", str(config)])
        assert exc.value.code == 1
        assert "Malformed YAML" in capsys.readouterr().err
        assert oracle.calls == 0

    def test_output_file(self, capsys, tmp_path, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        out_file = tmp_path / "results" / "market.json"
        main(["optimize", MARKET_PROMPT, "-o", str(out_file)] + FAST)
        data = json.loads(out_file.read_text(encoding="utf-8"))
        assert data["original_prompt"] == MARKET_PROMPT
        assert "Results saved" in capsys.readouterr().err

    def test_invalid_config_exits(self, capsys, use_oracle, make_bow_oracle):
        oracle = use_oracle(make_bow_oracle())
        with pytest.raises(SystemExit) as exc:
            main(["optimize", MARKET_PROMPT, "-p", "3", "-e", "5"])
        assert exc.value.code == 1
        assert "Error" in capsys.readouterr().err
        assert oracle.calls == 0

    def test_original_embedding_failure_exits(self, capsys, use_oracle, make_bow_oracle):
        oracle = use_oracle(make_bow_oracle(fail=lambda t: True))
        with pytest.raises(SystemExit) as exc:
            main(["optimize", MARKET_PROMPT] + FAST)
        assert exc.value.code == 1
        assert "original prompt" in capsys.readouterr().err
        assert oracle.closed


class TestBatchCommand:

    def test_batch(self, capsys, tmp_path, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        source = tmp_path / "prompts.json"
        source.write_text(json.dumps([
            {"name": "market", "prompt": MARKET_PROMPT},
            {"name": "second prompt!", "prompt": "Give me a really thorough analysis of the current market trends."},
        ]))
        out_dir = tmp_path / "optimized"
        main(["batch", str(source), "-o", str(out_dir)] + FAST)

        assert (out_dir / "market.json").exists()
        assert (out_dir / "second_prompt.json").exists()
        summary = json.loads((out_dir / "batch-summary.json").read_text(encoding="utf-8"))
        meta = summary["batch_metadata"]
        assert meta["total_prompts"] == 2
        assert meta["successful"] == 2
        assert meta["failed"] == 0
        assert meta["total_tokens_saved"] == meta["total_original_tokens"] - meta["total_optimized_tokens"]
        assert meta["genetic_config"]["population_size"] == 12
        assert "Batch summary" in capsys.readouterr().out
        assert keyword_oracle.closed

    def test_batch_records_failures(self, capsys, tmp_path, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        source = tmp_path / "prompts.yaml"
        source.write_text(
            "prompts:\n"
            "  - name: market\n"
            "    prompt: {}\n"
            "  - name: greeting\n"
            "    prompt: Hello there, how are you\n".format(MARKET_PROMPT)
        )
        out_dir = tmp_path / "optimized"
        main(["batch", str(source), "-o", str(out_dir)] + FAST)

        summary = json.loads((out_dir / "batch-summary.json").read_text(encoding="utf-8"))
        assert summary["batch_metadata"]["successful"] == 1
        assert summary["batch_metadata"]["failed"] == 1
        failed = [r for r in summary["results"] if not r["success"]]
        assert failed[0]["name"] == "greeting"
        assert "failed" in capsys.readouterr().out

    def test_missing_input(self, capsys, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main(["batch", str(tmp_path / "missing.json")])
        assert exc.value.code == 1
        assert "Input not found" in capsys.readouterr().err

    def test_malformed_input(self, capsys, tmp_path):
        source = tmp_path / "prompts.yaml"
        source.write_text("- name: market\n  prompt: [\n")
        with pytest.raises(SystemExit) as exc:
            main(["batch", str(source), "-o", str(tmp_path / "optimized")])
        assert exc.value.code == 1
        assert "Malformed YAML" in capsys.readouterr().err

    def test_batch_defaults(self, capsys, tmp_path, use_oracle, keyword_oracle):
        use_oracle(keyword_oracle)
        source = tmp_path / "prompts.json"
        source.write_text(json.dumps([{"prompt": MARKET_PROMPT}]))
        out_dir = tmp_path / "optimized"
        main(["batch", str(source), "-o", str(out_dir), "-g", "2", "--seed", "3"])
        summary = json.loads((out_dir / "batch-summary.json").read_text(encoding="utf-8"))
        cfg = summary["batch_metadata"]["genetic_config"]
        assert cfg["population_size"] == 30
        assert cfg["elite_size"] == 3
        assert (out_dir / "prompt_1.json").exists()


class TestBatchInput:

    def test_list(self, tmp_path):
        source = tmp_path / "p.json"
        source.write_text(json.dumps([{"name": "a", "prompt": "x"}, {"prompt": "y"}]))
        assert _load_batch(str(source)) == [("a", "x"), ("prompt_2", "y")]

    def test_missing_prompt_key(self, tmp_path):
        source = tmp_path / "p.json"
        source.write_text(json.dumps([{"name": "a"}]))
        with pytest.raises(ValueError, match="missing 'prompt'"):
            _load_batch(str(source))

    def test_not_a_list(self, tmp_path):
        source = tmp_path / "p.yaml"
        source.write_text("just a string\n")
        with pytest.raises(ValueError):
            _load_batch(str(source))

    @pytest.mark.parametrize("name,expected", [
        ("market", "market"),
        ("second prompt!", "second_prompt"),
        ("../etc/passwd", "etc_passwd"),
        ("...", "prompt"),
    ])
    def test_safe_name(self, name, expected):
        assert _safe_name(name) == expected


class TestCheckCommand:

    def test_reachable(self, capsys, use_oracle, make_bow_oracle):
        oracle = use_oracle(make_bow_oracle())
        main(["check"])
        assert "reachable" in capsys.readouterr().out
        assert oracle.closed

    def test_unreachable(self, capsys, use_oracle, make_bow_oracle):
        use_oracle(make_bow_oracle(fail=lambda t: True))
        with pytest.raises(SystemExit) as exc:
            main(["check"])
        assert exc.value.code == 1
        assert "not reachable" in capsys.readouterr().err
