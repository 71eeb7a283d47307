# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""leanprompt CLI — compress prompts from the terminal."""
import argparse
import asyncio
import json
import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="leanprompt",
        description="Evolve the shortest version of a prompt that keeps its meaning.",
    )
    sub = parser.add_subparsers(dest="command")

    # leanprompt optimize "Please provide a very detailed analysis..."
    opt_p = sub.add_parser("optimize", help="Optimize a single prompt")
    opt_p.add_argument("prompt", help="The prompt to optimize")
    _add_search_args(opt_p, _OPTIMIZE_DEFAULTS)
    opt_p.add_argument("--mutation-rate", "-m", type=float, help="Mutation rate (default: 0.1)")
    opt_p.add_argument("--crossover-rate", "-c", type=float, help="Crossover rate (default: 0.8)")
    opt_p.add_argument("--output", "-o", help="Write the result as JSON to this file")
    opt_p.add_argument("--json", action="store_true", help="Print the raw JSON record")
    opt_p.add_argument("--verbose", "-v", action="store_true", help="Show per-generation history and progress logs")

    # leanprompt batch prompts.json
    batch_p = sub.add_parser("batch", help="Optimize every prompt in a JSON/YAML list of {name, prompt}")
    batch_p.add_argument("input", help="Input file")
    _add_search_args(batch_p, _BATCH_DEFAULTS)
    batch_p.add_argument("--output", "-o", default="./genetic-optimized", help="Output directory")
    batch_p.add_argument("--verbose", "-v", action="store_true", help="Show progress logs")

    # leanprompt check
    check_p = sub.add_parser("check", help="Check that the embedding backend is reachable")
    _add_backend_args(check_p)

    # leanprompt version
    sub.add_parser("version", help="Show version")

    args = parser.parse_args(argv)
    _setup_logging(getattr(args, "verbose", False))

    if args.command == "optimize":
        _cmd_optimize(args)
    elif args.command == "batch":
        _cmd_batch(args)
    elif args.command == "check":
        _cmd_check(args)
    elif args.command == "version":
        _cmd_version()
    else:
        parser.print_help()


_RESET = "\033[0m"
_DIM = "\033[90m"
_BOLD = "\033[1m"
_GREEN = "\033[32m"
_RED = "\033[31m"


# Per-command search defaults; a --config file overrides these, flags override both.
_OPTIMIZE_DEFAULTS = {"population_size": 50, "max_generations": 100, "elite_size": 5}
_BATCH_DEFAULTS = {"population_size": 30, "max_generations": 50, "elite_size": 3}

# argparse dest -> GeneticConfig field
_FLAG_FIELDS = {
    "population": "population_size",
    "generations": "max_generations",
    "elite_size": "elite_size",
    "mutation_rate": "mutation_rate",
    "crossover_rate": "crossover_rate",
    "seed": "seed",
}


def _add_search_args(p, defaults):
    p.set_defaults(search_defaults=defaults)
    p.add_argument("--reduction", "-r", type=float,
                   help="Max token reduction percentage (default: 30)")
    p.add_argument("--similarity", "-s", type=float,
                   help="Minimum similarity threshold (default: 0.85)")
    p.add_argument("--population", "-p", type=int,
                   help="Population size (default: {})".format(defaults["population_size"]))
    p.add_argument("--generations", "-g", type=int,
                   help="Maximum generations (default: {})".format(defaults["max_generations"]))
    p.add_argument("--elite-size", "-e", type=int,
                   help="Elite size (default: {})".format(defaults["elite_size"]))
    p.add_argument("--seed", type=int, help="Random seed for reproducible runs")
    p.add_argument("--config", help="YAML file with genetic config overrides")
    _add_backend_args(p)


def _add_backend_args(p):
    p.add_argument("--provider", help="Embedding backend (ollama, openai)")
    p.add_argument("--model", help="Embedding model name")
    p.add_argument("--base-url", help="Embedding API base URL")
    p.add_argument("--api-key", "-k", help="API key (or use env vars)")


def _setup_logging(verbose):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(message)s",
    )


def _fail(message):
    print("{}Error: {}{}".format(_RED, message, _RESET), file=sys.stderr)
    sys.exit(1)


def _make_oracle(args):
    import dataclasses

    from leanprompt.config import OptimizerSettings
    from leanprompt.embeddings import create_oracle_from_settings

    overrides = {}
    for dest, field in (("provider", "provider"), ("model", "embedding_model"),
                        ("base_url", "base_url"), ("api_key", "api_key")):
        value = getattr(args, dest, None)
        if value:
            overrides[field] = value
    # replace() re-runs __post_init__ on the merged values
    settings = dataclasses.replace(OptimizerSettings.from_env(), **overrides)
    return create_oracle_from_settings(settings)


def _build_config(args):
    """Merge defaults, --config YAML and explicit flags, then validate once."""
    from leanprompt.evolution.loop import read_config_file
    from leanprompt.evolution.models import resolve_config

    data = dict(args.search_defaults)
    if args.config:
        data.update(read_config_file(args.config))
    for dest, field in _FLAG_FIELDS.items():
        value = getattr(args, dest, None)
        if value is not None:
            data[field] = value

    reduction = args.reduction / 100 if args.reduction is not None else None
    if reduction is None and "max_token_reduction" not in data:
        reduction = 0.3
    similarity = args.similarity
    if similarity is None and "min_similarity" not in data:
        similarity = 0.85
    return resolve_config(data, reduction, similarity)


def _cmd_optimize(args):
    from leanprompt.errors import LeanPromptError
    from leanprompt.evolution.loop import (
        GeneticOptimizer, format_optimization_report, result_to_record, save_result,
    )

    try:
        config = _build_config(args)
    except LeanPromptError as e:
        _fail(e)

    oracle = _make_oracle(args)

    async def _run():
        try:
            return await GeneticOptimizer(oracle=oracle, config=config).run(args.prompt)
        finally:
            await oracle.close()

    try:
        result = asyncio.run(_run())
    except LeanPromptError as e:
        _fail(e)

    if args.json:
        print(json.dumps(result_to_record(result, config), ensure_ascii=False, indent=2))
    else:
        print(format_optimization_report(result, verbose=args.verbose))

    if args.output:
        path = save_result(result, args.output, config)
        print("{}Results saved to: {}{}".format(_DIM, path, _RESET), file=sys.stderr)


def _load_batch(path):
    """Read a list of {name, prompt} entries from JSON or YAML."""
    import yaml

    from leanprompt.errors import ConfigError

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError("Input not found: {}".format(path))
    with open(p, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or []
        except yaml.YAMLError as e:
            raise ConfigError("Malformed YAML in {}: {}".format(path, e)) from e
    if isinstance(data, dict):
        data = data.get("prompts", [])
    if not isinstance(data, list):
        raise ValueError("Input must be a list of {name, prompt} entries")

    items = []
    for i, entry in enumerate(data):
        if not isinstance(entry, dict) or "prompt" not in entry:
            raise ValueError("Entry {} is missing 'prompt'".format(i))
        items.append((str(entry.get("name") or "prompt_{}".format(i + 1)), str(entry["prompt"])))
    return items


def _safe_name(name):
    return re.sub(r"[^\w.-]+", "_", name).strip("._") or "prompt"


def _cmd_batch(args):
    from leanprompt.errors import LeanPromptError
    from leanprompt.evolution.loop import GeneticOptimizer, result_to_record, save_result

    try:
        items = _load_batch(args.input)
        config = _build_config(args)
    except (OSError, ValueError) as e:
        _fail(e)

    out_dir = Path(args.output)
    out_dir.mkdir(parents=True, exist_ok=True)
    print("Optimizing {} prompts".format(len(items)))

    oracle = _make_oracle(args)
    optimizer = GeneticOptimizer(oracle=oracle, config=config)

    async def _run_all():
        entries = []
        try:
            for i, (name, prompt) in enumerate(items, 1):
                print("[{}/{}] {}".format(i, len(items), name))
                try:
                    result = await optimizer.run(prompt)
                except LeanPromptError as e:
                    print("   {}failed: {}{}".format(_RED, e, _RESET))
                    entries.append({"name": name, "original_prompt": prompt, "success": False, "error": str(e)})
                    continue
                save_result(result, out_dir / "{}.json".format(_safe_name(name)), config)
                print("   {}{:.1f}% reduction, {:.1f}% similarity, {} generations{}".format(
                    _GREEN, result.token_reduction_percent, result.similarity_score * 100,
                    result.generation_count, _RESET,
                ))
                entry = result_to_record(result)
                entry.update({"name": name, "success": True})
                entries.append(entry)
        finally:
            await oracle.close()
        return entries

    entries = asyncio.run(_run_all())
    summary = _summarize_batch(entries, config)

    summary_file = out_dir / "batch-summary.json"
    with open(summary_file, "w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)

    meta = summary["batch_metadata"]
    print()
    print("{}Batch summary{}".format(_BOLD, _RESET))
    print("  prompts: {}  successful: {}  failed: {}".format(
        meta["total_prompts"], meta["successful"], meta["failed"],
    ))
    print("  tokens: {} -> {} ({:.1f}% reduction)".format(
        meta["total_original_tokens"], meta["total_optimized_tokens"], meta["average_token_reduction"],
    ))
    print("{}Summary saved to: {}{}".format(_DIM, summary_file, _RESET))


def _summarize_batch(entries, config):
    ok = [e for e in entries if e.get("success")]
    original = sum(e["results"]["original_tokens"] for e in ok)
    optimized = sum(e["results"]["optimized_tokens"] for e in ok)
    total_ms = sum(e["results"]["processing_time_ms"] for e in ok)
    return {
        "batch_metadata": {
            "total_prompts": len(entries),
            "successful": len(ok),
            "failed": len(entries) - len(ok),
            "total_original_tokens": original,
            "total_optimized_tokens": optimized,
            "total_tokens_saved": original - optimized,
            "average_token_reduction": (100 * (original - optimized) / original) if original else 0.0,
            "total_processing_time_ms": total_ms,
            "average_processing_time_ms": (total_ms / len(ok)) if ok else 0.0,
            "genetic_config": config.model_dump(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "results": entries,
    }


def _cmd_check(args):
    oracle = _make_oracle(args)

    async def _probe():
        try:
            if hasattr(oracle, "check_server"):
                if not await oracle.check_server():
                    return False, []
                return True, await oracle.list_models()
            outcome = await oracle.embed_outcome("ping")
            return outcome.ok, []
        finally:
            await oracle.close()

    reachable, models = asyncio.run(_probe())
    if not reachable:
        _fail("embedding backend not reachable")
    print("{}✔{} embedding backend reachable".format(_GREEN, _RESET))
    for name in models:
        print("  {}{}{}".format(_DIM, name, _RESET))


def _cmd_version():
    from leanprompt import __version__

    print("leanprompt v{}".format(__version__))
