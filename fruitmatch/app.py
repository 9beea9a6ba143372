import argparse
import json
import random
from pathlib import Path

from . import __version__
from .config import Settings, load_settings
from .llm import LLMClient
from .logger import get_logger
from .models import FruitKind
from .narrative import NarrativePolicy
from .pipeline import IncomingFruitPipeline, PipelineError
from .schema import SchemaError, parse_fruit, validate_fruit
from .storage import DuplicateAlgorithmError, FruitStore, StorageError


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _read_json(path_str: str):
    input_path = Path(path_str)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")
    with input_path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Input is not valid JSON: {e}")


def build_pipeline(settings: Settings, store: FruitStore, seed=None) -> IncomingFruitPipeline:
    llm = LLMClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
    )
    return IncomingFruitPipeline(
        store,
        llm,
        algorithm_key=settings.algorithm_key,
        narrative_policy=NarrativePolicy(settings.narrative_policy),
        narrative_timeout=settings.narrative_timeout,
        rng=random.Random(seed),
        serialize_arrivals=settings.serialize_arrivals,
    )


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {raw!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def cmd_incoming(args: argparse.Namespace, settings: Settings, store: FruitStore) -> None:
    pipeline = build_pipeline(settings, store, seed=args.seed)
    if args.kind == "random":
        kind = pipeline.rng.choice(list(FruitKind))
    else:
        kind = FruitKind(args.kind)
    try:
        result = pipeline.run(kind)
    except PipelineError as e:
        raise SystemExit(str(e))
    _print_json(result.to_dict())


def cmd_ingest(args: argparse.Namespace, settings: Settings, store: FruitStore) -> None:
    data = _read_json(args.input)
    try:
        profile = parse_fruit(data)
    except SchemaError as e:
        print("Invalid:")
        for err in e.errors:
            print(f" - {err}")
        raise SystemExit(2)

    pipeline = build_pipeline(settings, store, seed=args.seed)
    try:
        result = pipeline.process(profile)
    except PipelineError as e:
        raise SystemExit(str(e))
    _print_json(result.to_dict())


def cmd_validate(args: argparse.Namespace, settings: Settings, store: FruitStore) -> None:
    errors = validate_fruit(_read_json(args.input))
    if errors:
        print("Invalid:")
        for e in errors:
            print(f" - {e}")
        raise SystemExit(2)
    print("Valid")


def cmd_add_algorithm(args: argparse.Namespace, settings: Settings, store: FruitStore) -> None:
    try:
        default_config = json.loads(args.default_config) if args.default_config else None
    except json.JSONDecodeError as e:
        raise SystemExit(f"--default-config is not valid JSON: {e}")
    try:
        algorithm = store.add_algorithm(
            key=args.key,
            name=args.name,
            version=args.algorithm_version,
            description=args.description,
            status=args.status,
            default_config=default_config,
        )
    except DuplicateAlgorithmError as e:
        _print_json({"error": str(e), "existing": e.existing.to_dict()})
        raise SystemExit(1)
    _print_json({"message": "Algorithm registered successfully", "algorithm": algorithm.to_dict()})


def cmd_list(args: argparse.Namespace, settings: Settings, store: FruitStore) -> None:
    fruits = store.list_fruits(FruitKind(args.kind))
    if not fruits:
        print(f"No {args.kind}s in store.")
        return
    _print_json([f.to_dict() for f in fruits])


def cmd_stats(args: argparse.Namespace, settings: Settings, store: FruitStore) -> None:
    summary = store.summary()
    summary["best_matches"] = [
        m.to_dict() for m in store.list_matches(best_only=True, newest_first=True, limit=args.recent)
    ]
    summary["algorithms"] = [a.to_dict() for a in store.list_algorithms()]
    _print_json(summary)


def main():
    parser = argparse.ArgumentParser(prog="fruitmatch", description="Apple and orange matchmaking")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="SQLite database path (default: FRUITMATCH_DB_PATH or data/fruitmatch.db)")

    subparsers = parser.add_subparsers(dest="command")
    inc = subparsers.add_parser("incoming", help="Generate a new fruit, match it and store the results")
    inc.add_argument("--kind", choices=["apple", "orange", "random"], default="random", help="Fruit kind (default: random)")
    inc.add_argument("--seed", type=int, help="Seed for generation and tie-breaking")
    inc.set_defaults(func=cmd_incoming)

    ing = subparsers.add_parser("ingest", help="Match a fruit read from a JSON file")
    ing.add_argument("--input", required=True, help="Path to fruit JSON (type, attributes, preferences)")
    ing.add_argument("--seed", type=int, help="Seed for tie-breaking")
    ing.set_defaults(func=cmd_ingest)

    val = subparsers.add_parser("validate", help="Validate a fruit JSON file")
    val.add_argument("--input", required=True, help="Path to fruit JSON")
    val.set_defaults(func=cmd_validate)

    alg = subparsers.add_parser("add-algorithm", help="Register a matching algorithm")
    alg.add_argument("--key", required=True)
    alg.add_argument("--name", required=True)
    alg.add_argument("--version", dest="algorithm_version", required=True)
    alg.add_argument("--description", required=True)
    alg.add_argument("--status", choices=["active", "deprecated"], default="active")
    alg.add_argument("--default-config", help="JSON object with default settings")
    alg.set_defaults(func=cmd_add_algorithm)

    lst = subparsers.add_parser("list", help="List stored fruits of one kind")
    lst.add_argument("--kind", choices=["apple", "orange"], required=True)
    lst.set_defaults(func=cmd_list)

    sts = subparsers.add_parser("stats", help="Show counts, success rate and recent best matches")
    sts.add_argument("--recent", type=_positive_int, default=10, help="How many recent best matches to show, newest first")
    sts.set_defaults(func=cmd_stats)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if not hasattr(args, "func"):
        parser.print_help()
        return

    try:
        settings = load_settings()
    except ValueError as e:
        raise SystemExit(f"Configuration error: {e}")

    logger = get_logger()
    logger.configure(level=settings.log_level, log_dir=settings.log_dir)

    db_path = Path(args.db) if args.db else settings.db_path
    try:
        store = FruitStore(db_path)
    except StorageError as e:
        raise SystemExit(f"Cannot open database {db_path}: {e}")
    try:
        args.func(args, settings, store)
    except StorageError as e:
        raise SystemExit(f"Storage error: {e}")
    finally:
        store.close()
        logger.log_metrics_summary()


if __name__ == "__main__":
    main()
