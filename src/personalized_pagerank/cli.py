"""
Command-line entry point.

  personalized-pagerank build --input edges.csv --base out/ --sources 1,7
  personalized-pagerank run --base out/ --start 0 --end 10 --num-nodes 10 --sources 1,7

'build' writes iteration 0 from an edge list; 'run' iterates from
iter<start> to iter<end> under the same base path.
"""

import argparse
import math
import os
import sys
from urllib.parse import urlparse

from pyspark import SparkContext

from personalized_pagerank.common.data_loader import get_data_path
from personalized_pagerank.common.log_config import configure_logging
from personalized_pagerank.common.spark_session import create_spark_session
from personalized_pagerank.core.config import DEFAULT_ALPHA, PageRankConfig, parse_sources
from personalized_pagerank.core.errors import ConfigurationError
from personalized_pagerank.driver import PageRankDriver
from personalized_pagerank.snapshots import bootstrap, iteration_path, read_snapshot, top_scores


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="personalized-pagerank",
        description="Personalized PageRank over log-space mass with PySpark",
    )
    parser.add_argument("--master", default="local[*]", help="Spark master URL")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="write iteration 0 from an edge list")
    build.add_argument(
        "--input",
        default=str(get_data_path("sample_graph.csv")),
        help="edge list, one 'src,dst' or 'src dst1 dst2 ...' per line",
    )
    build.add_argument("--base", required=True, help="base path")
    build.add_argument("--sources", required=True, help="source nodes, comma separated")
    build.add_argument(
        "--include-targets",
        action="store_true",
        help="give nodes that only appear as edge targets an empty record",
    )

    run = subparsers.add_parser("run", help="iterate personalized PageRank")
    run.add_argument("--base", required=True, help="base path")
    run.add_argument("--start", required=True, type=int, help="start iteration")
    run.add_argument("--end", required=True, type=int, help="end iteration")
    run.add_argument("--num-nodes", required=True, type=int, help="number of nodes")
    run.add_argument("--sources", required=True, help="source nodes, comma separated")
    run.add_argument("--alpha", type=float, default=DEFAULT_ALPHA, help="random jump factor")
    run.add_argument("--use-combiner", action="store_true", help="use combiner")
    run.add_argument("--range", action="store_true", help="use range partitioner")
    run.add_argument(
        "--per-source-missing-mass",
        action="store_true",
        help="compute missing mass for every source instead of source 0 only",
    )
    run.add_argument("--top", type=int, default=0, help="print the top K nodes per source")

    return parser


def absolute_local_paths(args: argparse.Namespace) -> argparse.Namespace:
    """Make scheme-less --input and --base paths absolute.

    The Spark session may start from another working directory, so
    relative local paths are pinned to the caller's directory first.
    Hadoop URIs (hdfs://, s3a://, file://, ...) are left alone.
    """
    for name in ("input", "base"):
        value = getattr(args, name, None)
        if value and not urlparse(value).scheme:
            setattr(args, name, os.path.abspath(value))
    return args


def config_from_args(args: argparse.Namespace) -> PageRankConfig:
    """Map parsed options onto a validated PageRankConfig."""
    sources = parse_sources(args.sources)
    if args.command == "build":
        return PageRankConfig(sources=sources, base_path=args.base)

    return PageRankConfig(
        sources=sources,
        alpha=args.alpha,
        base_path=args.base,
        start=args.start,
        end=args.end,
        num_nodes=args.num_nodes,
        use_combiner=args.use_combiner,
        use_range=args.range,
        per_source_missing_mass=args.per_source_missing_mass,
    )


def build_command(sc: SparkContext, args: argparse.Namespace, config: PageRankConfig) -> None:
    bootstrap(sc, args.input, config, include_targets=args.include_targets)


def run_command(sc: SparkContext, args: argparse.Namespace, config: PageRankConfig) -> None:
    results = PageRankDriver(sc, config).run()

    for result in results:
        missing = ", ".join(f"{m:.6f}" for m in result.missing_masses)
        print(f"Iteration {result.iteration}: missing mass {missing}")

    if args.top > 0:
        final = read_snapshot(sc, iteration_path(config.base_path, config.end))
        for slot, source in enumerate(config.sources):
            print(f"\n--- Top {args.top} nodes for source {source} ---")
            for node_id, mass in top_scores(final, slot, args.top):
                print(f"  {node_id}\t{math.exp(mass):.5f}")


COMMANDS = {"build": build_command, "run": run_command}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = absolute_local_paths(parser.parse_args(argv))

    try:
        config = config_from_args(args)
    except ConfigurationError as exc:
        parser.error(str(exc))

    configure_logging(args.log_level)

    spark = create_spark_session(args.command.capitalize(), master=args.master)
    try:
        COMMANDS[args.command](spark.sparkContext, args, config)
    finally:
        spark.stop()

    return 0


if __name__ == "__main__":
    sys.exit(main())
