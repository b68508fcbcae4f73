# scripts/cross_validate.py
"""Command-line script for k-fold cross validation of a name finder setup.

The script reads a YAML configuration (see :mod:`seqlab.config`), loads the
labelled JSON-lines training set, trains the baseline log-odds model on k-1
folds and evaluates it on the held-out fold, k times. It prints the
micro-averaged precision, recall and F-measure, plus:

-   **error**: every misclassified sample is logged with its missed and
    spurious spans.
-   **detailed**: a per-entity-type table, optionally also written as CSV.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from seqlab.config import EVALUATION_TYPES, Config, load_config
from seqlab.cross_validation import CrossValidator
from seqlab.errors import SeqLabError
from seqlab.evaluation import DetailedFMeasureListener, EvaluationErrorListener
from seqlab.model_builder import LogOddsTrainer
from seqlab.stream import JsonlSampleStream, SampleTypeFilter


def apply_overrides(cfg: Config, args: argparse.Namespace) -> Config:
    """Applies command-line overrides on top of the loaded configuration."""
    if args.train_set:
        cfg.train_set = Path(args.train_set)
    if args.folds is not None:
        cfg.folds = args.folds
    if args.codec:
        cfg.codec = args.codec
    if args.evaluation_type:
        cfg.evaluation_type = args.evaluation_type
    if args.max_workers is not None:
        cfg.max_workers = args.max_workers
    if args.types:
        cfg.types = tuple(t.strip() for t in args.types.split(",") if t.strip())
    return cfg


def run(cfg: Config, progress: bool = True, report_csv: Optional[str] = None) -> int:
    if cfg.train_set is None:
        print("[ERROR] No training set given. Set 'train_set' in the config or pass --train-set.", file=sys.stderr)
        return 1

    factory = cfg.create_factory()
    listeners = []
    detailed = None
    if cfg.evaluation_type == "error":
        listeners.append(EvaluationErrorListener())
    elif cfg.evaluation_type == "detailed":
        detailed = DetailedFMeasureListener()
        listeners.append(detailed)

    samples = JsonlSampleStream(cfg.train_set)
    if cfg.types:
        samples = SampleTypeFilter(cfg.types, samples)

    validator = CrossValidator(
        factory,
        LogOddsTrainer(),
        params=cfg.trainer,
        listeners=listeners,
        beam_size=cfg.beam_size,
        default_type=cfg.default_type,
        max_workers=cfg.max_workers,
        progress=progress,
    )
    print(f"Cross-validating {cfg.train_set} with {cfg.folds} folds ({factory.codec.name} codec)...")
    result = validator.evaluate(samples, cfg.folds)

    print("\n--- Cross Validation Complete ---")
    if detailed is not None:
        print(detailed)
        if report_csv:
            detailed.to_frame().to_csv(report_csv)
            print(f"Per-type report saved to {report_csv}")
    else:
        print(result.fmeasure)
    print(f"Fold F-measure: mean {result.mean_f_measure:.4f}, std {result.std_f_measure:.4f}")
    return 0


def main():
    """
    Main entry point for the cross-validation script.

    Loads the configuration, applies the command-line overrides and runs the
    cross validation. Configuration and I/O problems are reported on stderr
    with exit status 1.
    """
    parser = argparse.ArgumentParser(
        description="Cross-validate a sequence labelling configuration on a labelled corpus.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--config", default="config.yaml", help="Path to the configuration YAML file.")
    parser.add_argument("--train-set", help="JSON-lines training set; overrides 'train_set' in the config.")
    parser.add_argument("--folds", type=int, help="Number of folds; overrides 'folds' in the config.")
    parser.add_argument("--codec", help="Span codec name (BIO or BILOU); overrides 'codec' in the config.")
    parser.add_argument("--evaluation-type", choices=EVALUATION_TYPES, help="Evaluation report to produce.")
    parser.add_argument("--max-workers", type=int, help="Number of folds processed concurrently.")
    parser.add_argument("--types", help="Comma separated entity types to keep; overrides 'types' in the config.")
    parser.add_argument("--report-csv", help="Optional: Path to write the detailed per-type report as CSV.")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = apply_overrides(load_config(args.config), args)
        status = run(cfg, progress=not args.no_progress, report_csv=args.report_csv)
    except (SeqLabError, OSError, ValueError, TypeError) as e:
        print(f"\n[ERROR] {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
