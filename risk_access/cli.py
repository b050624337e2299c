"""Command line helpers for operators: score signal files and inspect breakers."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, TextIO

from logging_setup import configure_logging
from risk_engine import RiskSignalCollection
from services.resilience import CircuitBreaker
from services.state_store import FileKeyValueStore


def _collection_from_payload(payload: Any) -> RiskSignalCollection:
    if isinstance(payload, list):
        return RiskSignalCollection.from_raw_scores(payload)
    if isinstance(payload, dict):
        # A raw verification response carries one object per signal group.
        return RiskSignalCollection.from_verisoul_signals(
            device_network=payload.get("device_network_signals") or payload.get("deviceNetworkSignals"),
            document=payload.get("document_signals") or payload.get("documentSignals"),
            referring_session=payload.get("referring_session_signals") or payload.get("referringSessionSignals"),
        )
    raise ValueError("Signal file must hold a JSON array of signals or a verification response object.")


def score_command(args: argparse.Namespace, out: TextIO) -> int:
    payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    collection = _collection_from_payload(payload)
    weights = json.loads(args.weights) if args.weights else None
    if weights is not None and not isinstance(weights, dict):
        raise ValueError("--weights must be a JSON object mapping scopes to weights.")
    overall = collection.overall_risk_score()
    report: Dict[str, Any] = {
        "summary": collection.summary(),
        "overall_risk_score": overall.value,
        "risk_level": overall.level().value,
        "weighted_risk_score": collection.weighted_risk_score(weights).value,
        "most_critical": collection.most_critical(args.top).as_list(),
    }
    if args.describe:
        report["signals"] = collection.describe()
    out.write(json.dumps(report, indent=2, sort_keys=True) + "\n")
    return 0


def breaker_command(args: argparse.Namespace, out: TextIO) -> int:
    breaker = CircuitBreaker(args.service, FileKeyValueStore(Path(args.store)))
    if args.reset:
        breaker.reset()
    out.write(
        json.dumps(
            {"service": args.service, "state": breaker.state().value, "failures": breaker.failure_count()},
            sort_keys=True,
        )
        + "\n"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="verisoul-risk", description="Verisoul risk tooling")
    parser.add_argument(
        "--debug",
        type=int,
        default=0,
        help="Logging verbosity: 0 warnings, 1 info, 2 debug.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    score = subcommands.add_parser("score", help="Summarise a JSON file of risk signals.")
    score.add_argument("file", type=Path, help="JSON array of {name, score, scope} or a verification response.")
    score.add_argument("--weights", help='JSON object of scope weights, e.g. \'{"document": 0.5}\'.')
    score.add_argument("--top", type=int, default=5, help="Number of most critical signals to list.")
    score.add_argument("--describe", action="store_true", help="Include every signal with its description.")
    score.set_defaults(handler=score_command)

    breaker = subcommands.add_parser("breaker", help="Show or reset a circuit breaker.")
    breaker.add_argument("service", help="Breaker name, e.g. verisoul:production.")
    breaker.add_argument("--store", type=Path, required=True, help="Path of the shared breaker state file.")
    breaker.add_argument("--reset", action="store_true", help="Close the breaker and clear its counters.")
    breaker.set_defaults(handler=breaker_command)
    return parser


def main(argv: Optional[Sequence[str]] = None, *, out: Optional[TextIO] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(debug=args.debug)

    try:
        return args.handler(args, out or sys.stdout)
    except FileNotFoundError as exc:
        parser.error(f"File not found: {exc.filename or exc}")
    except json.JSONDecodeError as exc:
        parser.error(f"Invalid JSON: {exc}")
    except (TypeError, ValueError) as exc:
        parser.error(str(exc))
    return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
