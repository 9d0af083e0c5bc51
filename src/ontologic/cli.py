"""Ontologic CLI: command-line interface for proof anchoring.

Usage:
    ontologic canonicalize payload.json
    ontologic build-proof bundles/light-mix.json --timestamp 2025-11-15T10:00:00.000Z
    ontologic --data-dir data submit bundles/light-mix.json
    ontologic verify --tx 0xabc... --expected 0x9f...
    ontologic export --topic 0.0.7204585 --out proofs/topic.json

Every command prints one JSON status line per stage on stdout
({"stage": ..., "ok": ...}); logs go to stderr. The exit code tells
failure classes apart: 0 success, 2 verification FAIL, otherwise the
code of the error kind, one per kind (see ontologic.errors).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ontologic.config import Settings
from ontologic.errors import INVALID_INPUT, ConfigError, exit_code_for
from ontologic.persistence.message_log import FileMessageLog
from ontologic.proofs.orchestrator import SubmissionStage
from ontologic.service import ProofService, ServiceResult


MESSAGES_FILE = "messages.jsonl"


def _line(stage: str, ok: bool, **fields: Any) -> None:
    print(json.dumps({"stage": stage, "ok": ok, **fields}, ensure_ascii=False, default=str))


def _finish(stage: str, result: ServiceResult) -> int:
    if result.success:
        _line(stage, True, **result.data)
        return 0
    _line(stage, False, **{**result.data, "kind": result.error_kind, "errors": result.errors})
    return exit_code_for(result.error_kind)


def _load_json(path: str) -> Any:
    """Read JSON from a file, or from stdin for "-"."""
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _make_service(args: argparse.Namespace) -> ProofService:
    """Create a ProofService from the env file and the data directory."""
    settings = Settings.from_env(args.env_file)
    message_log = None
    if args.data_dir is not None:
        message_log = FileMessageLog(
            storage_path=args.data_dir / MESSAGES_FILE,
            max_message_bytes=settings.max_message_bytes,
        )
    return ProofService(settings, message_log=message_log)


def cmd_canonicalize(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _finish("canonicalize", service.canonicalize(_load_json(args.file)))


def cmd_build_proof(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.build_proof(_load_json(args.bundle), timestamp=args.timestamp)
    return _finish("build_proof", result)


def cmd_submit(args: argparse.Namespace) -> int:
    if args.data_dir is None:
        _line("submit", False, kind=INVALID_INPUT, errors=["submit needs --data-dir for the message log"])
        return exit_code_for(INVALID_INPUT)
    service = _make_service(args)

    def on_stage(stage: SubmissionStage, fields: dict[str, Any]) -> None:
        _line(stage.value, True, **fields)

    result = service.submit_proof(_load_json(args.bundle), timestamp=args.timestamp, on_stage=on_stage)
    return _finish("submit", result)


def cmd_verify(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _finish("verify", service.verify_transaction(args.tx, expected_hash=args.expected))


def cmd_export(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.export_topic(args.topic)
    if not result.success:
        return _finish("export", result)

    if args.out is None:
        print(json.dumps(result.data, indent=2, ensure_ascii=False))
        return 0
    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(json.dumps(result.data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    _line("export", True, outputFile=str(args.out), summary=result.data["summary"])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ontologic",
        description="Ontologic canonical proof anchoring CLI",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: .env in the working directory, if any)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory of the offline message log (replaces mirror node reads)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # canonicalize
    p_canon = sub.add_parser("canonicalize", help="Print canonical form and hash of a JSON file")
    p_canon.add_argument("file", help="JSON file, or - for stdin")

    # build-proof
    p_build = sub.add_parser("build-proof", help="Build and seal a proof from a bundle")
    p_build.add_argument("bundle", help="Reasoning bundle JSON file")
    p_build.add_argument("--timestamp", help="Fixed ISO-8601 timestamp (default: now)")

    # submit
    p_submit = sub.add_parser("submit", help="Append and bind a proof from a bundle")
    p_submit.add_argument("bundle", help="Reasoning bundle JSON file")
    p_submit.add_argument("--timestamp", help="Fixed ISO-8601 timestamp (default: now)")

    # verify
    p_verify = sub.add_parser("verify", help="Triple-equality check of a bound proof")
    p_verify.add_argument("--tx", required=True, help="Transaction hash")
    p_verify.add_argument("--expected", help="Locally expected proof hash")

    # export
    p_export = sub.add_parser("export", help="Export a proof topic to a JSON snapshot")
    p_export.add_argument("--topic", help="Topic ID (default: HCS_TOPIC_ID)")
    p_export.add_argument("--out", type=Path, help="Output file (default: stdout)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "canonicalize": cmd_canonicalize,
        "build-proof": cmd_build_proof,
        "submit": cmd_submit,
        "verify": cmd_verify,
        "export": cmd_export,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ConfigError as exc:
        _line(args.command, False, **exc.to_dict())
        return exc.exit_code
    except (OSError, ValueError) as exc:
        # Unreadable input files, malformed JSON, corrupt message log
        _line(args.command, False, kind=INVALID_INPUT, errors=[str(exc)])
        return exit_code_for(INVALID_INPUT)


if __name__ == "__main__":
    raise SystemExit(main())
