"""Command-line interface router for mapping-forge."""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from mapping_forge.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from mapping_forge.control_plane import (
    ComponentJob,
    RepairLoopController,
    build_initial_instruction,
    summarize_outcomes,
)
from mapping_forge.domain.evidence import Evidence, EvidenceLoadError, load_evidence_file
from mapping_forge.domain.models import (
    CandidateArtifact,
    ComponentOutcome,
    LoopState,
    TargetProfile,
)
from mapping_forge.main import ExitCode
from mapping_forge.observability import configure_structlog, setup_logging, shutdown_logging
from mapping_forge.synthesis_plane import CommandGenerator
from mapping_forge.ui.render import CLIRenderer, create_renderer
from mapping_forge.utils.fs import atomic_write
from mapping_forge.verification_plane import (
    ExpressionChecker,
    FigmaCliResolver,
    KeySetChecker,
    StructuralChecker,
    ToolHandle,
    TwoTierValidator,
    VerificationInfrastructureError,
)

_SLUG_RE = re.compile(r"[^A-Za-z0-9]+")


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = ExitCode.REJECTED

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="mapforge",
        description=(
            "mapping-forge: generate and validate Figma Code Connect mappings.\n\n"
            "Common workflows:\n"
            "  mapforge validate button.figma.tsx --evidence button.json\n"
            "  mapforge generate button.json --instruction prompt.md --generator-cmd ./agent\n"
            "  mapforge doctor             Check parser resolution and config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to mapforge TOML config (default: ./mapforge.toml if present).",
    )
    common.add_argument(
        "--config-profile",
        default=None,
        help="Optional config profile overlay name (strict, offline, thorough).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Emit a single machine-readable JSON object.",
    )

    target = argparse.ArgumentParser(add_help=False)
    target.add_argument(
        "--profile",
        choices=[profile.value for profile in TargetProfile],
        default=None,
        help="Output profile (default: inferred from file name, then config).",
    )
    target.add_argument(
        "--skip-structural",
        action="store_true",
        default=False,
        help="Run only the key-set tier.",
    )
    target.add_argument(
        "--cli-path",
        default=None,
        help="Explicit path to the Code Connect CLI.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common, target],
        help="Validate one candidate mapping file against component evidence",
        description=(
            "Run the key-set tier and, when it is clean, the structural parser.\n\n"
            "Exit code 0 means valid, 1 means rejected, 3 means the parser is unavailable.\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("candidate", help="Candidate mapping file (.figma.tsx/.figma.ts)")
    validate_parser.add_argument(
        "--evidence",
        required=True,
        help="Component evidence file (JSON or YAML).",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # generate ------------------------------------------------------------
    generate_parser = subparsers.add_parser(
        "generate",
        parents=[common, target],
        help="Run the generate-validate-repair loop for one or more components",
        description=(
            "Send each component's instruction to the generator command, validate the\n"
            "result and retry with repair feedback until valid or out of budget.\n\n"
            "Examples:\n"
            "  mapforge generate button.json card.json --instruction prompt.md \\\n"
            "      --generator-cmd './agent --stdin' --output-dir codeConnect/\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    generate_parser.add_argument("evidence", nargs="+", help="Component evidence files.")
    generate_parser.add_argument(
        "--instruction",
        required=True,
        help="File holding the base generation instruction.",
    )
    generate_parser.add_argument(
        "--generator-cmd",
        default=None,
        help="Command that reads an instruction on stdin and prints a candidate.",
    )
    generate_parser.add_argument(
        "--generator-format",
        choices=("text", "json"),
        default="text",
        help="Generator stdout format; json expects {text, usage}.",
    )
    generate_parser.add_argument(
        "--attempt-budget",
        type=int,
        default=None,
        help="Retries allowed after the first attempt.",
    )
    generate_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Components processed concurrently.",
    )
    generate_parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory that receives accepted mapping files.",
    )
    generate_parser.set_defaults(handler=_cmd_generate)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check config health and structural parser resolution",
    )
    doctor_parser.add_argument(
        "--cli-path",
        default=None,
        help="Explicit path to the Code Connect CLI.",
    )
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the redacted effective configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    configure_structlog()
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(exc.exit_code)
    return int(result)


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_validate(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    validation = config["validation"]
    evidence = _load_evidence(args.evidence)
    candidate_path = Path(args.candidate)
    text = _read_text(candidate_path, label="candidate")
    profile = _target_profile(args.profile, candidate_path.name, config)

    structural = None
    if validation["structural_enabled"] and not args.skip_structural:
        structural = _structural_checker(config, args)
    validator = TwoTierValidator(_key_set_checker(evidence, config), structural)

    try:
        tiered = asyncio.run(validator.validate(CandidateArtifact(text=text, profile=profile)))
    except VerificationInfrastructureError as exc:
        raise CLIError(str(exc), exit_code=ExitCode.TOOLING_UNAVAILABLE) from exc

    payload: dict[str, object] = {
        "command": "validate",
        "candidate": candidate_path.as_posix(),
        "component_id": evidence.component_id,
        "profile": profile.value,
        "valid": tiered.valid,
        "tier": tiered.tier.value,
        "structural_ran": tiered.structural_ran,
        "errors": list(tiered.errors),
    }
    exit_code = ExitCode.SUCCESS if tiered.valid else ExitCode.REJECTED

    if _flag(args, "json"):
        _emit_json(payload)
        return int(exit_code)

    renderer = _get_renderer(args)
    renderer.heading(f"mapforge validate {candidate_path.name}")
    renderer.kv("Component", f"{evidence.component_name} ({evidence.component_id})")
    renderer.kv("Profile", profile.value)
    if tiered.valid:
        tiers = "key_set + structural" if tiered.structural_ran else "key_set"
        renderer.ok(f"valid ({tiers})")
    else:
        renderer.fail(f"{len(tiered.errors)} error(s) from {tiered.tier.value} tier")
        renderer.items(list(tiered.errors))
    return int(exit_code)


def _cmd_generate(args: argparse.Namespace) -> int:
    cli_overrides: dict[str, object] = {
        "generation.attempt_budget": args.attempt_budget,
        "generation.max_workers": args.workers,
        "generation.generator_command": args.generator_cmd,
    }
    config = _load_effective_config(args, cli_overrides=cli_overrides)
    generation = config["generation"]
    validation = config["validation"]

    command = generation.get("generator_command")
    if not command:
        raise CLIError(
            "no generator command; pass --generator-cmd or set generation.generator_command",
            exit_code=ExitCode.CONFIG_ERROR,
        )
    base_instruction = _read_text(Path(args.instruction), label="instruction")
    evidence_items = [_load_evidence(path) for path in args.evidence]
    profile = TargetProfile(args.profile or validation["default_profile"])
    output_dir = _output_dir(args.output_dir)

    structural = None
    if validation["structural_enabled"] and not args.skip_structural:
        structural = _structural_checker(config, args)
    controller = RepairLoopController(
        structural=structural,
        attempt_budget=generation["attempt_budget"],
        profile=profile,
        namespace=validation["namespace"],
        expression_lint=validation["expression_lint"],
    )
    generator = CommandGenerator(
        command,
        timeout_seconds=generation["generator_timeout_seconds"],
        output_format=args.generator_format,
    )
    jobs = [
        ComponentJob(
            evidence=evidence,
            initial_instruction=build_initial_instruction(
                base_instruction, evidence, profile=profile
            ),
        )
        for evidence in evidence_items
    ]

    run_id = _new_run_id()
    handle = setup_logging(config["observability"], run_id=run_id)
    try:
        outcomes = asyncio.run(
            controller.run_components(
                jobs,
                generator=generator,
                max_workers=generation["max_workers"],
            )
        )
    finally:
        shutdown_logging(handle)

    written: dict[str, str] = {}
    if output_dir is not None:
        accepted = [outcome for outcome in outcomes if outcome.accepted]
        file_names = _output_file_names(accepted, profile.file_extension)
        for outcome in accepted:
            if outcome.final_artifact is None:
                continue
            target_path = output_dir / file_names[outcome.component_id]
            atomic_write(target_path, outcome.final_artifact)
            written[outcome.component_id] = target_path.as_posix()

    summary = summarize_outcomes(outcomes)
    exit_code = _generate_exit_code([outcome.state for outcome in outcomes])
    payload: dict[str, object] = {
        "command": "generate",
        "run_id": run_id,
        "profile": profile.value,
        "summary": summary.to_dict(),
        "outcomes": [outcome.to_dict() for outcome in outcomes],
        "written": written,
        "log_path": handle.log_path.as_posix(),
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return int(exit_code)

    renderer = _get_renderer(args)
    renderer.heading(f"mapforge generate (run {run_id})")
    rows = [
        [
            outcome.component_name,
            outcome.state.value,
            str(outcome.attempt_count),
            str(outcome.generator_failures),
        ]
        for outcome in outcomes
    ]
    renderer.table(["component", "state", "attempts", "generator failures"], rows)
    renderer.section("Summary:")
    renderer.kv("  accepted", f"{summary.accepted}/{summary.total}")
    renderer.kv("  attempts", summary.total_attempts)
    for outcome in outcomes:
        if outcome.accepted:
            continue
        renderer.section(f"{outcome.component_name} [{outcome.state.value}]:")
        renderer.items(list(outcome.errors))
    if written:
        renderer.section("Written:")
        renderer.items(sorted(written.values()))
    if _flag(args, "verbose"):
        renderer.kv("Log file", handle.log_path.as_posix())
    return int(exit_code)


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    config: dict[str, Any] | None = None
    try:
        config = _load_effective_config(args)
        checks.append(("config", True, "loaded successfully"))
    except CLIError as exc:
        checks.append(("config", False, str(exc)))

    tool: ToolHandle | None = None
    if config is not None:
        resolved = _resolver(config, args).resolve()
        if isinstance(resolved, ToolHandle):
            tool = resolved
            checks.append(
                (
                    "figma_cli",
                    True,
                    f"{resolved.path} ({resolved.source.value}, {resolved.launcher.value})",
                )
            )
        else:
            searched = ", ".join(resolved.searched)
            checks.append(("figma_cli", False, f"{resolved.reason}; searched: {searched}"))
        if not config["validation"]["structural_enabled"]:
            checks.append(("structural_tier", True, "disabled by config"))
    else:
        checks.append(("figma_cli", False, "skipped (config failed)"))

    checks_payload: list[dict[str, object]] = [
        {"name": name, "status": "ok" if passed else "fail", "detail": detail}
        for name, passed, detail in checks
    ]
    payload: dict[str, object] = {
        "command": "doctor",
        "checks": checks_payload,
        "tool": tool.to_dict() if tool is not None else None,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.heading("mapforge doctor")
    for name, passed, detail in checks:
        if passed:
            renderer.ok(f"{name}: {detail}")
        else:
            renderer.fail(f"{name}: {detail}")

    if all(passed for _, passed, _ in checks):
        renderer.text("\nAll checks passed.")
    else:
        renderer.text("\nSome checks failed. See details above.")
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "config_profile", None))
    redacted = effective_config(config)

    payload: dict[str, object] = {
        "command": "config",
        "active_profile": profile,
        "config": redacted,
    }

    if _flag(args, "json"):
        _emit_json(payload)
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _load_effective_config(
    args: argparse.Namespace,
    *,
    cli_overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "config_profile", None))
    try:
        return load_config(config_path, profile=profile, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _load_evidence(path: str) -> Evidence:
    try:
        return load_evidence_file(path)
    except EvidenceLoadError as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _read_text(path: Path, *, label: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(
            f"cannot read {label} file {path}: {exc}",
            exit_code=ExitCode.CONFIG_ERROR,
        ) from exc


def _target_profile(
    explicit: str | None,
    filename: str,
    config: Mapping[str, Any],
) -> TargetProfile:
    if explicit is not None:
        return TargetProfile(explicit)
    try:
        return TargetProfile.from_filename(filename)
    except ValueError:
        return TargetProfile(config["validation"]["default_profile"])


def _resolver(config: Mapping[str, Any], args: argparse.Namespace) -> FigmaCliResolver:
    tooling = config["tooling"]
    override = _optional_str(getattr(args, "cli_path", None)) or tooling.get("cli_path")
    return FigmaCliResolver(
        tooling["project_root"],
        override=override,
        env_var=tooling["cli_path_env"],
    )


def _structural_checker(config: Mapping[str, Any], args: argparse.Namespace) -> StructuralChecker:
    return StructuralChecker(
        _resolver(config, args),
        timeout_seconds=config["validation"]["structural_timeout_seconds"],
        scratch_parent=config["tooling"].get("scratch_dir"),
    )


def _key_set_checker(evidence: Evidence, config: Mapping[str, Any]) -> KeySetChecker:
    validation = config["validation"]
    namespace = validation["namespace"]
    expression_checker = None
    if validation["expression_lint"]:
        expression_checker = ExpressionChecker(namespace=namespace)
    return KeySetChecker(evidence, namespace=namespace, expression_checker=expression_checker)


def _output_dir(raw: str | None) -> Path | None:
    if raw is None:
        return None
    path = Path(raw).expanduser()
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CLIError(
            f"cannot create output directory {path}: {exc}",
            exit_code=ExitCode.CONFIG_ERROR,
        ) from exc
    return path


def _generate_exit_code(states: Sequence[LoopState]) -> ExitCode:
    if any(state is LoopState.ABORTED for state in states):
        return ExitCode.TOOLING_UNAVAILABLE
    if all(state is LoopState.ACCEPTED for state in states):
        return ExitCode.SUCCESS
    return ExitCode.REJECTED


def _new_run_id() -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def _slug(name: str) -> str:
    return _SLUG_RE.sub("-", name).strip("-") or "component"


def _output_file_names(outcomes: Sequence[ComponentOutcome], extension: str) -> dict[str, str]:
    """Map component ids to file names; names shared by several components get an id suffix."""

    stems = {outcome.component_id: _slug(outcome.component_name) for outcome in outcomes}
    counts: dict[str, int] = {}
    for stem in stems.values():
        counts[stem.casefold()] = counts.get(stem.casefold(), 0) + 1

    names: dict[str, str] = {}
    for component_id, stem in stems.items():
        if counts[stem.casefold()] > 1:
            stem = f"{stem}-{_slug(component_id)}"
        names[component_id] = f"{stem}{extension}"
    return names


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "main", "run_cli"]
