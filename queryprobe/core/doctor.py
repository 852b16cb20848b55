"""Readiness diagnostics for config, fixtures and the target."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from queryprobe.config.schema import AppConfig
from queryprobe.core.errors import QueryProbeError, TargetConnectionError
from queryprobe.core.plugin import SessionFactory
from queryprobe.fixtures.loader import load_configured_sequences


@dataclass(slots=True)
class DoctorCheck:
    name: str
    ok: bool
    detail: str


def run_diagnostics(
    config: AppConfig,
    *,
    base_dir: Path | None = None,
    context: dict[str, Any] | None = None,
    check_target: bool = False,
) -> dict[str, Any]:
    checks: list[DoctorCheck] = []

    factory: SessionFactory | None = None
    try:
        factory = SessionFactory(config.target)
        checks.append(DoctorCheck(name="driver", ok=True, detail=f"driver={config.target.driver}"))
    except QueryProbeError as exc:
        checks.append(DoctorCheck(name="driver", ok=False, detail=str(exc)))

    enabled = [item for item in config.sequences if item.enabled]
    checks.append(
        DoctorCheck(
            name="sequences_configured",
            ok=bool(enabled),
            detail=f"{len(enabled)} enabled sequence(s)" if enabled else "no enabled sequences",
        )
    )

    effective_context = dict(config.context)
    effective_context.update(context or {})
    for item in enabled:
        try:
            sequence = load_configured_sequences([item], effective_context, base_dir=base_dir)[0]
        except (QueryProbeError, OSError, ValueError) as exc:
            checks.append(DoctorCheck(name=f"sequence:{item.name}", ok=False, detail=str(exc)))
            continue
        checks.append(
            DoctorCheck(
                name=f"sequence:{item.name}",
                ok=True,
                detail=f"{len(sequence.cases)} case(s), isolated={str(sequence.isolated).lower()}",
            )
        )

    if check_target and factory is not None:
        checks.append(_probe_target(factory))

    return {
        "ok": all(check.ok for check in checks),
        "checks": [asdict(check) for check in checks],
    }


def _probe_target(factory: SessionFactory) -> DoctorCheck:
    session = factory()
    try:
        session.connect()
    except (TargetConnectionError, OSError) as exc:
        return DoctorCheck(name="target_connect", ok=False, detail=str(exc))
    try:
        return DoctorCheck(name="target_connect", ok=True, detail=f"{session.config.host}:{session.config.port} reachable")
    finally:
        session.close()
