#!/usr/bin/env python3
"""Validate local OPD token engine environment readiness."""

from __future__ import annotations

import importlib
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from opd_token_engine.domain.models import AllocationStatus, TokenSource
from opd_token_engine.repository.doctor_registry import DoctorRegistry
from opd_token_engine.services.allocation_service import AllocationService
from opd_token_engine.services.simulation_service import SimulationService
from opd_token_engine.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    settings = get_settings()

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 3: Default roster seeding
    registry = DoctorRegistry()
    try:
        seeded = registry.seed_default_roster()
        if seeded != 3:
            raise RuntimeError(f"expected 3 doctors, got {seeded}")
        d1_capacity = registry.resolve_slot("D1", "9-10").effective_capacity
        if d1_capacity != 6:
            raise RuntimeError(f"expected D1 9-10 capacity 6, got {d1_capacity}")
        ok, line = _print_result("Default roster: 3 doctors", True)
    except Exception as exc:
        ok, line = _print_result("Default roster", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 4: Allocation and preemption smoke test
    try:
        registry.add_doctor("VALIDATION", 1.0, {"slot": 1})
        service = AllocationService(registry=registry, settings=settings)
        first = service.create_token(
            doctor_id="VALIDATION", slot_id="slot", patient_id="V1", source=TokenSource.WALK_IN
        )
        second = service.create_token(
            doctor_id="VALIDATION", slot_id="slot", patient_id="V2", source=TokenSource.EMERGENCY
        )
        if first.status is not AllocationStatus.ALLOCATED:
            raise RuntimeError(f"first token {first.status.value}, expected ALLOCATED")
        if second.status is not AllocationStatus.REALLOCATED:
            raise RuntimeError(f"second token {second.status.value}, expected REALLOCATED")
        ok, line = _print_result("Allocation engine: admit + preempt", True)
    except Exception as exc:
        ok, line = _print_result("Allocation engine", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 5: OPD day simulation
    try:
        report = SimulationService(settings=settings).run_opd_day()
        ok, line = _print_result(
            "OPD day simulation",
            True,
            f": {len(report.events)} events",
        )
    except Exception as exc:
        ok, line = _print_result("OPD day simulation", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    print(SEPARATOR_LINE)
    print(" OPD Token Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
