#!/usr/bin/env python3
"""
validate_obj.py
===============

Structural validation for converted OBJ/MTL pairs.
Checks face references, material files and (when present) the diffuse
texture each material points at, then logs a summary.

Usage:
    python3 validate_obj.py \\
        --output-root out \\
        --report out/validation_report.json \\
        --verbose
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image


# ---------------------------------------------------------------------------
# Validation functions
# ---------------------------------------------------------------------------

def _parse_corner(token: str) -> Tuple[int, Optional[int], Optional[int]]:
    parts = token.split("/")
    position = int(parts[0])
    texcoord = int(parts[1]) if len(parts) > 1 and parts[1] else None
    normal = int(parts[2]) if len(parts) > 2 and parts[2] else None
    return position, texcoord, normal


def validate_obj(path: Path) -> Tuple[bool, str]:
    """Validate an OBJ file: faces reference existing v/vt/vn entries."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        return False, f"cannot read: {exc}"

    counts = {"v": 0, "vt": 0, "vn": 0, "f": 0}
    mtllib: Optional[str] = None
    faces: List[Tuple[int, List[str]]] = []

    for lineno, line in enumerate(lines, start=1):
        fields = line.split()
        if not fields or fields[0].startswith("#"):
            continue
        keyword = fields[0]
        if keyword in counts:
            counts[keyword] += 1
        if keyword == "mtllib" and len(fields) > 1:
            mtllib = fields[1]
        elif keyword == "f":
            faces.append((lineno, fields[1:]))

    if counts["v"] == 0:
        return False, "no vertices"

    for lineno, corners in faces:
        if len(corners) < 3:
            return False, f"line {lineno}: face with {len(corners)} corners"
        for token in corners:
            try:
                position, texcoord, normal = _parse_corner(token)
            except ValueError:
                return False, f"line {lineno}: malformed corner {token!r}"
            if not 1 <= position <= counts["v"]:
                return False, f"line {lineno}: position index {position} out of range"
            if texcoord is not None and not 1 <= texcoord <= counts["vt"]:
                return False, f"line {lineno}: texcoord index {texcoord} out of range"
            # Normal indices are accepted zero-based as well as one-based.
            if normal is not None and not 0 <= normal <= counts["vn"]:
                return False, f"line {lineno}: normal index {normal} out of range"

    if mtllib is not None and not (path.parent / mtllib).is_file():
        return False, f"missing material library: {mtllib}"

    return True, "ok"


def validate_texture(path: Path) -> Tuple[bool, str]:
    """Validate a texture image: opens with Pillow, has non-zero dimensions."""
    try:
        with Image.open(path) as img:
            w, h = img.size
            if w <= 0 or h <= 0:
                return False, f"zero dimensions ({w}x{h})"
            img.verify()
        return True, "ok"
    except Exception as exc:
        return False, f"invalid image: {exc}"


def validate_mtl(path: Path) -> Tuple[bool, str]:
    """Validate an MTL file: declares a material and a readable diffuse map."""
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        return False, f"cannot read: {exc}"

    materials = 0
    diffuse_maps: List[str] = []
    for line in lines:
        fields = line.split()
        if not fields:
            continue
        if fields[0] == "newmtl":
            materials += 1
        elif fields[0] == "map_Kd" and len(fields) > 1:
            diffuse_maps.append(fields[-1])

    if materials == 0:
        return False, "no newmtl entry"
    if not diffuse_maps:
        return False, "no map_Kd entry"

    for texture in diffuse_maps:
        texture_path = path.parent / texture
        if not texture_path.is_file():
            # Skin textures are optional.
            logging.debug("Texture %s not present next to %s", texture, path.name)
            continue
        ok, reason = validate_texture(texture_path)
        if not ok:
            return False, f"{texture}: {reason}"

    return True, "ok"


# ---------------------------------------------------------------------------
# Model pairs
# ---------------------------------------------------------------------------

@dataclass
class ModelCheck:
    """Outcome for one converted model (its .obj and sibling .mtl)."""
    obj_path: Path
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def check_model(obj_path: Path) -> ModelCheck:
    check = ModelCheck(obj_path=obj_path)

    ok, reason = validate_obj(obj_path)
    if not ok:
        check.problems.append(f"obj: {reason}")

    mtl_path = obj_path.with_suffix(".mtl")
    if mtl_path.is_file():
        ok, reason = validate_mtl(mtl_path)
        if not ok:
            check.problems.append(f"mtl: {reason}")

    return check


def check_output_tree(output_root: Path, report_path: Optional[Path]) -> List[ModelCheck]:
    """Check every converted model under *output_root*, optionally writing a JSON report."""
    checks = [check_model(obj_path) for obj_path in sorted(output_root.rglob("*.obj"))]

    for check in checks:
        if check.ok:
            logging.debug("OK: %s", check.obj_path.relative_to(output_root))
        else:
            logging.warning(
                "FAIL: %s: %s",
                check.obj_path.relative_to(output_root), "; ".join(check.problems),
            )

    failed = sum(1 for check in checks if not check.ok)
    logging.info("Checked %d models, %d failed", len(checks), failed)

    if report_path:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report = {
            "models": len(checks),
            "failed": failed,
            "results": [
                {
                    "model": check.obj_path.relative_to(output_root).with_suffix("").as_posix(),
                    "ok": check.ok,
                    "problems": check.problems,
                }
                for check in checks
            ],
        }
        report_path.write_text(json.dumps(report, indent=2))
        logging.info("Report written to %s", report_path)

    return checks


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate converted OBJ/MTL files."
    )
    parser.add_argument(
        "--output-root", type=Path, default=Path("."),
        help="Directory holding converted .obj/.mtl files",
    )
    parser.add_argument(
        "--report", type=Path, default=None,
        help="Path for JSON validation report",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.output_root.is_dir():
        logging.error("Output root not found: %s", args.output_root)
        return 1

    checks = check_output_tree(args.output_root, args.report)
    return 0 if all(check.ok for check in checks) else 1


if __name__ == "__main__":
    sys.exit(main())
