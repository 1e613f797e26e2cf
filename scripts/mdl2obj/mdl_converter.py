#!/usr/bin/env python3
"""
mdl_converter.py
================

Convert a Quake 1 alias model (MDL v6) to Wavefront OBJ plus an MTL
material file.

Only the first animation frame is exported. Skins are not extracted; the
material references ``<model>.jpg`` next to the OBJ.

Usage:
    python3 mdl_converter.py models/player.mdl --output-dir out --verbose
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from anorms import ANORMS, NUM_VERTEX_NORMALS
from mdl_format import MdlModel, MdlParseError, load_mdl

# (position index, texcoord index, normal index)
Corner = Tuple[int, int, int]
Face = Tuple[Corner, Corner, Corner]

MTL_TEMPLATE = (
    "newmtl {name}\n"
    "Ka 1.000000 1.000000 1.000000\n"
    "Kd 1.000000 1.000000 1.000000\n"
    "Ks 0.000000 0.000000 0.000000\n"
    "Tr 1.000000\n"
    "illum 1\n"
    "Ns 0.000000\n"
    "map_Kd {name}.jpg\n"
)


@dataclass
class ObjGeometry:
    name: str
    positions: np.ndarray   # (num_verts, 3) float32
    texcoords: np.ndarray   # (2 * num_verts, 2) float32, seam copies in the second half
    faces: List[Face]


# ---------------------------------------------------------------------------
# Geometry remapping
# ---------------------------------------------------------------------------


def decode_positions(model: MdlModel) -> np.ndarray:
    """Unpack the first frame's byte coordinates into OBJ space.

    MDL is Z-up; OBJ consumers expect Y-up with X mirrored.
    """
    header = model.header
    packed = np.array([v.v for v in model.frame.verts], dtype=np.float32).reshape(-1, 3)
    scale = np.array(header.scale, dtype=np.float32)
    origin = np.array(header.origin, dtype=np.float32)

    positions = np.empty_like(packed)
    positions[:, 0] = -scale[0] * packed[:, 0] - origin[0]
    positions[:, 1] = scale[2] * packed[:, 2] + origin[2]
    positions[:, 2] = scale[1] * packed[:, 1] + origin[1]
    return positions


def build_texcoords(model: MdlModel) -> np.ndarray:
    """Normalize skin-space coordinates, followed by their seam copies.

    Entry ``i + num_verts`` is entry ``i`` shifted right by half the skin,
    where back-facing triangles sample vertices that lie on the seam.
    """
    header = model.header
    num_verts = header.num_verts
    st = np.array([(sv.s, sv.t) for sv in model.stverts], dtype=np.float32).reshape(-1, 2)
    width = np.float32(header.skin_width)
    height = np.float32(header.skin_height)
    half_width = np.float32(header.skin_width // 2)

    texcoords = np.empty((2 * num_verts, 2), dtype=np.float32)
    with np.errstate(divide='ignore', invalid='ignore'):
        t = np.float32(1.0) - st[:, 1] / height
        texcoords[:num_verts, 0] = st[:, 0] / width
        texcoords[num_verts:, 0] = (st[:, 0] + half_width) / width
    texcoords[:num_verts, 1] = t
    texcoords[num_verts:, 1] = t
    return texcoords


def build_faces(model: MdlModel, num_normals: int = NUM_VERTEX_NORMALS) -> List[Face]:
    """Resolve every triangle to three OBJ corners with reversed winding."""
    num_verts = model.header.num_verts
    frame_verts = model.frame.verts
    faces: List[Face] = []

    for i, tri in enumerate(model.triangles):
        for v in tri.vertex:
            if v >= num_verts:
                raise IndexError(
                    f"Triangle {i} references vertex {v} (model has {num_verts})"
                )

        # Normals follow the source vertex order, only positions and
        # texcoords are reversed. Normal indices are written unshifted.
        normals = [frame_verts[v].normal_index for v in tri.vertex]
        for v, normal_index in zip(tri.vertex, normals):
            if normal_index >= num_normals:
                raise IndexError(
                    f"Vertex {v} of triangle {i} has normal index {normal_index} "
                    f"(table has {num_normals})"
                )

        corners: List[Corner] = []
        for v, normal_index in zip((tri.vertex[0], tri.vertex[2], tri.vertex[1]), normals):
            uv = v
            if tri.faces_front == 0 and model.stverts[v].on_seam != 0:
                uv += num_verts
            corners.append((v + 1, uv + 1, normal_index))
        faces.append((corners[0], corners[1], corners[2]))

    return faces


def remap_geometry(model: MdlModel, num_normals: int = NUM_VERTEX_NORMALS) -> ObjGeometry:
    return ObjGeometry(
        name=model.name,
        positions=decode_positions(model),
        texcoords=build_texcoords(model),
        faces=build_faces(model, num_normals=num_normals),
    )


# ---------------------------------------------------------------------------
# OBJ / MTL rendering
# ---------------------------------------------------------------------------


def _format_float(value: np.float32) -> str:
    # Shortest text that round-trips the float32 value, "-10" rather than "-10.0".
    return np.format_float_positional(value, trim='-')


def render_obj(
    geometry: ObjGeometry,
    normals: Sequence[Tuple[float, float, float]] = ANORMS,
) -> str:
    name = geometry.name
    lines = [
        f"o {name}",
        f"mtllib {name}.mtl",
        f"usemtl {name}",
    ]
    for x, y, z in geometry.positions:
        lines.append(f"v {_format_float(x)} {_format_float(y)} {_format_float(z)}")
    for nx, ny, nz in normals:
        lines.append(f"vn {nx:.6f} {ny:.6f} {nz:.6f}")
    for u, v in geometry.texcoords:
        lines.append(f"vt {_format_float(u)} {_format_float(v)}")
    for face in geometry.faces:
        lines.append("f " + " ".join(f"{p}/{t}/{n}" for p, t, n in face))
    return "\n".join(lines) + "\n"


def render_mtl(name: str) -> str:
    return MTL_TEMPLATE.format(name=name)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


def _write_text(path: Path, text: str) -> None:
    with open(path, 'w', encoding='utf-8', newline='\n') as f:
        f.write(text)
    logging.info("Wrote %s (%d bytes)", path, len(text.encode('utf-8')))


def convert_mdl(source: Path, output_dir: Optional[Path] = None) -> Tuple[Path, Path]:
    """Convert one MDL file; returns the written (obj, mtl) paths.

    Both documents are rendered before anything is written, so a failed
    conversion leaves no output behind.
    """
    source = Path(source)
    output_dir = Path.cwd() if output_dir is None else Path(output_dir)

    model = load_mdl(source)
    geometry = remap_geometry(model)
    obj_text = render_obj(geometry, normals=ANORMS)
    mtl_text = render_mtl(model.name)

    output_dir.mkdir(parents=True, exist_ok=True)
    obj_path = output_dir / f"{model.name}.obj"
    mtl_path = output_dir / f"{model.name}.mtl"
    _write_text(obj_path, obj_text)
    try:
        _write_text(mtl_path, mtl_text)
    except OSError:
        obj_path.unlink(missing_ok=True)
        raise
    return obj_path, mtl_path


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Convert a Quake MDL model to Wavefront OBJ/MTL."
    )
    parser.add_argument("model", type=Path, help="Input .mdl file")
    parser.add_argument(
        "--output-dir", type=Path, default=None,
        help="Directory for the .obj/.mtl pair (default: current directory)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        convert_mdl(args.model, output_dir=args.output_dir)
    except MdlParseError as exc:
        logging.error("Parse error for %s: %s", args.model, exc)
        return 1
    except IndexError as exc:
        logging.error("Invalid geometry in %s: %s", args.model, exc)
        return 1
    except OSError as exc:
        logging.error("I/O error for %s: %s", args.model, exc)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
