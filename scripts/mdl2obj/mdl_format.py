"""
mdl_format.py
=============

Decoder for Quake 1 alias models (MDL, ident "IDPO", version 6).

The file is read front to back in a single pass:

  header -> skins (skipped) -> texture vertices -> triangles -> first frame

Every field is unpacked explicitly in little-endian order; nothing relies
on in-memory struct layout. Only the first animation frame is decoded,
the remaining frame bytes are left unread.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Tuple

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MDL_MAGIC = b"IDPO"
MDL_VERSION = 6

SKIN_TYPE_SINGLE = 0
FRAME_TYPE_SINGLE = 0

# On-disk record sizes
SIZEOF_HEADER = 84          # ident(4) + version(4) + 10 floats(40) + 8 uint32(32) + float(4)
SIZEOF_SKIN_TYPE = 4        # uint32 type
SIZEOF_SKIN_GROUP = 8       # uint32 count + float time
SIZEOF_STVERT = 12          # uint32 onseam, s, t
SIZEOF_TRIANGLE = 16        # uint32 facesfront + uint32 vertex[3]
SIZEOF_TRIVERTX = 4         # uint8 v[3] + uint8 normal index
SIZEOF_FRAME_NAME = 16
SIZEOF_FRAME_HEADER = 4 + 2 * SIZEOF_TRIVERTX + SIZEOF_FRAME_NAME


class MdlParseError(Exception):
    pass


class FormatError(MdlParseError):
    """Ident or version does not match the supported MDL variant."""


class UnsupportedFeatureError(MdlParseError):
    """The file uses an encoding this decoder does not handle."""


class TruncatedFileError(MdlParseError, IOError):
    """The stream ended before a record was complete."""


# ---------------------------------------------------------------------------
# MDL data structures
# ---------------------------------------------------------------------------

Vec3 = Tuple[float, float, float]


@dataclass(frozen=True)
class MdlHeader:
    ident: bytes
    version: int
    scale: Vec3
    origin: Vec3
    radius: float
    offsets: Vec3
    num_skins: int
    skin_width: int
    skin_height: int
    num_verts: int
    num_triangles: int
    num_frames: int
    sync_type: int
    flags: int
    size: float


@dataclass(frozen=True)
class StVert:
    on_seam: int
    s: int
    t: int


@dataclass(frozen=True)
class MdlTriangle:
    faces_front: int
    vertex: Tuple[int, int, int]


@dataclass(frozen=True)
class TriVertex:
    v: Tuple[int, int, int]
    normal_index: int


@dataclass(frozen=True)
class MdlFrame:
    type: int
    bbox_min: TriVertex
    bbox_max: TriVertex
    name: str
    verts: List[TriVertex]


@dataclass(frozen=True)
class MdlModel:
    name: str
    header: MdlHeader
    stverts: List[StVert]
    triangles: List[MdlTriangle]
    frame: MdlFrame


# ---------------------------------------------------------------------------
# Low-level reading
# ---------------------------------------------------------------------------


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise TruncatedFileError(
            f"Truncated {what}: need {size} bytes, got {len(data)}"
        )
    return data


def _read_c_string(data: bytes, offset: int, length: int) -> str:
    raw = data[offset:offset + length]
    null_pos = raw.find(b'\x00')
    if null_pos >= 0:
        raw = raw[:null_pos]
    return raw.decode('ascii', errors='replace')


def _unpack_trivertx(data: bytes, offset: int) -> TriVertex:
    x, y, z, normal_index = struct.unpack_from('<4B', data, offset)
    return TriVertex(v=(x, y, z), normal_index=normal_index)


# ---------------------------------------------------------------------------
# Section decoders
# ---------------------------------------------------------------------------


def read_header(stream: BinaryIO) -> MdlHeader:
    """Decode the fixed 84-byte header and check ident and version."""
    data = _read_exact(stream, SIZEOF_HEADER, "header")
    pos = 0

    ident = data[pos:pos + 4]
    pos += 4
    if ident != MDL_MAGIC:
        raise FormatError(f"Not an MDL file (magic: {ident!r}, expected {MDL_MAGIC!r})")

    version = struct.unpack_from('<I', data, pos)[0]
    pos += 4
    if version != MDL_VERSION:
        raise FormatError(f"Unsupported MDL version: {version} (expected {MDL_VERSION})")

    scale = struct.unpack_from('<3f', data, pos); pos += 12
    origin = struct.unpack_from('<3f', data, pos); pos += 12
    radius = struct.unpack_from('<f', data, pos)[0]; pos += 4
    offsets = struct.unpack_from('<3f', data, pos); pos += 12

    (num_skins, skin_width, skin_height, num_verts,
     num_triangles, num_frames, sync_type, flags) = struct.unpack_from('<8I', data, pos)
    pos += 32

    size = struct.unpack_from('<f', data, pos)[0]

    return MdlHeader(
        ident=ident, version=version,
        scale=scale, origin=origin, radius=radius, offsets=offsets,
        num_skins=num_skins, skin_width=skin_width, skin_height=skin_height,
        num_verts=num_verts, num_triangles=num_triangles, num_frames=num_frames,
        sync_type=sync_type, flags=flags, size=size,
    )


def skip_skins(stream: BinaryIO, header: MdlHeader) -> int:
    """Advance past all skin blocks without decoding pixels.

    A group skin carries a (count, time) descriptor followed by count
    images; a single skin is one image. Returns the number of bytes
    consumed.
    """
    skin_bytes = header.skin_width * header.skin_height
    consumed = 0

    for i in range(header.num_skins):
        skin_type = struct.unpack('<I', _read_exact(stream, SIZEOF_SKIN_TYPE, f"skin {i} type"))[0]
        consumed += SIZEOF_SKIN_TYPE

        num_images = 1
        if skin_type != SKIN_TYPE_SINGLE:
            group = _read_exact(stream, SIZEOF_SKIN_GROUP, f"skin {i} group header")
            num_images, _time = struct.unpack('<If', group)
            consumed += SIZEOF_SKIN_GROUP

        needed = num_images * skin_bytes
        _read_exact(stream, needed, f"skin {i} pixels")
        consumed += needed
        logging.debug(
            "Skipped skin %d (type=%d, images=%d, %d bytes)",
            i, skin_type, num_images, needed,
        )

    return consumed


def read_stverts(stream: BinaryIO, count: int) -> List[StVert]:
    data = _read_exact(stream, count * SIZEOF_STVERT, "texture vertices")
    stverts: List[StVert] = []
    for j in range(count):
        on_seam, s, t = struct.unpack_from('<3I', data, j * SIZEOF_STVERT)
        stverts.append(StVert(on_seam=on_seam, s=s, t=t))
    return stverts


def read_triangles(stream: BinaryIO, count: int) -> List[MdlTriangle]:
    data = _read_exact(stream, count * SIZEOF_TRIANGLE, "triangles")
    triangles: List[MdlTriangle] = []
    for j in range(count):
        off = j * SIZEOF_TRIANGLE
        faces_front = struct.unpack_from('<I', data, off)[0]
        vertex = struct.unpack_from('<3I', data, off + 4)
        triangles.append(MdlTriangle(faces_front=faces_front, vertex=vertex))
    return triangles


def read_frame(stream: BinaryIO, num_verts: int) -> MdlFrame:
    """Decode one simple frame: type, bounds, name and its vertices."""
    data = _read_exact(stream, SIZEOF_FRAME_HEADER, "frame header")

    frame_type = struct.unpack_from('<I', data, 0)[0]
    if frame_type != FRAME_TYPE_SINGLE:
        # FIXME: group frames (several poses plus interval table) are not decoded
        raise UnsupportedFeatureError(f"Unsupported frame type: {frame_type} (only simple frames)")

    bbox_min = _unpack_trivertx(data, 4)
    bbox_max = _unpack_trivertx(data, 4 + SIZEOF_TRIVERTX)
    name = _read_c_string(data, 4 + 2 * SIZEOF_TRIVERTX, SIZEOF_FRAME_NAME)

    data = _read_exact(stream, num_verts * SIZEOF_TRIVERTX, f"frame '{name}' vertices")
    verts = [_unpack_trivertx(data, j * SIZEOF_TRIVERTX) for j in range(num_verts)]

    return MdlFrame(
        type=frame_type, bbox_min=bbox_min, bbox_max=bbox_max,
        name=name, verts=verts,
    )


# ---------------------------------------------------------------------------
# MDL Parser
# ---------------------------------------------------------------------------


def read_mdl(stream: BinaryIO, name: str = "") -> MdlModel:
    """Decode a model from a binary stream positioned at its first byte."""
    header = read_header(stream)
    logging.debug(
        "MDL header: skins=%d (%dx%d) verts=%d triangles=%d frames=%d",
        header.num_skins, header.skin_width, header.skin_height,
        header.num_verts, header.num_triangles, header.num_frames,
    )

    skip_skins(stream, header)
    stverts = read_stverts(stream, header.num_verts)
    triangles = read_triangles(stream, header.num_triangles)
    frame = read_frame(stream, header.num_verts)

    logging.debug("First frame: %r", frame.name)
    if header.num_frames > 1:
        logging.debug("Leaving %d further frames unread", header.num_frames - 1)

    return MdlModel(
        name=name, header=header,
        stverts=stverts, triangles=triangles, frame=frame,
    )


def load_mdl(file_path: Path) -> MdlModel:
    """Parse an MDL file; the model is named after the file stem."""
    file_path = Path(file_path)
    with open(file_path, 'rb') as f:
        return read_mdl(f, name=file_path.stem)
