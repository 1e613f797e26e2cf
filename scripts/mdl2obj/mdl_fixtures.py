"""Builders for small synthetic MDL files used by the test suites."""

import struct
from typing import Iterable, Sequence, Tuple


def pack_header(
    num_verts: int,
    num_triangles: int,
    num_skins: int = 0,
    skin_width: int = 8,
    skin_height: int = 4,
    num_frames: int = 1,
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0),
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    magic: bytes = b"IDPO",
    version: int = 6,
) -> bytes:
    return struct.pack(
        '<4sI3f3ff3f8If',
        magic, version,
        *scale, *origin,
        10.0,               # radius
        0.0, 0.0, 22.0,     # offsets (eye position)
        num_skins, skin_width, skin_height,
        num_verts, num_triangles, num_frames,
        0, 0,               # sync type, flags
        1.0,                # size
    )


def pack_skin(width: int, height: int, images: int = 1, grouped: bool = False) -> bytes:
    if not grouped:
        return struct.pack('<I', 0) + bytes([0x2A]) * (width * height)
    return (
        struct.pack('<I', 1)
        + struct.pack('<If', images, 0.1)
        + bytes([0x2B]) * (images * width * height)
    )


def pack_stverts(stverts: Iterable[Tuple[int, int, int]]) -> bytes:
    return b"".join(struct.pack('<3I', on_seam, s, t) for on_seam, s, t in stverts)


def pack_triangles(triangles: Iterable[Tuple[int, Tuple[int, int, int]]]) -> bytes:
    return b"".join(struct.pack('<4I', front, *vertex) for front, vertex in triangles)


def pack_frame(
    verts: Sequence[Tuple[int, int, int, int]],
    name: bytes = b"stand1",
    frame_type: int = 0,
) -> bytes:
    return (
        struct.pack('<I', frame_type)
        + struct.pack('<4B', 0, 0, 0, 0)
        + struct.pack('<4B', 255, 255, 255, 0)
        + name.ljust(16, b'\x00')
        + b"".join(struct.pack('<4B', *v) for v in verts)
    )


def triangle_model_bytes(
    front: int = 1,
    on_seam: Tuple[int, int, int] = (0, 0, 0),
    normals: Tuple[int, int, int] = (5, 6, 7),
    skins: bytes = b"",
    num_skins: int = 0,
    num_frames: int = 1,
    trailing_frames: bytes = b"",
) -> bytes:
    """A one-triangle model on a 64x32 skin."""
    return (
        pack_header(
            num_verts=3, num_triangles=1, num_skins=num_skins,
            skin_width=64, skin_height=32, num_frames=num_frames,
        )
        + skins
        + pack_stverts([(on_seam[0], 0, 0), (on_seam[1], 16, 8), (on_seam[2], 32, 16)])
        + pack_triangles([(front, (0, 1, 2))])
        + pack_frame([
            (10, 20, 30, normals[0]),
            (0, 0, 0, normals[1]),
            (255, 128, 1, normals[2]),
        ])
        + trailing_frames
    )
