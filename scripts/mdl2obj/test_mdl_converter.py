#!/usr/bin/env python3
import contextlib
import io
import os
import tempfile
import unittest
from pathlib import Path
import sys


SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import mdl_converter as converter
import mdl_fixtures as fixtures
import mdl_format
from anorms import ANORMS


def _model(**kwargs) -> mdl_format.MdlModel:
    return mdl_format.read_mdl(io.BytesIO(fixtures.triangle_model_bytes(**kwargs)), name="tri")


class PositionTests(unittest.TestCase):
    def test_unit_scale_negates_x_and_swaps_y_z(self) -> None:
        positions = converter.decode_positions(_model())
        self.assertEqual(positions[0].tolist(), [-10.0, 30.0, 20.0])
        self.assertEqual(positions[2].tolist(), [-255.0, 1.0, 128.0])

    def test_scale_and_origin_are_applied_per_axis(self) -> None:
        data = (
            fixtures.pack_header(
                num_verts=1, num_triangles=0,
                scale=(0.5, 2.0, 4.0), origin=(1.0, 2.0, 3.0),
            )
            + fixtures.pack_stverts([(0, 0, 0)])
            + fixtures.pack_frame([(10, 20, 30, 0)])
        )
        model = mdl_format.read_mdl(io.BytesIO(data))
        positions = converter.decode_positions(model)
        self.assertEqual(positions[0].tolist(), [-6.0, 123.0, 42.0])

    def test_position_line_text(self) -> None:
        obj_text = converter.render_obj(converter.remap_geometry(_model()))
        self.assertIn("v -10 30 20\n", obj_text)

    def test_small_values_print_without_exponent(self) -> None:
        data = (
            fixtures.pack_header(num_verts=1, num_triangles=0, scale=(1e-05, 1.0, 1.0))
            + fixtures.pack_stverts([(0, 0, 0)])
            + fixtures.pack_frame([(1, 0, 0, 0)])
        )
        model = mdl_format.read_mdl(io.BytesIO(data), name="tiny")
        obj_text = converter.render_obj(converter.remap_geometry(model))
        self.assertIn("v -0.00001 0 0\n", obj_text)


class TexcoordTests(unittest.TestCase):
    def test_table_holds_plain_then_seam_copies(self) -> None:
        texcoords = converter.build_texcoords(_model())

        self.assertEqual(texcoords.shape, (6, 2))
        self.assertEqual(texcoords[:3].tolist(), [[0.0, 1.0], [0.25, 0.75], [0.5, 0.5]])
        for i in range(3):
            self.assertAlmostEqual(float(texcoords[i + 3][0] - texcoords[i][0]), 0.5)
            self.assertEqual(texcoords[i + 3][1], texcoords[i][1])

    def test_odd_width_uses_integer_half(self) -> None:
        data = (
            fixtures.pack_header(num_verts=1, num_triangles=0, skin_width=5, skin_height=4)
            + fixtures.pack_stverts([(1, 1, 2)])
            + fixtures.pack_frame([(0, 0, 0, 0)])
        )
        texcoords = converter.build_texcoords(mdl_format.read_mdl(io.BytesIO(data)))
        self.assertAlmostEqual(float(texcoords[0][0]), 0.2, places=6)
        self.assertAlmostEqual(float(texcoords[1][0]), 0.6, places=6)
        self.assertAlmostEqual(float(texcoords[1][1]), 0.5, places=6)


class FaceTests(unittest.TestCase):
    def test_winding_is_reversed_and_one_based(self) -> None:
        faces = converter.build_faces(_model())
        self.assertEqual([corner[0] for corner in faces[0]], [1, 3, 2])

    def test_back_face_on_seam_uses_shifted_texcoord(self) -> None:
        faces = converter.build_faces(_model(front=0, on_seam=(0, 1, 0)))
        self.assertEqual(faces[0], ((1, 1, 5), (3, 3, 6), (2, 5, 7)))

    def test_front_face_on_seam_keeps_plain_texcoord(self) -> None:
        faces = converter.build_faces(_model(front=1, on_seam=(1, 1, 1)))
        self.assertEqual([corner[1] for corner in faces[0]], [1, 3, 2])

    def test_normals_keep_source_order_and_are_not_shifted(self) -> None:
        faces = converter.build_faces(_model(normals=(0, 1, 161)))
        self.assertEqual([corner[2] for corner in faces[0]], [0, 1, 161])

    def test_vertex_index_out_of_range(self) -> None:
        data = (
            fixtures.pack_header(num_verts=3, num_triangles=1)
            + fixtures.pack_stverts([(0, 0, 0)] * 3)
            + fixtures.pack_triangles([(1, (0, 1, 3))])
            + fixtures.pack_frame([(0, 0, 0, 0)] * 3)
        )
        model = mdl_format.read_mdl(io.BytesIO(data))
        with self.assertRaises(IndexError) as ctx:
            converter.build_faces(model)
        self.assertIn("3", str(ctx.exception))

    def test_normal_index_out_of_range(self) -> None:
        with self.assertRaises(IndexError) as ctx:
            converter.build_faces(_model(normals=(5, 200, 7)))
        self.assertIn("200", str(ctx.exception))


class RenderTests(unittest.TestCase):
    def test_obj_layout(self) -> None:
        obj_text = converter.render_obj(converter.remap_geometry(_model(front=0, on_seam=(0, 1, 0))))
        lines = obj_text.splitlines()

        self.assertEqual(lines[:3], ["o tri", "mtllib tri.mtl", "usemtl tri"])
        self.assertEqual(sum(1 for line in lines if line.startswith("v ")), 3)
        self.assertEqual(sum(1 for line in lines if line.startswith("vn ")), len(ANORMS))
        self.assertEqual(sum(1 for line in lines if line.startswith("vt ")), 6)
        self.assertEqual(lines[3 + 3], "vn -0.525731 0.000000 0.850651")
        self.assertEqual(lines[3 + 3 + 162 + 4], "vt 0.75 0.75")
        self.assertEqual(lines[-1], "f 1/1/5 3/3/6 2/5/7")
        self.assertEqual(len(lines), 3 + 3 + 162 + 6 + 1)
        self.assertTrue(obj_text.endswith("\n"))

    def test_injected_normal_table(self) -> None:
        geometry = converter.remap_geometry(_model())
        obj_text = converter.render_obj(geometry, normals=[(0.0, 0.0, 1.0)])
        self.assertEqual(obj_text.count("\nvn "), 1)
        self.assertIn("vn 0.000000 0.000000 1.000000\n", obj_text)

    def test_mtl_document(self) -> None:
        self.assertEqual(
            converter.render_mtl("ogre"),
            "newmtl ogre\n"
            "Ka 1.000000 1.000000 1.000000\n"
            "Kd 1.000000 1.000000 1.000000\n"
            "Ks 0.000000 0.000000 0.000000\n"
            "Tr 1.000000\n"
            "illum 1\n"
            "Ns 0.000000\n"
            "map_Kd ogre.jpg\n",
        )


class ConvertTests(unittest.TestCase):
    def test_convert_writes_pair_and_is_repeatable(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "knight.mdl"
            source.write_bytes(fixtures.triangle_model_bytes())
            out_dir = Path(temp_dir) / "out"

            obj_path, mtl_path = converter.convert_mdl(source, output_dir=out_dir)
            first = (obj_path.read_bytes(), mtl_path.read_bytes())
            converter.convert_mdl(source, output_dir=out_dir)
            second = (obj_path.read_bytes(), mtl_path.read_bytes())

        self.assertEqual(obj_path.name, "knight.obj")
        self.assertEqual(mtl_path.name, "knight.mtl")
        self.assertEqual(first, second)
        self.assertTrue(first[0].startswith(b"o knight\nmtllib knight.mtl\n"))

    def test_failed_conversion_writes_nothing(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "broken.mdl"
            source.write_bytes(fixtures.triangle_model_bytes(normals=(5, 200, 7)))
            out_dir = Path(temp_dir) / "out"

            with self.assertRaises(IndexError):
                converter.convert_mdl(source, output_dir=out_dir)

            self.assertFalse((out_dir / "broken.obj").exists())
            self.assertFalse((out_dir / "broken.mtl").exists())

    def test_failed_material_write_removes_obj(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "wizard.mdl"
            source.write_bytes(fixtures.triangle_model_bytes())
            out_dir = Path(temp_dir) / "out"
            # A directory in the way makes the .mtl write fail.
            (out_dir / "wizard.mtl").mkdir(parents=True)

            with self.assertRaises(OSError):
                converter.convert_mdl(source, output_dir=out_dir)

            self.assertFalse((out_dir / "wizard.obj").exists())

    def test_default_output_is_working_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "src" / "dog.mdl"
            source.parent.mkdir()
            source.write_bytes(fixtures.triangle_model_bytes())
            previous = os.getcwd()
            os.chdir(temp_dir)
            try:
                converter.convert_mdl(source)
                self.assertTrue(Path(temp_dir, "dog.obj").is_file())
                self.assertTrue(Path(temp_dir, "dog.mtl").is_file())
            finally:
                os.chdir(previous)


class CliTests(unittest.TestCase):
    def test_main_success(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "fish.mdl"
            source.write_bytes(fixtures.triangle_model_bytes())
            code = converter.main([str(source), "--output-dir", temp_dir])
            self.assertEqual(code, 0)
            self.assertTrue((Path(temp_dir) / "fish.obj").is_file())

    def test_main_reports_format_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            source = Path(temp_dir) / "bad.mdl"
            source.write_bytes(fixtures.pack_header(num_verts=0, num_triangles=0, version=3))
            with self.assertLogs(level="ERROR") as logs:
                code = converter.main([str(source), "--output-dir", temp_dir])
        self.assertEqual(code, 1)
        self.assertIn("version: 3", "\n".join(logs.output))

    def test_main_reports_missing_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertLogs(level="ERROR"):
                code = converter.main([str(Path(temp_dir) / "none.mdl")])
        self.assertEqual(code, 1)

    def test_usage_error_on_wrong_argument_count(self) -> None:
        for argv in ([], ["a.mdl", "b.mdl"]):
            with contextlib.redirect_stderr(io.StringIO()) as err:
                with self.assertRaises(SystemExit) as ctx:
                    converter.main(argv)
            self.assertNotEqual(ctx.exception.code, 0)
            self.assertIn("usage:", err.getvalue())


if __name__ == "__main__":
    unittest.main()
