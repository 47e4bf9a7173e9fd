import contextlib
import io
import os
import tempfile
import unittest

from mipsasm.assembler import (
    AsmError,
    UnknownOpcode,
    assemble_file,
    assemble_line,
    assemble_lines,
    format_word,
    listing,
    main,
)

SOURCE = """  ADD   $v1, $v0,  $at

ORI $t1,$t1, 0x14

LW $v1, 0x08($zero)
"""


class TestAssembleLines(unittest.TestCase):
    def test_blank_lines_skipped(self):
        words = assemble_lines(SOURCE.splitlines())
        self.assertEqual(words, [0x00411820, 0x35290014, 0x8C030008])

    def test_line_endings_stripped(self):
        self.assertEqual(assemble_lines(["JR $ra\r\n", "\n"]), [0x03E00008])

    def test_blank_line_yields_nothing(self):
        self.assertIsNone(assemble_line("    "))

    def test_first_error_aborts_with_line_number(self):
        with self.assertRaises(UnknownOpcode) as cm:
            assemble_lines(["ADD $v1, $v0, $at", "", "FOO $t1, $t2", "bar"])
        self.assertEqual(cm.exception.line_num, 3)
        self.assertEqual(cm.exception.token, "foo")
        self.assertTrue(str(cm.exception).startswith("Línea 3:"))

    def test_verbose_prints_fields(self):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            assemble_line("ADD $v1, $v0, $at", verbose=True)
        self.assertIn("add | $v1 | $v0 | $at", out.getvalue())

    def test_format_word(self):
        self.assertEqual(format_word(0x00411820), "00411820 ")
        self.assertEqual(format_word(0x8C030008), "8c030008 ")

    def test_listing(self):
        lines = list(listing([0x00411820, 0x8C030008]))
        self.assertTrue(lines[0].startswith("0x0000: 0x00411820 | "))
        self.assertIn("R: opcode=0 rs=2 rt=1 rd=3 shamt=0 funct=32", lines[0])
        self.assertTrue(lines[1].startswith("0x0004: 0x8c030008"))


class TestFiles(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.source = os.path.join(self.tmp.name, "prog.asm")
        self.output = os.path.join(self.tmp.name, "output.txt")

    def write_source(self, text):
        with open(self.source, "w", encoding="utf-8") as f:
            f.write(text)

    def read(self, path):
        with open(path, encoding="utf-8") as f:
            return f.read()

    def test_assemble_file(self):
        self.write_source(SOURCE)
        bin_output = os.path.join(self.tmp.name, "output.bin")
        words = assemble_file(self.source, self.output, bin_output)
        self.assertEqual(len(words), 3)
        self.assertEqual(self.read(self.output), "00411820 \n35290014 \n8c030008 \n")
        self.assertEqual(self.read(bin_output).splitlines()[0], f"{0x00411820:032b}")

    def test_error_writes_nothing(self):
        self.write_source("ADD $v1, $v0, $at\nADD $v1\n")
        with self.assertRaises(AsmError):
            assemble_file(self.source, self.output)
        self.assertFalse(os.path.exists(self.output))

    def run_main(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            status = main(list(argv))
        return status, out.getvalue(), err.getvalue()

    def test_main_ok(self):
        self.write_source(SOURCE)
        status, out, err = self.run_main(self.source, "-o", self.output)
        self.assertEqual(status, 0)
        self.assertIn("0x0008: 0x8c030008", out)
        self.assertEqual(self.read(self.output).splitlines()[1], "35290014 ")

    def test_main_source_error(self):
        self.write_source("FOO $t1, $t2\n")
        status, out, err = self.run_main(self.source, "-o", self.output)
        self.assertEqual(status, 1)
        self.assertIn("Línea 1:", err)
        self.assertIn("'foo'", err)

    def test_main_missing_file(self):
        missing = os.path.join(self.tmp.name, "nada.asm")
        status, out, err = self.run_main(missing, "-o", self.output)
        self.assertEqual(status, 2)
        self.assertIn("nada.asm", err)

    def test_main_missing_output_directory(self):
        self.write_source(SOURCE)
        output = os.path.join(self.tmp.name, "nodir", "out.txt")
        status, out, err = self.run_main(self.source, "-o", output)
        self.assertEqual(status, 2)
        self.assertIn(output, err)
        self.assertNotIn("No se encontró el archivo", err)

    def test_main_missing_bin_directory(self):
        self.write_source(SOURCE)
        bin_output = os.path.join(self.tmp.name, "nodir", "out.bin")
        status, out, err = self.run_main(self.source, "-o", self.output, "--bin", bin_output)
        self.assertEqual(status, 2)
        self.assertIn(bin_output, err)

    def test_main_source_not_utf8(self):
        with open(self.source, "wb") as f:
            f.write(b"ADD $v1, $v0, $at\n\xff\xfe\n")
        status, out, err = self.run_main(self.source, "-o", self.output)
        self.assertEqual(status, 2)
        self.assertIn("Error leyendo archivo", err)
        self.assertFalse(os.path.exists(self.output))


if __name__ == "__main__":
    unittest.main()
