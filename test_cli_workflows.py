from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Dict

from pfs.archive import PFSArchive


def _build_fixture_tree(root: Path) -> Dict[str, bytes]:
    files: Dict[str, bytes] = {}
    (root / "sub" / "nested").mkdir(parents=True)
    files["inner.ini"] = b"[inner]\nname=first\n"
    files["sub/inner2.ini"] = b"[inner2]\nname=second\n" * 10
    files["sub/nested/binary.bin"] = os.urandom(2048)
    files["sub/nested/empty.txt"] = b""
    for rel, data in files.items():
        (root / rel).write_bytes(data)
    return files


def _read_tree(root: Path) -> Dict[str, bytes]:
    out: Dict[str, bytes] = {}
    for dirpath, _dirs, filenames in os.walk(root):
        for fn in filenames:
            p = Path(dirpath) / fn
            out[p.relative_to(root).as_posix()] = p.read_bytes()
    return out


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "pfs.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def make_workspace(self) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        return Path(tmp.name)

    def test_single_file_default_target(self):
        ws = self.make_workspace()
        content = b"[demo]\nkey=value\n"
        (ws / "demo.ini").write_bytes(content)
        self.run_cli(["archive", "demo.ini", "demo.pfs"], cwd=ws)
        raw = (ws / "demo.pfs").read_bytes()
        self.assertEqual(b"\x70\x66\x38", raw[:3])

        proc = self.run_cli(["unarchive", "demo.pfs"], cwd=ws)
        self.assertIn("extract file: demo.ini...OK", proc.stdout)
        self.assertEqual(content, (ws / "demo" / "demo.ini").read_bytes())

    def test_folder_roundtrip_with_target(self):
        ws = self.make_workspace()
        src = ws / "src"
        src.mkdir()
        files = _build_fixture_tree(src)
        self.run_cli(["archive", str(src), str(ws / "tree.pfs"), "--quiet"])
        self.run_cli(["unarchive", str(ws / "tree.pfs"), str(ws / "restored"), "--quiet"])
        self.assertEqual(files, _read_tree(ws / "restored"))

    def test_dry_run(self):
        ws = self.make_workspace()
        src = ws / "src"
        src.mkdir()
        files = _build_fixture_tree(src)
        self.run_cli(["archive", str(src), "tree.pfs"], cwd=ws)
        proc = self.run_cli(["unarchive", "tree.pfs", "--dry"], cwd=ws)
        for rel in files:
            self.assertIn(rel, proc.stdout)
        self.assertFalse((ws / "tree").exists())
        self.run_cli(["unarchive", "tree.pfs", "out", "-d"], cwd=ws)
        self.assertFalse((ws / "out").exists())

    def test_list_info_verify(self):
        ws = self.make_workspace()
        src = ws / "src"
        src.mkdir()
        files = _build_fixture_tree(src)
        archive = ws / "tree.pfs"
        self.run_cli(["archive", str(src), str(archive)])

        listing = self.run_cli(["list", str(archive)]).stdout.splitlines()
        self.assertEqual(len(files), len(listing))
        parsed = PFSArchive.from_file(str(archive))
        for line, e in zip(listing, parsed.entries):
            self.assertEqual(f"{e.size}\t{e.content_offset}\t{e.name}", line)

        info = self.run_cli(["info", str(archive)]).stdout
        self.assertIn("Version: 8", info)
        self.assertIn(f"Key: {parsed.key.hex()}", info)
        self.assertIn(f"Entries: {len(files)}", info)

        self.assertEqual("OK", self.run_cli(["verify", str(archive)]).stdout.strip())
        with open(archive, "r+b") as fh:
            fh.truncate(os.path.getsize(archive) - 1)
        proc = self.run_cli(["verify", str(archive)], expect=1)
        self.assertIn("FAIL", proc.stdout)

    def test_bad_magic_exits_nonzero(self):
        ws = self.make_workspace()
        (ws / "bogus.pfs").write_bytes(b"PK\x03\x04not an archive")
        proc = self.run_cli(["unarchive", "bogus.pfs"], cwd=ws, expect=2)
        self.assertIn("File format not recognized", proc.stderr)
        self.assertFalse((ws / "bogus").exists())

    def test_bad_version_exits_nonzero(self):
        ws = self.make_workspace()
        (ws / "old.pfs").write_bytes(b"pf3" + b"\x00" * 16)
        proc = self.run_cli(["unarchive", "old.pfs"], cwd=ws, expect=2)
        self.assertIn("Invalid file version", proc.stderr)

    def test_missing_archive_exits_nonzero(self):
        ws = self.make_workspace()
        proc = self.run_cli(["unarchive", "missing.pfs"], cwd=ws, expect=2)
        self.assertIn("Error:", proc.stderr)

    def test_partial_failure_exits_one(self):
        ws = self.make_workspace()
        src = ws / "src"
        src.mkdir()
        _build_fixture_tree(src)
        self.run_cli(["archive", str(src), "tree.pfs"], cwd=ws)
        (ws / "out").mkdir()
        (ws / "out" / "sub").write_bytes(b"blocker")
        proc = self.run_cli(["unarchive", "tree.pfs", "out"], cwd=ws, expect=1)
        self.assertIn("cannot extract sub/inner2.ini", proc.stderr)
        self.assertEqual(b"[inner]\nname=first\n", (ws / "out" / "inner.ini").read_bytes())


if __name__ == "__main__":
    unittest.main()
