from __future__ import annotations

import json
import os
import tempfile
import time
import unittest
from pathlib import Path
from unittest.mock import patch

from ctxtree.config.models import ScanConfig, ScanSettings
from ctxtree.fs.filtering import list_directory
from ctxtree.fs.notices import Notice
from ctxtree.fs.scanner import SOFT_CAP_NOTICE, FileScanner
from ctxtree.fs.tree import DirNode, FileNode, TreeNode, payload, walk
from ctxtree.runtime_logging import configure_runtime_logging


def setUpModule() -> None:
    configure_runtime_logging(level="off")


def write_files(root: Path, files: dict[str, int]) -> None:
    for rel, size in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"x" * size)


def config(**overrides: object) -> ScanConfig:
    return ScanSettings(**overrides).resolve()


def by_path(tree: list[TreeNode]) -> dict[str, TreeNode]:
    return {node.path: node for node in walk(tree)}


class ScannerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.notices: list[Notice] = []
        self.progress: list[tuple[int, str]] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def scanner(self, **kwargs: object) -> FileScanner:
        kwargs.setdefault("on_notice", self.notices.append)
        return FileScanner(self.root, **kwargs)  # type: ignore[arg-type]

    def record(self, processed: int, rel: str) -> None:
        self.progress.append((processed, rel))


class BuildTreeScenarioTests(ScannerTestCase):
    async def test_truncation_binary_skip_and_heavy_directory(self) -> None:
        write_files(
            self.root,
            {"src/a.txt": 4000, "src/b.png": 300, "node_modules/x/y.js": 10},
        )
        scanner = self.scanner(config=config(max_file_size_kb=1))

        self.assertEqual(await scanner.count_files(), 2)
        tree = await scanner.build_tree(self.record)

        self.assertEqual([node.name for node in tree], ["src"])
        src = tree[0]
        assert isinstance(src, DirNode)
        a_txt, b_png = src.children
        assert isinstance(a_txt, FileNode) and isinstance(b_png, FileNode)
        self.assertEqual(
            (a_txt.name, a_txt.chars, a_txt.tokens, a_txt.truncated, a_txt.important),
            ("a.txt", 1024, 256, True, True),
        )
        self.assertEqual(
            (b_png.name, b_png.skipped, b_png.chars, b_png.tokens, b_png.important),
            ("b.png", True, 0, 0, False),
        )
        self.assertEqual(self.notices, [Notice("info", "Skipping folder: node_modules")])

    async def test_large_directory_is_skipped_once(self) -> None:
        big = self.root / "big"
        big.mkdir()
        for index in range(5000):
            (big / f"f{index}.txt").touch()
        (self.root / "main.py").write_text("print()\n", encoding="utf-8")
        scanner = self.scanner(config=config(dir_entry_skip_threshold=2000))

        await scanner.count_files()
        tree = await scanner.build_tree(self.record)
        await scanner.build_tree(self.record)

        self.assertEqual(self.notices, [Notice("info", "Skipping large folder: big (5000 items)")])
        big_node = by_path(tree)["big"]
        assert isinstance(big_node, DirNode)
        self.assertEqual(big_node.children, [])
        self.assertFalse(big_node.important)

    async def test_root_is_never_skipped_for_size(self) -> None:
        write_files(self.root, {f"f{index}.txt": 1 for index in range(5)})
        scanner = self.scanner(config=config(dir_entry_skip_threshold=2))

        tree = await scanner.build_tree(self.record)

        self.assertEqual(len(tree), 5)
        self.assertEqual(self.notices, [])

    async def test_blacklisted_entries_never_appear(self) -> None:
        write_files(
            self.root,
            {
                "app/secret.txt": 5,
                "app/deep/er/secret.TXT": 5,
                "app/deep/trace.LOG": 5,
                "app/deep/keep.py": 5,
                "lib/Vendor/pkg.py": 5,
            },
        )
        scanner = self.scanner(
            config=config(blacklist_names=["Secret.txt", "vendor"], blacklist_extensions=["log"]),
        )

        tree = await scanner.build_tree(self.record)

        names = {node.name for node in walk(tree)}
        self.assertNotIn("secret.txt", names)
        self.assertNotIn("secret.TXT", names)
        self.assertNotIn("trace.LOG", names)
        self.assertNotIn("Vendor", names)
        self.assertIn("keep.py", names)
        self.assertIn(Notice("info", "Skipping blacklisted folder: lib/Vendor"), self.notices)

    async def test_dotfiles_and_symlinks_are_ignored(self) -> None:
        write_files(self.root, {".env": 5, ".hidden/x.py": 5, "real.py": 5, "pkg/mod.py": 5})
        os.symlink(self.root / "real.py", self.root / "alias.py")
        os.symlink(self.root / "pkg", self.root / "pkg-link")

        tree = await self.scanner().build_tree(self.record)

        self.assertEqual(sorted(by_path(tree)), ["pkg", "pkg/mod.py", "real.py"])

    async def test_smart_ignore_off_descends_everywhere(self) -> None:
        write_files(self.root, {"node_modules/x/y.js": 10, "build/out.txt": 4})
        scanner = self.scanner(config=config(smart_ignore=False))

        tree = await scanner.build_tree(self.record)

        paths = by_path(tree)
        self.assertIn("node_modules/x/y.js", paths)
        self.assertFalse(paths["node_modules"].important)
        self.assertFalse(paths["build"].important)
        self.assertEqual(self.notices, [])

    async def test_binaries_are_measured_when_skip_is_off(self) -> None:
        write_files(self.root, {"logo.png": 2048})
        scanner = self.scanner(config=config(skip_binaries=False, max_file_size_kb=0))

        tree = await scanner.build_tree(self.record)

        logo = tree[0]
        assert isinstance(logo, FileNode)
        self.assertEqual((logo.skipped, logo.chars, logo.truncated), (False, 1024, True))
        self.assertFalse(logo.important)

    async def test_aggregates_and_file_invariants_hold(self) -> None:
        write_files(
            self.root,
            {
                "a/one.py": 10,
                "a/two.bin": 3000,
                "a/b/three.png": 10,
                "a/b/c/four.md": 5000,
                "five.txt": 0,
            },
        )
        cfg = config(max_file_size_kb=2)
        tree = await self.scanner(config=cfg).build_tree(self.record)

        files = [node for node in walk(tree) if isinstance(node, FileNode)]
        self.assertEqual(len(files), 5)
        for node in files:
            if node.truncated:
                self.assertEqual(node.chars, cfg.max_bytes)
            if node.skipped:
                self.assertEqual((node.chars, node.tokens), (0, 0))
        for node in walk(tree):
            if isinstance(node, DirNode):
                leaves = [leaf for leaf in walk(node.children) if isinstance(leaf, FileNode)]
                self.assertEqual(node.agg_files, len(leaves))
                self.assertEqual(node.agg_chars, sum(leaf.chars for leaf in leaves))
                self.assertEqual(node.agg_truncated, sum(leaf.truncated for leaf in leaves))

    async def test_repeated_scans_are_identical(self) -> None:
        write_files(self.root, {f"d{index % 3}/f{index}.py": index for index in range(40)})

        first = await self.scanner().build_tree(self.record)
        second = await self.scanner().build_tree(self.record)

        self.assertEqual(json.dumps(payload(first)), json.dumps(payload(second)))


class BuildTreeFailureTests(ScannerTestCase):
    async def test_stat_failure_keeps_file_visible(self) -> None:
        write_files(self.root, {"ok.py": 8, "bad.log": 8})

        def flaky_size(path: Path) -> int:
            if path.name == "bad.log":
                raise PermissionError("denied")
            return path.stat().st_size

        with patch("ctxtree.fs.scanner.file_size", side_effect=flaky_size):
            tree = await self.scanner().build_tree(self.record)

        bad = by_path(tree)["bad.log"]
        assert isinstance(bad, FileNode)
        self.assertTrue(bad.important)
        self.assertEqual((bad.chars, bad.tokens, bad.truncated, bad.skipped), (0, 0, False, False))
        self.assertEqual(sorted(n for n, _ in self.progress), [1, 2])
        self.assertEqual(sorted(rel for _, rel in self.progress), ["bad.log", "ok.py"])

    async def test_unreadable_directory_contributes_nothing(self) -> None:
        write_files(self.root, {"locked/a.py": 5, "open/b.py": 5})

        def guarded_listing(path: Path) -> list:
            if path.name == "locked":
                raise PermissionError("denied")
            return list_directory(path)

        scanner = self.scanner()
        with patch("ctxtree.fs.scanner.list_directory", side_effect=guarded_listing):
            total = await scanner.count_files()
            tree = await scanner.build_tree(self.record)

        self.assertEqual(total, 1)
        paths = by_path(tree)
        self.assertEqual(paths["locked"].children, [])  # type: ignore[union-attr]
        self.assertIn("open/b.py", paths)
        self.assertEqual(self.notices, [])

    async def test_concurrency_is_bounded(self) -> None:
        write_files(self.root, {f"f{index:02}.py": 4 for index in range(30)})

        def slow_size(path: Path) -> int:
            time.sleep(0.005)
            return path.stat().st_size

        scanner = self.scanner(max_in_flight=4)
        with patch("ctxtree.fs.scanner.file_size", side_effect=slow_size):
            tree = await scanner.build_tree(self.record)

        self.assertEqual(len(tree), 30)
        self.assertLessEqual(scanner.peak_in_flight, 4)
        self.assertGreaterEqual(scanner.peak_in_flight, 2)
        self.assertEqual(scanner.processed, 30)


class SoftCapTests(ScannerTestCase):
    async def test_count_stops_exactly_at_cap(self) -> None:
        write_files(self.root, {f"d{index % 2}/f{index}.py": 1 for index in range(12)})

        total = await self.scanner(soft_cap=5).count_files()

        self.assertEqual(total, 5)
        self.assertEqual([notice.level for notice in self.notices], ["warning"])
        self.assertIn("5 files", self.notices[0].message)

    async def test_build_returns_partial_tree_with_one_warning(self) -> None:
        write_files(self.root, {f"d{index % 2}/f{index}.py": 1 for index in range(12)})
        scanner = self.scanner(soft_cap=5)

        tree = await scanner.build_tree(self.record)

        self.assertTrue(tree)
        self.assertEqual(sum(node.totals().files for node in tree), 5)
        self.assertEqual(self.notices, [Notice("warning", "Stopped at 5 files for performance.")])
        self.assertEqual(len(self.progress), 5)

    async def test_count_then_build_warns_once_and_still_caps(self) -> None:
        write_files(self.root, {f"d{index % 2}/f{index}.py": 1 for index in range(12)})
        scanner = self.scanner(soft_cap=5)

        total = await scanner.count_files()
        tree = await scanner.build_tree(self.record)

        self.assertEqual(total, 5)
        self.assertEqual(sum(node.totals().files for node in tree), 5)
        self.assertEqual(scanner.processed, 5)
        self.assertEqual([notice.level for notice in self.notices], ["warning"])
        self.assertIn("Large workspace detected", self.notices[0].message)
        self.assertTrue(scanner.notices.reported(SOFT_CAP_NOTICE))

    async def test_notice_keys_are_reported_once(self) -> None:
        scanner = self.scanner()
        self.assertFalse(scanner.notices.reported("skip-heavy:vendor"))

        self.assertTrue(scanner.notices.emit("skip-heavy:vendor", "info", "first"))
        self.assertFalse(scanner.notices.emit("skip-heavy:vendor", "info", "second"))

        self.assertTrue(scanner.notices.reported("skip-heavy:vendor"))
        self.assertEqual(self.notices, [Notice("info", "first")])


class CancellationTests(ScannerTestCase):
    async def test_build_returns_empty_when_cancelled(self) -> None:
        write_files(self.root, {f"f{index}.py": 4 for index in range(20)})
        cancelled = False

        def on_progress(processed: int, rel: str) -> None:
            nonlocal cancelled
            cancelled = True

        scanner = self.scanner(is_cancelled=lambda: cancelled)
        tree = await scanner.build_tree(on_progress)

        self.assertEqual(tree, [])

    async def test_build_returns_empty_when_cancelled_up_front(self) -> None:
        write_files(self.root, {"a.py": 4})

        tree = await self.scanner(is_cancelled=lambda: True).build_tree(self.record)

        self.assertEqual(tree, [])
        self.assertEqual(self.progress, [])

    async def test_count_returns_partial_total(self) -> None:
        write_files(self.root, {f"f{index}.py": 4 for index in range(20)})
        cancelled = False

        def on_progress(count: int, rel: str) -> None:
            nonlocal cancelled
            cancelled = True

        total = await self.scanner(is_cancelled=lambda: cancelled).count_files(on_progress)

        self.assertEqual(total, 1)


class CountProgressTests(ScannerTestCase):
    async def test_progress_on_first_and_every_500th_file(self) -> None:
        write_files(self.root, {f"d{index % 4}/f{index}.txt": 0 for index in range(1001)})
        calls: list[int] = []

        total = await self.scanner().count_files(lambda count, rel: calls.append(count))

        self.assertEqual(total, 1001)
        self.assertEqual(calls, [1, 500, 1000])


if __name__ == "__main__":
    unittest.main()
