#!/usr/bin/env python3
"""
Tests for file helpers: prompt files, .gitignore maintenance, YAML reading.
"""

import sys
import tempfile
import unittest
from pathlib import Path

sys.path.append(str(Path(__file__).parent))

from tmux_dispatch.utils.file_utils import PROMPT_FILENAME, FileUtils


class TestPromptFile(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.dir = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_round_trip_is_exact(self):
        prompt = (
            "# Task\r\n\r\nRun `make test` && echo $(whoami)\n"
            "It's \"quoted\"; tabs\there\nünïcødé ✓\n\n\n"
        )
        path = FileUtils.write_prompt_file(self.dir, prompt)
        self.assertEqual(path, self.dir / PROMPT_FILENAME)
        self.assertEqual(FileUtils.read_prompt_file(path), prompt)
        self.assertEqual(path.read_bytes(), prompt.encode("utf-8"))

    def test_rewrite_replaces_content(self):
        FileUtils.write_prompt_file(self.dir, "first, much longer prompt")
        path = FileUtils.write_prompt_file(self.dir, "second")
        self.assertEqual(FileUtils.read_prompt_file(path), "second")


class TestEnsureLine(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.gitignore = Path(self.temp_dir.name) / ".gitignore"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_creates_missing_file(self):
        self.assertTrue(FileUtils.ensure_line_in_file(self.gitignore, ".worktrees/"))
        self.assertEqual(self.gitignore.read_text(), ".worktrees/\n")

    def test_appends_once(self):
        self.gitignore.write_text("node_modules")
        self.assertTrue(FileUtils.ensure_line_in_file(self.gitignore, ".worktrees/"))
        self.assertFalse(FileUtils.ensure_line_in_file(self.gitignore, ".worktrees/"))

        lines = self.gitignore.read_text().split("\n")
        self.assertEqual(lines.count(".worktrees/"), 1)
        self.assertIn("node_modules", lines)

    def test_partial_match_does_not_count(self):
        self.gitignore.write_text(".worktrees/old\n")
        self.assertTrue(FileUtils.ensure_line_in_file(self.gitignore, ".worktrees/"))


class TestReadYaml(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "config.yml"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_missing(self):
        self.assertIsNone(FileUtils.read_yaml(self.path))

    def test_empty(self):
        self.path.write_text("")
        self.assertEqual(FileUtils.read_yaml(self.path), {})

    def test_mapping(self):
        self.path.write_text("model: sonnet\nmax_turns: 3\n")
        self.assertEqual(FileUtils.read_yaml(self.path), {"model": "sonnet", "max_turns": 3})

    def test_not_a_mapping(self):
        self.path.write_text("just a string\n")
        self.assertIsNone(FileUtils.read_yaml(self.path))

    def test_tail_lines(self):
        self.path.write_text("\n".join(str(i) for i in range(10)))
        self.assertEqual(FileUtils.tail_lines(self.path, 3), "7\n8\n9")


if __name__ == '__main__':
    unittest.main()
