"""Tests for the context tree manager."""

from __future__ import annotations

import pytest
from pathlib import Path

from smartctx.errors import TaxonomyError
from smartctx.memory.taxonomy import CATEGORY_TAXONOMY
from smartctx.memory.tree import CONTEXT_DIR_NAME, TreeManager, discover_root


@pytest.fixture
def tree(tmp_path: Path) -> TreeManager:
    return TreeManager(root=tmp_path / CONTEXT_DIR_NAME)


class TestTaxonomy:
    def test_seven_categories_four_subcategories(self):
        assert len(CATEGORY_TAXONOMY) == 7
        assert all(len(subs) == 4 for subs in CATEGORY_TAXONOMY.values())


class TestDiscoverRoot:
    def test_git_root(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert discover_root(nested) == tmp_path.resolve() / CONTEXT_DIR_NAME

    def test_git_file_marker(self, tmp_path: Path):
        # Worktrees and submodules use a .git file
        (tmp_path / ".git").write_text("gitdir: elsewhere", encoding="utf-8")
        nested = tmp_path / "pkg"
        nested.mkdir()
        assert discover_root(nested) == tmp_path.resolve() / CONTEXT_DIR_NAME

    def test_existing_local_context_wins(self, tmp_path: Path):
        (tmp_path / ".git").mkdir()
        nested = tmp_path / "sub"
        (nested / CONTEXT_DIR_NAME).mkdir(parents=True)
        assert discover_root(nested) == nested.resolve() / CONTEXT_DIR_NAME

    def test_root_is_cached(self, tmp_path: Path):
        manager = TreeManager(tmp_path)
        first = manager.root
        (tmp_path / ".git").mkdir()
        assert manager.root == first

    def test_explicit_root(self, tmp_path: Path):
        manager = TreeManager(tmp_path, root=tmp_path / "ctx")
        assert manager.root == tmp_path / "ctx"


class TestInitializeTree:
    def test_creates_all_leaves(self, tree: TreeManager):
        result = tree.initialize_tree()
        assert result.success
        assert result.categories_created == 7
        assert result.subcategories_created == 28
        assert result.errors == []
        assert (tree.root / "SOLUTIONS" / "bug_fixes").is_dir()
        assert (tree.root / "SOLUTIONS" / "bug_fixes" / "README.md").exists()
        assert (tree.root / "README.md").exists()

    def test_idempotent(self, tree: TreeManager):
        tree.initialize_tree()
        result = tree.initialize_tree()
        assert result.success
        assert result.categories_created == 0
        assert result.subcategories_created == 0

    def test_never_overwrites_readme(self, tree: TreeManager):
        tree.initialize_tree()
        readme = tree.root / "KNOWLEDGE" / "tool_knowledge" / "README.md"
        readme.write_text("custom notes", encoding="utf-8")
        tree.initialize_tree()
        assert readme.read_text(encoding="utf-8") == "custom notes"

    def test_partial_failure_collects_errors(self, tree: TreeManager):
        tree.root.mkdir(parents=True)
        (tree.root / "DECISIONS").write_text("not a directory", encoding="utf-8")
        result = tree.initialize_tree()
        assert not result.success
        assert len(result.errors) == 4
        assert all("DECISIONS" in e for e in result.errors)
        # Other categories are still created
        assert (tree.root / "KNOWLEDGE" / "domain_expertise").is_dir()


class TestValidateTree:
    def test_empty_root_reports_28_missing(self, tree: TreeManager):
        tree.root.mkdir(parents=True)
        validation = tree.validate_tree()
        assert not validation.is_valid
        assert len(validation.missing_directories) == 28
        assert validation.invalid_files == []

    def test_nonexistent_root(self, tree: TreeManager):
        validation = tree.validate_tree()
        assert not validation.is_valid
        assert len(validation.missing_directories) == 28
        assert "Initialize context tree" in validation.repair_actions

    def test_valid_after_init(self, tree: TreeManager):
        tree.initialize_tree()
        validation = tree.validate_tree()
        assert validation.is_valid
        assert validation.missing_directories == []

    def test_file_at_leaf_is_invalid(self, tree: TreeManager):
        tree.initialize_tree()
        leaf = tree.root / "SOLUTIONS" / "bug_fixes"
        for f in leaf.iterdir():
            f.unlink()
        leaf.rmdir()
        leaf.write_text("oops", encoding="utf-8")

        validation = tree.validate_tree()
        assert not validation.is_valid
        assert validation.invalid_files == [leaf]
        assert validation.missing_directories == []


class TestRepairTree:
    def test_repairs_missing(self, tree: TreeManager):
        tree.initialize_tree()
        leaf = tree.root / "BEST_PRACTICES" / "performance_tips"
        (leaf / "README.md").unlink()
        leaf.rmdir()

        assert tree.repair_tree() is True
        assert leaf.is_dir()
        assert tree.validate_tree().is_valid

    def test_valid_tree_needs_no_repair(self, tree: TreeManager):
        tree.initialize_tree()
        assert tree.repair_tree() is True

    def test_conflicting_file_is_left_alone(self, tree: TreeManager):
        tree.root.mkdir(parents=True)
        (tree.root / "KNOWLEDGE").mkdir()
        blocker = tree.root / "KNOWLEDGE" / "domain_expertise"
        blocker.write_text("user data", encoding="utf-8")

        assert tree.repair_tree() is False
        assert blocker.is_file()
        assert blocker.read_text(encoding="utf-8") == "user data"
        # Everything else was still created
        assert (tree.root / "KNOWLEDGE" / "tool_knowledge").is_dir()


class TestListFiles:
    def test_excludes_readme(self, tree: TreeManager):
        tree.initialize_tree()
        leaf = tree.root / "SOLUTIONS" / "bug_fixes"
        (leaf / "solutions-bug_fixes-002.md").write_text("b", encoding="utf-8")
        (leaf / "solutions-bug_fixes-001.md").write_text("a", encoding="utf-8")
        (leaf / "notes.txt").write_text("ignored", encoding="utf-8")

        files = tree.list_files("SOLUTIONS", "bug_fixes")
        assert [f.name for f in files] == [
            "solutions-bug_fixes-001.md",
            "solutions-bug_fixes-002.md",
        ]

    def test_numeric_id_order(self, tree: TreeManager):
        tree.initialize_tree()
        leaf = tree.root / "SOLUTIONS" / "bug_fixes"
        for name in ["solutions-bug_fixes-1000.md", "solutions-bug_fixes-999.md", "notes.md"]:
            (leaf / name).write_text("", encoding="utf-8")

        files = tree.list_files("SOLUTIONS", "bug_fixes")
        assert [f.name for f in files] == [
            "notes.md",
            "solutions-bug_fixes-999.md",
            "solutions-bug_fixes-1000.md",
        ]

    def test_whole_category(self, tree: TreeManager):
        tree.initialize_tree()
        (tree.root / "SOLUTIONS" / "bug_fixes" / "x.md").write_text("", encoding="utf-8")
        (tree.root / "SOLUTIONS" / "common_problems" / "y.md").write_text("", encoding="utf-8")
        assert len(tree.list_files("SOLUTIONS")) == 2

    def test_missing_directory(self, tree: TreeManager):
        assert tree.list_files("SOLUTIONS", "bug_fixes") == []

    def test_unknown_bucket(self, tree: TreeManager):
        with pytest.raises(TaxonomyError):
            tree.list_files("SOLUTIONS", "nope")
        with pytest.raises(TaxonomyError):
            tree.list_files("NOPE")


class TestStats:
    def test_counts_files(self, tree: TreeManager):
        tree.initialize_tree()
        (tree.root / "DECISIONS" / "tool_selections" / "a.md").write_text("", encoding="utf-8")
        (tree.root / "DECISIONS" / "design_patterns" / "b.md").write_text("", encoding="utf-8")

        stats = tree.stats()
        assert stats.categories == 7
        assert stats.subcategories == 28
        assert stats.total_files == 2
        assert stats.files_by_category["DECISIONS"] == 2
        assert stats.files_by_category["KNOWLEDGE"] == 0

    def test_empty(self, tree: TreeManager):
        stats = tree.stats()
        assert stats.categories == 0
        assert stats.total_files == 0
