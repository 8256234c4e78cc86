"""Context tree manager — owns the on-disk category/subcategory layout.

The tree lives under `.codex-context/` at the version-control root (or the
starting directory when no repository is found). Directories are created
and validated against the fixed taxonomy; existing content is never
deleted or overwritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from smartctx.errors import TreeError
from smartctx.memory import taxonomy
from smartctx.memory.chunk import id_counter
from smartctx.memory.taxonomy import CATEGORY_DESCRIPTIONS, CATEGORY_TAXONOMY

logger = logging.getLogger(__name__)

CONTEXT_DIR_NAME = ".codex-context"
VCS_MARKER = ".git"
README_NAME = "README.md"


@dataclass
class InitResult:
    success: bool = False
    context_path: Path | None = None
    categories_created: int = 0
    subcategories_created: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class TreeValidation:
    is_valid: bool = True
    context_path: Path | None = None
    missing_directories: list[Path] = field(default_factory=list)
    invalid_files: list[Path] = field(default_factory=list)
    repair_actions: list[str] = field(default_factory=list)


@dataclass
class TreeStats:
    categories: int = 0
    subcategories: int = 0
    total_files: int = 0
    files_by_category: dict[str, int] = field(default_factory=dict)


def discover_root(start_dir: Path) -> Path:
    """Resolve the context root for `start_dir`.

    An existing `.codex-context` in `start_dir` wins; otherwise walk up to
    the nearest directory holding a `.git` marker. Falls back to
    `start_dir/.codex-context`.
    """
    start = start_dir.resolve()
    local = start / CONTEXT_DIR_NAME
    if local.is_dir():
        return local

    p = start
    while True:
        if (p / VCS_MARKER).exists():
            return p / CONTEXT_DIR_NAME
        if p == p.parent:
            break
        p = p.parent
    return local


def _is_content_file(path: Path) -> bool:
    return path.suffix == ".md" and path.name != README_NAME


def _file_order(path: Path) -> tuple[int, str]:
    # Numeric id order, so -1000 follows -999; unnumbered names first.
    n = id_counter(path.stem)
    return (-1 if n is None else n, path.name)


class TreeManager:
    """Create, validate and repair the context directory tree."""

    def __init__(self, start_dir: Path | None = None, *, root: Path | None = None) -> None:
        self._start_dir = start_dir or Path.cwd()
        self._root = Path(root) if root is not None else None

    @property
    def root(self) -> Path:
        """Context root, discovered once and cached."""
        if self._root is None:
            self._root = discover_root(self._start_dir)
        return self._root

    def category_path(self, category: str, subcategory: str | None = None) -> Path:
        taxonomy.check(category, subcategory)
        path = self.root / category
        return path / subcategory if subcategory else path

    # ── Initialization ───────────────────────────────────────

    def initialize_tree(self) -> InitResult:
        """Create root, categories, leaves and README files. Idempotent."""
        result = InitResult(context_path=self.root)
        logger.info("Initializing context tree at %s", self.root)

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            result.errors.append(f"Failed to create context root {self.root}: {e}")
            logger.error(result.errors[-1])
            return result

        for category, subcategories in CATEGORY_TAXONOMY.items():
            category_dir = self.root / category
            try:
                if not category_dir.exists():
                    category_dir.mkdir()
                    result.categories_created += 1
                    logger.debug("Created category: %s", category)
            except OSError as e:
                result.errors.append(f"Failed to create category {category}: {e}")
                logger.error(result.errors[-1])
                continue

            for subcategory in subcategories:
                leaf = category_dir / subcategory
                try:
                    if not leaf.exists():
                        leaf.mkdir()
                        result.subcategories_created += 1
                        logger.debug("Created subcategory: %s/%s", category, subcategory)

                    readme = leaf / README_NAME
                    if not readme.exists():
                        readme.write_text(
                            _subcategory_readme(category, subcategory), encoding="utf-8"
                        )
                except OSError as e:
                    result.errors.append(f"Failed to create {category}/{subcategory}: {e}")
                    logger.error(result.errors[-1])

        root_readme = self.root / README_NAME
        try:
            if not root_readme.exists():
                root_readme.write_text(_root_readme(), encoding="utf-8")
        except OSError as e:
            result.errors.append(f"Failed to write {root_readme}: {e}")
            logger.error(result.errors[-1])

        result.success = not result.errors
        logger.info(
            "Context tree ready (%d categories, %d subcategories created, %d errors)",
            result.categories_created,
            result.subcategories_created,
            len(result.errors),
        )
        return result

    # ── Validation & repair ──────────────────────────────────

    def validate_tree(self) -> TreeValidation:
        """Check every taxonomy path exists and is a directory."""
        result = TreeValidation(context_path=self.root)
        try:
            if not self.root.is_dir():
                result.repair_actions.append("Initialize context tree")

            for category, subcategories in CATEGORY_TAXONOMY.items():
                category_dir = self.root / category
                if category_dir.exists() and not category_dir.is_dir():
                    result.invalid_files.append(category_dir)
                    result.repair_actions.append(f"Resolve file blocking category: {category}")
                    continue

                for subcategory in subcategories:
                    leaf = category_dir / subcategory
                    if not leaf.exists():
                        result.missing_directories.append(leaf)
                        result.repair_actions.append(
                            f"Create subcategory: {category}/{subcategory}"
                        )
                    elif not leaf.is_dir():
                        result.invalid_files.append(leaf)
                        result.repair_actions.append(
                            f"Resolve file blocking subcategory: {category}/{subcategory}"
                        )
        except OSError as e:
            raise TreeError(f"Context tree validation failed: {e}", str(self.root)) from e

        result.is_valid = not result.missing_directories and not result.invalid_files
        if not result.is_valid:
            logger.info(
                "Context tree invalid: %d missing, %d invalid",
                len(result.missing_directories),
                len(result.invalid_files),
            )
        return result

    def repair_tree(self, validation: TreeValidation | None = None) -> bool:
        """Recreate missing directories. Conflicting files are left in place."""
        validation = validation or self.validate_tree()
        if validation.is_valid:
            return True

        for path in validation.invalid_files:
            logger.warning("Manual resolution required, file blocks directory: %s", path)

        init = self.initialize_tree()
        repaired = init.success and not validation.invalid_files
        logger.info("Context tree repair %s", "completed" if repaired else "incomplete")
        return repaired

    def ensure_tree(self) -> bool:
        """Validate and repair when needed."""
        validation = self.validate_tree()
        if validation.is_valid:
            return True
        return self.repair_tree(validation)

    # ── Listing & stats ──────────────────────────────────────

    def list_files(self, category: str, subcategory: str | None = None) -> list[Path]:
        """Content files of one leaf in id order, or of every leaf in a category."""
        if subcategory is None:
            taxonomy.check(category)
            files: list[Path] = []
            for sub in CATEGORY_TAXONOMY[category]:
                files.extend(self.list_files(category, sub))
            return files

        path = self.category_path(category, subcategory)
        if not path.is_dir():
            return []
        try:
            return sorted(
                (p for p in path.iterdir() if p.is_file() and _is_content_file(p)),
                key=_file_order,
            )
        except OSError as e:
            raise TreeError(f"Failed to list {category}/{subcategory}: {e}", str(path)) from e

    def stats(self) -> TreeStats:
        """Count directories and content files by scanning disk."""
        stats = TreeStats()
        for category, subcategories in CATEGORY_TAXONOMY.items():
            if not (self.root / category).is_dir():
                continue
            stats.categories += 1
            stats.files_by_category[category] = 0
            for subcategory in subcategories:
                if not (self.root / category / subcategory).is_dir():
                    continue
                stats.subcategories += 1
                count = len(self.list_files(category, subcategory))
                stats.files_by_category[category] += count
                stats.total_files += count
        return stats


def _subcategory_readme(category: str, subcategory: str) -> str:
    topic = subcategory.replace("_", " ")
    return (
        f"# {category} / {subcategory}\n\n"
        f"Context insights about **{topic}** within **{category}** "
        f"({CATEGORY_DESCRIPTIONS[category]}).\n\n"
        f"Each `<id>.md` file holds one micro-chunk: frontmatter with id, created,\n"
        f"relevance_keywords, confidence and source, then the insight itself.\n"
        f"Files are written automatically from user prompts and AI reasoning.\n"
    )


def _root_readme() -> str:
    lines = [
        "# Smart Context",
        "",
        f"Micro-chunk context tree: {len(CATEGORY_TAXONOMY)} categories, "
        f"{sum(len(s) for s in CATEGORY_TAXONOMY.values())} subcategories.",
        "",
    ]
    for category, subcategories in CATEGORY_TAXONOMY.items():
        lines.append(f"## {category}")
        lines.extend(f"- `{sub}`" for sub in subcategories)
        lines.append("")
    lines.append("All data stays in this directory; delete a file to forget an insight.")
    return "\n".join(lines) + "\n"
