"""Micro-chunk memory — taxonomy tree, chunk files, index and scoring.

Layout:
    <repo>/.codex-context/
    ├── README.md
    ├── SOLUTIONS/
    │   ├── bug_fixes/
    │   │   ├── README.md                  # Bucket description (not a chunk)
    │   │   └── solutions-bug_fixes-001.md # One micro-chunk per file
    │   └── ...
    └── ...                                # 7 categories × 4 subcategories

The context root is `.codex-context` at the git root, discovered by
`TreeManager`; without a repository it sits in the starting directory.
"""
