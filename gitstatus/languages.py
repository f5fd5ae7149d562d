"""
Per-language line statistics for a working tree.

Files are mapped to a language by extension (or exact file name) and each
line is classified as blank, comment or code. Only whole-line comments
count as comments; block comments are counted as code.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from gitstatus.models import LanguageStats

logger = logging.getLogger(__name__)

# language -> (extensions, line comment prefixes)
_LANGUAGES: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    "Python": ((".py", ".pyi", ".pyw"), ("#",)),
    "Rust": ((".rs",), ("//",)),
    "Go": ((".go",), ("//",)),
    "C": ((".c", ".h"), ("//",)),
    "C++": ((".cpp", ".cc", ".cxx", ".hpp", ".hh", ".hxx"), ("//",)),
    "C#": ((".cs",), ("//",)),
    "Java": ((".java",), ("//",)),
    "Kotlin": ((".kt", ".kts"), ("//",)),
    "Scala": ((".scala",), ("//",)),
    "Swift": ((".swift",), ("//",)),
    "JavaScript": ((".js", ".mjs", ".cjs", ".jsx"), ("//",)),
    "TypeScript": ((".ts", ".tsx"), ("//",)),
    "Ruby": ((".rb",), ("#",)),
    "PHP": ((".php",), ("//", "#")),
    "Shell": ((".sh", ".bash", ".zsh"), ("#",)),
    "Lua": ((".lua",), ("--",)),
    "Haskell": ((".hs",), ("--",)),
    "SQL": ((".sql",), ("--",)),
    "Nix": ((".nix",), ("#",)),
    "TOML": ((".toml",), ("#",)),
    "YAML": ((".yaml", ".yml"), ("#",)),
    "JSON": ((".json",), ()),
    "HTML": ((".html", ".htm"), ()),
    "CSS": ((".css", ".scss"), ()),
    "Markdown": ((".md", ".markdown"), ()),
    "Makefile": ((".mk",), ("#",)),
    "Dockerfile": ((), ("#",)),
}

_FILENAMES = {
    "Makefile": "Makefile",
    "makefile": "Makefile",
    "GNUmakefile": "Makefile",
    "Dockerfile": "Dockerfile",
}

_EXTENSION_MAP: Dict[str, str] = {
    ext: language
    for language, (extensions, _) in _LANGUAGES.items()
    for ext in extensions
}


def detect_language(file_path: Path) -> Optional[str]:
    if file_path.name in _FILENAMES:
        return _FILENAMES[file_path.name]
    return _EXTENSION_MAP.get(file_path.suffix.lower())


def classify_lines(lines: Iterable[str], comment_prefixes: Tuple[str, ...]) -> Tuple[int, int, int]:
    """Return (code, comments, blanks) for *lines*."""
    code = comments = blanks = 0
    for line in lines:
        stripped = line.strip()
        if not stripped:
            blanks += 1
        elif comment_prefixes and stripped.startswith(comment_prefixes):
            comments += 1
        else:
            code += 1
    return code, comments, blanks


class LanguageCounter:
    """Counts code, comment and blank lines per language under a directory."""

    def __init__(self, skip_dirs: Optional[List[str]] = None, max_file_size_kb: int = 1024):
        self.skip_dirs = set(skip_dirs if skip_dirs is not None else [".git"])
        self.max_size = max_file_size_kb * 1024

    def _walk_files(self, root: Path) -> Iterable[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if d not in self.skip_dirs]
            for name in filenames:
                yield Path(dirpath) / name

    def count(self, root: Path) -> Dict[str, LanguageStats]:
        totals: Dict[str, List[int]] = {}

        for file_path in self._walk_files(root):
            language = detect_language(file_path)
            if language is None:
                continue

            try:
                if file_path.is_symlink() or file_path.stat().st_size > self.max_size:
                    continue
                with open(file_path, encoding="utf-8", errors="replace") as f:
                    code, comments, blanks = classify_lines(f, _LANGUAGES[language][1])
            except OSError as e:
                logger.debug("Skipping %s: %s", file_path, e)
                continue

            counts = totals.setdefault(language, [0, 0, 0, 0])
            counts[0] += 1
            counts[1] += code
            counts[2] += comments
            counts[3] += blanks

        return {name: LanguageStats(*counts) for name, counts in sorted(totals.items())}
