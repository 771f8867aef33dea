"""
Filesystem-backed per-project document store used by /upload, /projects and /ask.

Layout: <root>/<project>/<type>.txt
"""

from __future__ import annotations

import logging
import re
from pathlib import Path


DOCUMENT_TYPES = ("guidelines", "faq", "documentation")

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_segment(name: str) -> str:
    """Reduce a user-supplied name to a single safe path segment."""
    cleaned = _UNSAFE.sub("-", name.strip()).strip(".-")
    if not cleaned:
        raise ValueError(f"Invalid name: {name!r}")
    return cleaned.lower()


class DocumentStore:
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def project_dir(self, project: str) -> Path:
        return self.root / safe_segment(project)

    def save(self, project: str, doc_type: str, text: str) -> Path:
        if doc_type not in DOCUMENT_TYPES:
            raise ValueError(f"Unknown document type '{doc_type}'. Valid types: {', '.join(DOCUMENT_TYPES)}")
        path = self.project_dir(project) / f"{doc_type}.txt"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logging.info("Saved %s for project %s (%d chars)", doc_type, project, len(text))
        return path

    def projects(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())

    def document_types(self, project: str) -> list[str]:
        directory = self.project_dir(project)
        if not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob("*.txt"))

    def files(self, project: str) -> list[Path]:
        directory = self.project_dir(project)
        if not directory.is_dir():
            return []
        return sorted(directory.glob("*.txt"))

    def load(self, project: str) -> list[tuple[str, str]]:
        """(source file name, text) for every readable document of a project."""
        docs: list[tuple[str, str]] = []
        for path in self.files(project):
            try:
                docs.append((path.name, path.read_text(encoding="utf-8")))
            except (OSError, UnicodeDecodeError) as e:
                logging.warning("Could not read %s for project %s: %s", path.name, project, e)
        return docs
