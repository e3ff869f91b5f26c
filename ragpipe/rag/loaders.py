"""Document loaders for text, markdown and PDF sources.

Handles:
- YAML front-matter parsing into document metadata
- PDF text extraction, optionally one document per page
- Directory discovery
"""
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ragpipe.rag.models import Document

logger = structlog.get_logger()

TEXT_SUFFIXES = {".md", ".markdown", ".txt"}
PDF_SUFFIXES = {".pdf"}


class DocumentLoader:
    """Loads files (or every supported file under a directory) as Documents."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(
        r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL | re.MULTILINE
    )

    def __init__(self, split_pages: bool = False):
        """Initialize the loader.

        Args:
            split_pages: Emit one document per PDF page instead of one per file
        """
        self.split_pages = split_pages
        self.files_failed: List[str] = []

    def load(self, source: Path) -> List[Document]:
        """Load a file or a directory tree.

        In a directory, a file that can't be read or parsed (or whose id
        repeats an earlier document's) is logged, recorded in
        ``files_failed`` and skipped; the rest still load.

        Args:
            source: File or directory path

        Returns:
            Documents in a stable (sorted path) order

        Raises:
            FileNotFoundError: If the source doesn't exist
            ValueError: If a single file has an unsupported type
        """
        source = Path(source)
        self.files_failed = []
        if not source.exists():
            raise FileNotFoundError(f"Source not found: {source}")

        if source.is_file():
            return self.load_file(source, base_dir=source.parent)

        files = sorted(
            path
            for path in source.rglob("*")
            if path.is_file() and path.suffix.lower() in TEXT_SUFFIXES | PDF_SUFFIXES
        )

        logger.info("documents_discovered", count=len(files), source=str(source))

        documents = []
        seen_ids = set()
        for path in files:
            try:
                loaded = self.load_file(path, base_dir=source)
            except (OSError, UnicodeDecodeError, PdfReadError, ValueError) as e:
                logger.error(
                    "document_load_failed",
                    path=str(path),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.files_failed.append(str(path))
                continue

            duplicates = [document.id for document in loaded if document.id in seen_ids]
            if duplicates:
                logger.error("duplicate_document_id", path=str(path), ids=duplicates)
                self.files_failed.append(str(path))
                continue

            seen_ids.update(document.id for document in loaded)
            documents.extend(loaded)

        if self.files_failed:
            logger.warning("documents_skipped", count=len(self.files_failed))

        return documents

    def load_file(self, path: Path, base_dir: Optional[Path] = None) -> List[Document]:
        """Load a single file.

        Raises:
            ValueError: If the file type is not supported
        """
        suffix = path.suffix.lower()
        base_id = self._document_id(path, base_dir)

        if suffix in TEXT_SUFFIXES:
            return [self._load_text(path, base_id)]
        if suffix in PDF_SUFFIXES:
            return self._load_pdf(path, base_id)

        raise ValueError(f"Unsupported document type: {path}")

    @staticmethod
    def _document_id(path: Path, base_dir: Optional[Path]) -> str:
        # Keep the suffix: notes.md and notes.txt are different documents
        if base_dir is not None:
            try:
                return path.relative_to(base_dir).as_posix()
            except ValueError:
                pass
        return path.name

    def _load_text(self, path: Path, base_id: str) -> Document:
        content = path.read_text(encoding="utf-8")
        frontmatter, body = self.parse_frontmatter(content)

        metadata: Dict[str, Any] = {
            "source": str(path),
            "file_name": path.name,
        }
        for key, value in frontmatter.items():
            # Convert date/datetime objects to ISO format strings
            if hasattr(value, "isoformat"):
                value = value.isoformat()
            metadata[key] = value

        document_id = str(frontmatter.get("id") or base_id)
        metadata["id"] = document_id

        logger.debug(
            "text_document_loaded",
            path=str(path),
            has_frontmatter=bool(frontmatter),
            content_length=len(body),
        )

        return Document(id=document_id, content=body, metadata=metadata)

    def _load_pdf(self, path: Path, base_id: str) -> List[Document]:
        reader = PdfReader(str(path))
        pages = [page.extract_text() or "" for page in reader.pages]

        logger.debug("pdf_document_loaded", path=str(path), page_count=len(pages))

        if not self.split_pages:
            return [
                Document(
                    id=base_id,
                    content="\n\n".join(pages),
                    metadata={
                        "id": base_id,
                        "source": str(path),
                        "file_name": path.name,
                        "page_count": len(pages),
                    },
                )
            ]

        documents = []
        for number, text in enumerate(pages, 1):
            document_id = f"{base_id}_p{number}"
            documents.append(
                Document(
                    id=document_id,
                    content=text,
                    metadata={
                        "id": document_id,
                        "source": str(path),
                        "file_name": path.name,
                        "page": number,
                        "page_count": len(pages),
                    },
                )
            )
        return documents

    def parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from markdown content.

        Args:
            content: Full file content

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            frontmatter = None

        if not isinstance(frontmatter, dict):
            frontmatter = {}

        return frontmatter, content[match.end():]
