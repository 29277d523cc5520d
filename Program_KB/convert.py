# Standard Library Imports
import argparse   # Command line for bulk imports
import logging    # Service-side log lines
import os         # Atomic replace + process id for the memory guard
import re         # Regex passes for the lossy RTF / HTML strippers
import shutil     # Verbatim copies of files that are already Markdown
import tempfile   # Temp files next to the destination for all-or-nothing writes

# Data Structure Helpers
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

# External Libraries
import psutil        # RSS check so a huge batch cannot take the machine down
import pymupdf4llm   # Converts PDF layers to clean Markdown for LLMs
from docx import Document as DocxDocument  # python-docx, raw text from Word files
from pydantic import BaseModel

# UI Libraries
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TimeElapsedColumn

from .shared import (
    KB_DIR,
    MEMORY_LIMIT_MB,
    ExtractionFailed,
    KBError,
    KBIOError,
    NotFound,
    UnsupportedFormat,
    console,
    error_from_os,
    resolve_kb_path,
)

log = logging.getLogger(__name__)


##  ##                                                                 ##  ##  --  --  Result  --  --  ##  ##
class ConversionResult(BaseModel):
    """
    Outcome for one dropped or imported item.
    Built once per source and handed back in batch order; never persisted.
    """
    source_path: str
    success: bool
    kind: Optional[str] = None              # "file" or "folder"
    produced_name: Optional[str] = None
    original_name: Optional[str] = None
    converted: bool = False                 # False when the source was copied verbatim
    converted_count: Optional[int] = None   # Folders: files actually transformed
    items: List["ConversionResult"] = []    # Folders: per-file results, depth-first
    error: Optional[str] = None
    error_kind: Optional[str] = None


##  ##                                                     ##  ##  --  --  Text Extractors  --  --  ##  ##
def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def _extract_pdf(path: Path) -> str:
    """pymupdf4llm keeps headings and tables better than a raw text dump."""
    try:
        return pymupdf4llm.to_markdown(str(path))
    except Exception as e:
        raise ExtractionFailed(f"Failed to convert {path.name}: {e}") from e


def _extract_docx(path: Path) -> str:
    try:
        doc = DocxDocument(str(path))
    except Exception as e:
        raise ExtractionFailed(f"Failed to convert {path.name}: {e}") from e

    parts = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def _extract_doc(path: Path) -> str:
    # Old binary Word files only work when they are really OOXML in disguise
    try:
        return _extract_docx(path)
    except ExtractionFailed as e:
        raise ExtractionFailed("DOC format not fully supported") from e


def strip_rtf(raw: str) -> str:
    """
    Lossy RTF to text. Drops `{\\...}` groups, then control words,
    then any braces left over. Good enough for plain prose, nothing more.
    """
    text = re.sub(r"\{\\[^{}]*\}", "", raw)
    text = re.sub(r"\\[a-zA-Z]+-?\d* ?", "", text)
    text = re.sub(r"[{}]", "", text)
    return text.strip()


def strip_html(raw: str) -> str:
    """Lossy HTML to text: no scripts, no styles, no tags, no runs of blank lines."""
    text = re.sub(r"<script\b[^>]*>.*?</script>", "", raw, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<style\b[^>]*>.*?</style>", "", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def _extract_rtf(path: Path) -> str:
    return strip_rtf(_read_text(path))


def _extract_html(path: Path) -> str:
    return strip_html(_read_text(path))


##  ##                                                   ##  ##  --  --  Converter Registry  --  --  ##  ##
@dataclass(frozen=True)
class Converter:
    label: str                                   # Shown in the provenance line
    extract: Optional[Callable[[Path], str]]     # None means "copy the bytes as-is"
    fence: Optional[str] = None                  # Code-fence tag for structured text


UNSUPPORTED = Converter(label="UNSUPPORTED", extract=None)

REGISTRY: Dict[str, Converter] = {
    ".pdf": Converter("PDF", _extract_pdf),
    ".docx": Converter("DOCX", _extract_docx),
    ".doc": Converter("DOC", _extract_doc),
    ".txt": Converter("TXT", _read_text),
    ".rtf": Converter("RTF", _extract_rtf),
    ".md": Converter("MD", None),
    ".html": Converter("HTML", _extract_html),
    ".htm": Converter("HTML", _extract_html),
    ".json": Converter("JSON", _read_text, fence="json"),
    ".xml": Converter("XML", _read_text, fence="xml"),
    ".csv": Converter("CSV", _read_text, fence="csv"),
}


def get_converter(ext: str) -> Converter:
    return REGISTRY.get(ext.lower(), UNSUPPORTED)


def wrap_markdown(title: str, label: str, body: str, when: Optional[datetime] = None) -> str:
    when = when or datetime.now()
    return (
        f"# {title}\n\n"
        f"*Converted from {label} on {when.strftime('%Y-%m-%d')}*\n\n"
        f"---\n\n"
        f"{body}\n"
    )


##  ##                                                       ##  ##  --  --  Atomic Writes  --  --  ##  ##
def write_atomic(dest: Path, content: str):
    """Write to a hidden temp file beside `dest`, then swap it in."""
    fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def copy_atomic(source: Path, dest: Path):
    fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=".", suffix=".tmp")
    os.close(fd)
    try:
        shutil.copyfile(source, tmp)
        os.replace(tmp, dest)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def _guard_memory():
    mem_mb = psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
    if mem_mb > MEMORY_LIMIT_MB:
        raise KBIOError(f"Process exceeded {MEMORY_LIMIT_MB}MB RAM safety threshold")


##  ##                                                   ##  ##  --  --  File Conversion  --  --  ##  ##
def _failure(source: Path, error: KBError, kind: str = "file") -> ConversionResult:
    log.warning("Conversion failed for %s: %s", source.name, error.message)
    return ConversionResult(
        source_path=str(source),
        success=False,
        kind=kind,
        original_name=source.name,
        error=error.message,
        error_kind=error.kind,
    )


def _convert_into(source: Path, dest_dir: Path) -> ConversionResult:
    """Convert (or copy) one file into an absolute destination folder."""
    ext = source.suffix.lower()
    converter = get_converter(ext)
    try:
        if converter is UNSUPPORTED:
            raise UnsupportedFormat(f"Unsupported file type: {ext or source.name}")
        if not source.is_file():
            raise NotFound(f"File not found: {source}")
        _guard_memory()

        produced = f"{source.stem}.md"
        if converter.extract is None:
            dest_dir.mkdir(parents=True, exist_ok=True)
            copy_atomic(source, dest_dir / produced)
            log.info("Copied %s → %s", source.name, dest_dir / produced)
            return ConversionResult(
                source_path=str(source),
                success=True,
                kind="file",
                produced_name=produced,
                original_name=source.name,
                converted=False,
            )

        text = converter.extract(source)
        if converter.fence:
            text = f"```{converter.fence}\n{text}\n```"
        markdown = wrap_markdown(source.stem, converter.label, text)

        dest_dir.mkdir(parents=True, exist_ok=True)
        write_atomic(dest_dir / produced, markdown)
        log.info("Converted %s → %s (%s chars)", source.name, produced, f"{len(markdown):,}")
        return ConversionResult(
            source_path=str(source),
            success=True,
            kind="file",
            produced_name=produced,
            original_name=source.name,
            converted=True,
        )
    except KBError as e:
        return _failure(source, e)
    except OSError as e:
        return _failure(source, error_from_os(e))


def convert_file(source_path, target_folder: str = "", kb_root: Optional[Path] = None) -> ConversionResult:
    """
    Convert one file into `target_folder` (relative to the KB root).
    Never raises for per-file problems; the result says what happened.
    """
    source = Path(source_path)
    try:
        dest_dir = resolve_kb_path(kb_root or KB_DIR, target_folder)
    except KBError as e:
        return _failure(source, e)
    return _convert_into(source, dest_dir)


##  ##                                                         ##  ##  --  --  Attachments  --  --  ##  ##
ATTACHMENT_TYPES = (".pdf", ".txt", ".md")


class Attachment(BaseModel):
    """A single file picked for the next chat message. Read once, kept in memory only."""
    path: str
    name: str
    content: str
    type: str
    error: bool = False


def read_attachment(path) -> Attachment:
    """
    Read a picked file as plain text. PDFs go through the same extractor
    the converter uses. A file that can't be read still comes back, with
    the reason in place of its content.
    """
    source = Path(path)
    ext = source.suffix.lower()
    try:
        if ext not in ATTACHMENT_TYPES:
            raise UnsupportedFormat(f"Unsupported file type: {ext or source.name}")
        content = get_converter(ext).extract(source) if ext == ".pdf" else _read_text(source)
    except KBError as e:
        reason = e.message
    except OSError as e:
        reason = error_from_os(e).message
    else:
        log.info("Attached %s (%s chars)", source.name, f"{len(content):,}")
        return Attachment(path=str(source), name=source.name, content=content, type=ext)

    log.warning("Could not read attachment %s: %s", source.name, reason)
    return Attachment(path=str(source), name=source.name, content=f"[Error reading file: {reason}]",
                      type=ext, error=True)


def convert_directory(source_dir, dest_dir, results: Optional[List[ConversionResult]] = None) -> int:
    """
    Mirror `source_dir` under `dest_dir`, converting every file on the way down.
    Every file type is attempted, not just the ones the tree shows.
    Per-file outcomes are appended to `results`; returns how many files
    were actually transformed (verbatim Markdown copies don't count).
    """
    source_dir, dest_dir = Path(source_dir), Path(dest_dir)
    if results is None:
        results = []

    converted = 0
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        with os.scandir(source_dir) as it:
            entries = list(it)
    except OSError as e:
        results.append(_failure(source_dir, error_from_os(e), kind="folder"))
        return converted

    for entry in entries:
        if entry.is_dir():
            converted += convert_directory(entry.path, dest_dir / entry.name, results)
            continue
        result = _convert_into(Path(entry.path), dest_dir)
        results.append(result)
        if result.success and result.converted:
            converted += 1
    return converted


def handle_drop(paths: List[str], target_folder: str = "", kb_root: Optional[Path] = None) -> List[ConversionResult]:
    """
    Import a batch of dropped files and folders into `target_folder`.
    One result per dropped item, in order. A bad item never stops the batch.
    """
    results: List[ConversionResult] = []
    try:
        target = resolve_kb_path(kb_root or KB_DIR, target_folder)
    except KBError as e:
        return [_failure(Path(p), e) for p in paths]

    for raw in paths:
        source = Path(raw)
        if not source.is_dir():
            results.append(_convert_into(source, target))
            continue

        dest = target / source.name
        if dest.resolve().is_relative_to(source.resolve()):
            # The mirror would land inside the folder being walked and never finish
            results.append(_failure(source, KBIOError(f"Cannot import a folder into itself: {source.name}"), kind="folder"))
            continue

        items: List[ConversionResult] = []
        count = convert_directory(source, dest, items)
        log.info("Imported folder %s (%d converted, %d items)", source.name, count, len(items))
        results.append(ConversionResult(
            source_path=str(source),
            success=True,
            kind="folder",
            produced_name=source.name,
            original_name=source.name,
            converted=count > 0,
            converted_count=count,
            items=items,
        ))
    return results


# ══════════════════════════════════════════════════════════════════════
#  MAIN
# ══════════════════════════════════════════════════════════════════════
if __name__ == "__main__":
    from .render import render_inline_panel
    from .scanner import scan
    from .shared import setup_logging

    parser = argparse.ArgumentParser(description="Bulk-import documents into the Spark knowledge base")
    parser.add_argument("sources", nargs="+", help="Files or folders to import")
    parser.add_argument("--target", default="", help="Destination folder inside the KB")
    parser.add_argument("--kb-dir", type=Path, default=KB_DIR, help="Knowledge base root")
    args = parser.parse_args()

    setup_logging(logging.WARNING)
    console.print(Panel(
        "[bold cyan]SPARK KB IMPORT[/bold cyan]\n"
        f"[dim]{escape(str(args.kb_dir / args.target))}[/dim]",
        border_style="bright_cyan",
    ))
    args.kb_dir.mkdir(parents=True, exist_ok=True)

    batch: List[ConversionResult] = []
    with Progress(
        SpinnerColumn(), TextColumn("{task.description}"), BarColumn(), TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Importing…", total=len(args.sources))
        for src in args.sources:
            progress.update(task, description=f"Importing {Path(src).name}")
            batch.extend(handle_drop([src], args.target, kb_root=args.kb_dir))
            progress.advance(task)

    for r in batch:
        if not r.success:
            console.print(f"[red]✗ {escape(r.original_name or '')}: {escape(r.error or '')}[/red]")
        elif r.kind == "folder":
            failed = [i for i in r.items if not i.success]
            console.print(f"[green]✔ {escape(r.produced_name or '')}/ ({r.converted_count} converted, {len(failed)} failed)[/green]")
            for i in failed:
                console.print(f"  [yellow]⚠ {escape(i.original_name or '')}: {escape(i.error or '')}[/yellow]")
        elif r.converted:
            console.print(f"[green]✔ {escape(r.original_name or '')} → {escape(r.produced_name or '')}[/green]")
        else:
            console.print(f"[dim]  ↳ Copied {escape(r.produced_name or '')}[/dim]")

    console.print()
    console.print(render_inline_panel(scan(args.kb_dir), set(), title=args.kb_dir.name))
