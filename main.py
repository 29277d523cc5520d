from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import logging
from typing import List, Optional

from Program_KB.convert import ConversionResult
from Program_KB.selection import SelectionChanged, SelectionState, resolve_selection
from Program_KB.service import KnowledgeBase, MutationResult, ReadResult, ScanResult
from Program_KB.shared import KB_DIR, setup_logging

log = logging.getLogger("spark.kb")

# Global State
kb: Optional[KnowledgeBase] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global kb
    setup_logging()

    # 1. Make sure the Knowledge Base root exists
    KB_DIR.mkdir(parents=True, exist_ok=True)
    kb = KnowledgeBase(KB_DIR)

    # 2. Startup scan, just to report what is there
    result = kb.get_knowledge_base()
    if result.success:
        total = sum(n.node_count() for n in result.nodes())
        log.info("Knowledge base ready at %s: %d entries", KB_DIR, total)
    else:
        log.warning("Knowledge base scan failed: %s", result.error)

    yield
    kb = None

app = FastAPI(lifespan=lifespan)

# ─────────────────────────────────────────────
# Models
# ─────────────────────────────────────────────
class PathRequest(BaseModel):
    path: str

class FileRequest(BaseModel):
    path: str
    content: str = ""

class RenameRequest(BaseModel):
    old_path: str
    new_name: str

class ReadRequest(BaseModel):
    paths: List[str]

class DropRequest(BaseModel):
    paths: List[str]
    target_folder: str = ""

class ExpandResponse(BaseModel):
    files: List[str]


def _service() -> KnowledgeBase:
    if kb is None:
        raise HTTPException(status_code=503, detail="Knowledge base not loaded")
    return kb

# ─────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "status": "online",
        "kb_path": str(kb.root) if kb else None,
        "ready": kb is not None,
    }

@app.get("/kb", response_model=ScanResult)
def get_knowledge_base():
    """Full tree, freshly scanned on every call."""
    return _service().get_knowledge_base()

@app.post("/kb/read", response_model=ReadResult)
def read_kb_files(req: ReadRequest):
    return _service().read_files(req.paths)

@app.post("/kb/folder", response_model=MutationResult)
def create_folder(req: PathRequest):
    return _service().create_folder(req.path)

@app.post("/kb/file", response_model=MutationResult)
def create_file(req: FileRequest):
    return _service().create_file(req.path, req.content)

@app.put("/kb/file", response_model=MutationResult)
def save_file(req: FileRequest):
    return _service().save_file(req.path, req.content)

@app.post("/kb/rename", response_model=MutationResult)
def rename(req: RenameRequest):
    return _service().rename(req.old_path, req.new_name)

@app.post("/kb/delete", response_model=MutationResult)
def delete(req: PathRequest):
    """Irreversible. The caller is expected to have confirmed already."""
    return _service().delete(req.path)

@app.post("/kb/drop", response_model=List[ConversionResult])
def handle_drop(req: DropRequest):
    """
    Convert dropped files/folders into target_folder.
    One result per item; failures never abort the batch.
    """
    return _service().handle_drop(req.paths, req.target_folder)

@app.post("/kb/expand", response_model=ExpandResponse)
def expand_selection(req: SelectionChanged):
    """Flatten a {files, folders} selection against the current tree."""
    service = _service()
    result = service.get_knowledge_base()
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    selection = SelectionState(req.files, req.folders)
    return ExpandResponse(files=resolve_selection(selection, result.nodes()))
