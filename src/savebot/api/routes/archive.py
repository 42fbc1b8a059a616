"""Archive listing and download."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel

from savebot.api.deps import get_archive
from savebot.infra.archive import ArchiveWriter

router = APIRouter(tags=["archive"])


class ArchivedFile(BaseModel):
    name: str
    size: int
    kind: Literal["log", "media"]


class FileListResponse(BaseModel):
    files: list[ArchivedFile]


@router.get("/files", response_model=FileListResponse)
def list_files(archive: ArchiveWriter = Depends(get_archive)) -> FileListResponse:
    files = []
    for path in archive.list_files():
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            continue
        kind = "media" if path.parent == archive.media_dir else "log"
        files.append(ArchivedFile(name=path.name, size=size, kind=kind))
    return FileListResponse(files=files)


@router.get("/download/{name}")
def download(name: str, archive: ArchiveWriter = Depends(get_archive)) -> FileResponse:
    path = archive.resolve(name)
    if path is None:
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path, filename=path.name)
