from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, File, Form, UploadFile, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from sharebox.api import deps
from sharebox.schemas.share import ShareResponse, UnlockRequest, UploadResponse
from sharebox.services.lifecycle import IncomingFile

router = APIRouter(tags=["shares"])


def _content_disposition(filename: str) -> str:
    ascii_filename = filename.encode("ascii", "ignore").decode("ascii").replace('"', "") or "download"
    content_disposition = f'attachment; filename="{ascii_filename}"'
    if ascii_filename != filename:
        content_disposition += f"; filename*=UTF-8''{quote(filename)}"
    return content_disposition


def _declared_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    handle = upload.file
    position = handle.tell()
    handle.seek(0, 2)
    size = handle.tell()
    handle.seek(position)
    return size


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_files(
    manager: deps.ShareManagerDep,
    files: list[UploadFile] | None = File(default=None),
    ttl_hours: float | None = Form(default=None),
    max_downloads: int = Form(default=0),
    password: str | None = Form(default=None),
) -> UploadResponse:
    incoming = [
        IncomingFile(
            filename=upload.filename or "",
            stream=upload.file,
            size=_declared_size(upload),
            content_type=upload.content_type,
        )
        for upload in files or []
    ]
    try:
        receipt = await manager.create(
            incoming,
            ttl_hours=ttl_hours,
            max_downloads=max_downloads,
            password=password if password and password.strip() else None,
        )
    finally:
        for upload in files or []:
            await upload.close()
    return UploadResponse.model_validate(receipt)


@router.get("/shares/{share_id}", response_model=ShareResponse)
async def read_share(
    share_id: str,
    manager: deps.ShareManagerDep,
    credentials: deps.ShareCredentialsDep,
) -> ShareResponse:
    view = await manager.inspect(
        share_id,
        password=credentials.password,
        access_token=credentials.access_token,
    )
    return ShareResponse.model_validate(view)


@router.post("/shares/{share_id}/unlock", response_model=ShareResponse)
async def unlock_share(
    share_id: str,
    payload: UnlockRequest,
    manager: deps.ShareManagerDep,
) -> ShareResponse:
    view = await manager.inspect(share_id, password=payload.password)
    return ShareResponse.model_validate(view)


@router.get("/download/{share_id}/{file_index}")
async def download_file(
    share_id: str,
    file_index: int,
    manager: deps.ShareManagerDep,
    credentials: deps.ShareCredentialsDep,
) -> StreamingResponse:
    download = await manager.download_file(
        share_id,
        file_index,
        password=credentials.password,
        access_token=credentials.access_token,
    )
    headers = {
        "Content-Disposition": _content_disposition(download.filename),
        "Content-Length": str(download.size),
    }
    return StreamingResponse(
        download.iter_bytes(),
        media_type=download.media_type,
        headers=headers,
        background=BackgroundTask(download.aclose),
    )
