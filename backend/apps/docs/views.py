"""
Document upload and management views.

Provides endpoints for:
- POST /api/docs/upload - Upload a new document and queue it for indexing
- GET /api/docs?userId= - List a user's documents
- GET /api/docs/<id>?userId= - Get document details
- POST /api/docs/<id>/delete - Delete a document, its chunks and its file
- POST /api/docs/<id>/reindex - Rebuild a document's chunks
- GET /api/docs/<id>/chunks/<index>?userId= - Get one chunk (citation view)

The caller identifies the user with a plain ``userId`` field; documents
owned by someone else answer 404.
"""
import json
import logging
from pathlib import Path

from django.conf import settings
from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.docs.storage import StorageError, get_storage
from apps.docs.store import StorageInconsistency, get_document_store
from apps.indexing.jobs import enqueue_document, request_reindex

logger = logging.getLogger(__name__)

EXT_TO_MIME = {
    '.pdf': 'application/pdf',
    '.txt': 'text/plain',
    '.md': 'text/markdown',
    '.markdown': 'text/markdown',
}


def get_extension(filename: str) -> str:
    """Extract file extension from filename."""
    return Path(filename).suffix.lower()


def validate_extension(filename: str) -> bool:
    """Check if file extension is allowed."""
    return get_extension(filename) in settings.ALLOWED_EXTENSIONS


def normalize_content_type(content_type: str, filename: str) -> str:
    """
    Normalize content type, using file extension as fallback.

    Some browsers/clients send generic MIME types, so the extension decides.
    """
    if content_type in ('application/octet-stream', 'binary/octet-stream', '', None):
        return EXT_TO_MIME.get(get_extension(filename), 'application/octet-stream')
    return content_type


def error_response(message: str, code: str, status: int) -> JsonResponse:
    return JsonResponse({'error': message, 'code': code}, status=status)


def not_found() -> JsonResponse:
    return error_response('Document not found', 'NOT_FOUND', 404)


def get_body_user_id(request):
    """userId from a JSON body, falling back to form data."""
    if request.content_type == 'application/json':
        try:
            body = json.loads(request.body or b'{}')
        except json.JSONDecodeError:
            return None
        return body.get('userId') if isinstance(body, dict) else None
    return request.POST.get('userId')


@csrf_exempt
@require_http_methods(["POST"])
def upload_document(request):
    """
    Upload a new document.

    POST /api/docs/upload

    Accepts multipart/form-data with a 'file' field and a 'userId' field.
    The document is stored with status "processing" and an indexing job is
    queued; the response does not wait for indexing.

    Returns (201):
        {
            "success": true,
            "jobId": "uuid",
            "doc": {"id": "uuid", "filename": "report.pdf", "status": "processing", ...}
        }
    """
    user_id = request.POST.get('userId')
    if not user_id:
        return error_response('Missing userId', 'MISSING_USER', 400)

    if 'file' not in request.FILES:
        return error_response('Missing file', 'MISSING_FILE', 400)

    uploaded_file = request.FILES['file']
    filename = uploaded_file.name
    size_bytes = uploaded_file.size

    logger.info(f"Upload request: {filename}, {uploaded_file.content_type}, {size_bytes} bytes from user {user_id}")

    if size_bytes > settings.MAX_UPLOAD_SIZE:
        max_mb = settings.MAX_UPLOAD_SIZE // (1024 * 1024)
        return JsonResponse(
            {
                'error': f'File too large. Maximum size is {max_mb}MB',
                'code': 'FILE_TOO_LARGE',
                'maxSize': settings.MAX_UPLOAD_SIZE
            },
            status=400
        )

    if not validate_extension(filename):
        return JsonResponse(
            {
                'error': 'Invalid file type',
                'code': 'INVALID_FILE_TYPE',
                'allowedExtensions': settings.ALLOWED_EXTENSIONS
            },
            status=400
        )

    content_type = normalize_content_type(uploaded_file.content_type, filename)
    if content_type not in settings.ALLOWED_CONTENT_TYPES:
        return JsonResponse(
            {
                'error': 'Invalid file type',
                'code': 'INVALID_FILE_TYPE',
                'allowedTypes': settings.ALLOWED_CONTENT_TYPES
            },
            status=400
        )

    store = get_document_store()

    try:
        document = store.create_document(
            owner_user_id=user_id,
            filename=filename,
            content_type=content_type,
            size_bytes=size_bytes,
        )
    except DatabaseError:
        logger.exception("Failed to create document record")
        return error_response('Failed to save document', 'DATABASE_ERROR', 500)

    storage = get_storage()
    storage_path = ''
    try:
        storage_path = storage.save(str(document.id), get_extension(filename), uploaded_file)
        store.set_storage_path(document.id, storage_path)
        document.storage_path = storage_path
        job = enqueue_document(document)
    except (StorageError, StorageInconsistency, DatabaseError) as e:
        logger.error(f"Upload failed after creating document {document.id}: {e}")
        store.delete_document_cascade(document.id)
        if storage_path:
            try:
                storage.delete(storage_path)
            except StorageError as cleanup_error:
                logger.warning(f"Could not remove file for failed upload {document.id}: {cleanup_error}")
        return error_response('Upload failed', 'STORAGE_ERROR', 500)

    logger.info(f"Document created: {document.id}, job: {job.id}")

    return JsonResponse({
        'success': True,
        'jobId': str(job.id),
        'doc': document.to_dict(),
    }, status=201)


@csrf_exempt
@require_http_methods(["GET"])
def list_documents(request):
    """
    List all documents for a user, newest first.

    GET /api/docs?userId=<id>

    Returns:
        {"documents": [{"id": "uuid", "filename": "...", "status": "ready", ...}]}
    """
    user_id = request.GET.get('userId')
    if not user_id:
        return error_response('Missing userId', 'MISSING_USER', 400)

    documents = get_document_store().list_documents(user_id)
    return JsonResponse({'documents': [doc.to_dict() for doc in documents]})


@csrf_exempt
@require_http_methods(["GET"])
def get_document(request, document_id):
    """
    Get details for a specific document, including its indexing jobs.

    GET /api/docs/<document_id>?userId=<id>
    """
    user_id = request.GET.get('userId')
    if not user_id:
        return error_response('Missing userId', 'MISSING_USER', 400)

    store = get_document_store()
    document = store.get_owned_document(document_id, user_id)
    if document is None:
        return not_found()

    data = document.to_dict()
    data['chunkCount'] = store.count_chunks(document.id)
    data['jobs'] = [job.to_dict() for job in document.index_jobs.order_by('-created_at')]
    return JsonResponse(data)


@csrf_exempt
@require_http_methods(["POST"])
def delete_document(request, document_id):
    """
    Delete a document with its chunks, jobs and stored file.

    POST /api/docs/<document_id>/delete   body: {"userId": "..."}

    Chunks disappear from search in the same transaction as the document.
    """
    user_id = get_body_user_id(request)
    if not user_id:
        return error_response('Missing userId', 'MISSING_USER', 400)

    store = get_document_store()
    if store.get_owned_document(document_id, user_id) is None:
        return not_found()

    deleted = store.delete_document_cascade(document_id)
    if deleted is None:
        return not_found()

    try:
        get_storage().delete(deleted.storage_path)
    except StorageError as e:
        # The rows are gone; an orphaned file is only wasted disk
        logger.warning(f"Document {document_id} deleted but file removal failed: {e}")

    return JsonResponse({'success': True})


@csrf_exempt
@require_http_methods(["POST"])
def reindex_document(request, document_id):
    """
    Clear a document's chunks and queue it for indexing again.

    POST /api/docs/<document_id>/reindex   body: {"userId": "..."}
    """
    user_id = get_body_user_id(request)
    if not user_id:
        return error_response('Missing userId', 'MISSING_USER', 400)

    store = get_document_store()
    document = store.get_owned_document(document_id, user_id)
    if document is None:
        return not_found()

    try:
        job = request_reindex(store, document)
    except StorageInconsistency:
        return not_found()

    return JsonResponse({
        'documentId': str(document.id),
        'jobId': str(job.id),
        'status': 'processing',
    }, status=202)


@csrf_exempt
@require_http_methods(["GET"])
def get_chunk(request, document_id, chunk_index):
    """
    Get a specific chunk from a document.

    GET /api/docs/<document_id>/chunks/<chunk_index>?userId=<id>

    Used for viewing citation sources.
    """
    user_id = request.GET.get('userId')
    if not user_id:
        return error_response('Missing userId', 'MISSING_USER', 400)

    store = get_document_store()
    document = store.get_owned_document(document_id, user_id)
    if document is None:
        return not_found()

    chunk = store.get_chunk(document.id, chunk_index)
    if chunk is None:
        return error_response('Chunk not found', 'NOT_FOUND', 404)

    return JsonResponse({
        'docId': str(document.id),
        'chunkId': str(chunk.id),
        'chunkIndex': chunk.chunk_index,
        'page': chunk.page_number,
        'text': chunk.text,
        'filename': document.filename,
    })
