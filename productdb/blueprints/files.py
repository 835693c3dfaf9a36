"""Files blueprint — /uploads/<name>

Serves stored attachments so the frontend can display or embed them.
Local store: streamed from UPLOAD_FOLDER with a MIME type guessed from
the extension. Supabase store: redirect to the public object URL.
"""

import mimetypes
import os

from flask import Blueprint, abort, current_app, redirect, send_from_directory

from productdb.services.storage_service import SupabaseFileStore, get_file_store

files_bp = Blueprint("files", __name__)


@files_bp.route("/uploads/<path:filename>")
def serve_upload(filename):
    prefix = current_app.config.get("UPLOAD_URL_PREFIX", "uploads")
    reference = f"{prefix}/{filename}"
    store = get_file_store()

    if isinstance(store, SupabaseFileStore):
        url = store.public_url(reference)
        if url is None:
            abort(404)
        return redirect(url)

    path = store.path_for(reference)
    if path is None or not os.path.isfile(path):
        abort(404)

    mimetype = mimetypes.guess_type(path)[0] or "application/octet-stream"
    return send_from_directory(store.root, os.path.basename(path), mimetype=mimetype)
