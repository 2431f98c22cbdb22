from flask import current_app, jsonify, request

from streamapp import limiter
from streamapp.api import api_bp
from streamapp.services.storage_service import StorageError, upload_file
from streamapp.utils.helpers import check_file_size, check_file_type, clean_optional_text


@api_bp.route('/upload', methods=['POST'])
@limiter.limit("30 per hour")
def upload():
    """
    Proxy a file upload to object storage.
    ---
    tags:
      - Uploads
    consumes:
      - multipart/form-data
    parameters:
      - name: file
        in: formData
        type: file
        required: true
      - name: bucket
        in: formData
        type: string
        required: false
        default: avatars
    responses:
      200:
        description: The public URL of the stored file.
      400:
        description: No file, empty file, oversized file or disallowed type.
      500:
        description: Storage is not configured or the upload failed.
    """
    file_storage = request.files.get('file')
    if file_storage is None or not file_storage.filename:
        return jsonify(error="ValidationError", message="No file provided"), 400

    try:
        check_file_size(file_storage, current_app.config['MAX_CONTENT_LENGTH'])
        content_type = check_file_type(file_storage, current_app.config['UPLOAD_ALLOWED_MIMES'])
    except ValueError as e:
        return jsonify(error="ValidationError", message=str(e)), 400

    bucket = clean_optional_text(request.form.get('bucket'))
    try:
        url = upload_file(file_storage.read(), file_storage.filename, content_type, bucket=bucket)
    except StorageError as e:
        current_app.logger.error(f"Upload of '{file_storage.filename}' failed: {e}")
        return jsonify(error="StorageError", message=str(e)), 500
    return jsonify(url=url), 200
