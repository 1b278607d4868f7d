from gateway.errors import ErrorKind
from gateway.services.validator import validate_upload


def test_valid_png(settings, png_bytes):
    result = validate_upload("image/png", png_bytes, settings)
    assert result.ok is True
    assert result.mime_type == "image/png"


def test_valid_jpeg_with_content_type_parameters(settings, jpeg_bytes):
    result = validate_upload("image/jpeg; charset=binary", jpeg_bytes, settings)
    assert result.ok is True
    assert result.mime_type == "image/jpeg"


def test_rejects_missing_file(settings):
    result = validate_upload(None, None, settings)
    assert result.ok is False
    assert result.kind is ErrorKind.MISSING_FILE


def test_rejects_empty_file(settings):
    assert validate_upload("image/png", b"", settings).kind is ErrorKind.MISSING_FILE


def test_rejects_type_outside_allow_list(settings):
    result = validate_upload("image/svg+xml", b"<svg xmlns='http://www.w3.org/2000/svg'/>", settings)
    assert result.ok is False
    assert result.kind is ErrorKind.TYPE_NOT_ALLOWED
    assert "not allowed" in result.message


def test_rejects_oversized_file(settings):
    data = b"x" * (11 * 1024 * 1024)
    result = validate_upload("image/png", data, settings)
    assert result.ok is False
    assert result.kind is ErrorKind.TOO_LARGE
    assert "10485760" in result.message


def test_type_is_checked_before_size(settings):
    data = b"x" * (11 * 1024 * 1024)
    assert validate_upload("application/pdf", data, settings).kind is ErrorKind.TYPE_NOT_ALLOWED


def test_rejects_content_that_does_not_match_declared_type(settings, jpeg_bytes):
    result = validate_upload("image/png", jpeg_bytes, settings)
    assert result.ok is False
    assert result.kind is ErrorKind.CONTENT_MISMATCH


def test_rejects_script_disguised_as_image(settings):
    result = validate_upload("image/png", b"#!/bin/bash\nrm -rf /", settings)
    assert result.kind is ErrorKind.CONTENT_MISMATCH
