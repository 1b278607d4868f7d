import io

from PIL import Image


def upload(client, auth_headers, data, content_type="image/png", name="truck.png"):
    response = client.post("/api/v1/images/upload", headers=auth_headers,
                           files={"file": (name, data, content_type)})
    return response.json()["data"]["filename"]


def test_serves_original_blob(client, auth_headers, png_bytes):
    key = upload(client, auth_headers, png_bytes)

    response = client.get(f"/cdn/images/{key}")
    assert response.status_code == 200
    assert response.content == png_bytes
    assert response.headers["content-type"] == "image/png"
    assert "immutable" in response.headers["cache-control"]


def test_resizes_keeping_aspect_ratio(client, auth_headers, png_bytes):
    key = upload(client, auth_headers, png_bytes)

    response = client.get(f"/cdn/images/{key}", params={"w": 50})
    img = Image.open(io.BytesIO(response.content))
    assert img.size == (50, 50)
    assert img.format == "PNG"


def test_converts_format(client, auth_headers, png_bytes):
    key = upload(client, auth_headers, png_bytes)

    response = client.get(f"/cdn/images/{key}", params={"format": "webp", "q": 60})
    assert response.headers["content-type"] == "image/webp"
    assert Image.open(io.BytesIO(response.content)).format == "WEBP"


def test_missing_image_is_404(client):
    assert client.get("/cdn/images/uploads/nope.png").status_code == 404


def test_invalid_transform_is_400(client, auth_headers, png_bytes):
    key = upload(client, auth_headers, png_bytes)

    assert client.get(f"/cdn/images/{key}", params={"w": 0}).status_code == 400
    assert client.get(f"/cdn/images/{key}", params={"format": "bmp"}).status_code == 400
