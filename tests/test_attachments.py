import io

BASE = "/api/attachments"


def _upload(client, name="polizza.pdf", content=b"%PDF-1.4 test", mimetype="application/pdf", **form):
    return client.post(f"{BASE}/upload", files={"file": (name, io.BytesIO(content), mimetype)}, data=form)


def test_upload_and_download(client, attachment_store):
    response = _upload(client, name="polizza casa.pdf", task_id="7", description="Contratto firmato")
    assert response.status_code == 200
    meta = response.json()
    assert meta["filename"].endswith("-polizza_casa.pdf")
    assert meta["originalname"] == "polizza casa.pdf"
    assert meta["size"] == len(b"%PDF-1.4 test")
    assert meta["task_id"] == "7"
    assert meta["description"] == "Contratto firmato"

    download = client.get(f"{BASE}/{meta['filename']}")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 test"
    assert download.headers["content-type"] == "application/pdf"


def test_upload_rejects_type(client, attachment_store):
    response = _upload(client, name="script.sh", content=b"echo", mimetype="text/x-shellscript")
    assert response.status_code == 400
    assert response.json()["detail"] == "File type not allowed"


def test_upload_rejects_large_file(client, attachment_store):
    response = _upload(client, content=b"x" * 2048)
    assert response.status_code == 400
    assert "too large" in response.json()["detail"]
    assert client.get(BASE).json() == []


def test_list_filters_by_task(client, attachment_store):
    _upload(client, name="a.pdf", task_id="1")
    _upload(client, name="b.png", mimetype="image/png", task_id="2")

    assert len(client.get(BASE).json()) == 2
    only_task = client.get(BASE, params={"task_id": "2"}).json()
    assert [a["originalname"] for a in only_task] == ["b.png"]


def test_delete(client, attachment_store):
    filename = _upload(client).json()["filename"]

    response = client.delete(f"{BASE}/{filename}")
    assert response.status_code == 200
    assert response.json() == {"message": "Attachment deleted"}
    assert client.get(f"{BASE}/{filename}").status_code == 404
    assert client.delete(f"{BASE}/{filename}").status_code == 404


def test_unknown_and_hidden_files(client, attachment_store):
    assert client.get(f"{BASE}/missing.pdf").status_code == 404
    assert client.get(f"{BASE}/.hidden").status_code == 404
    assert client.get(f"{BASE}/metadata").status_code == 404
