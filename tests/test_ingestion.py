import json

import pytest
import requests

from app.rag.chunker import TextChunker
from app.rag.vector_store import VectorStore, VectorStoreError
from app.services.ingestion import IngestionService


QA_TEXT = "Q: 你喜欢什么\nA: 喜欢猫\n\nQ: 住在哪\nA: 东京\n\nQ: 没有答案\n"
STYLE_TEXT = "# 说话风格\n- 嗯嗯\n- 好呀\n\n哈哈哈\n- 真的假的\n- 绝了\n- 晚安\n"


class FakeStore:
    def __init__(self, fail_on=()):
        self.batches = []
        self.fail_on = set(fail_on)

    def upsert(self, chunks):
        call = len(self.batches)
        self.batches.append([chunk.id for chunk in chunks])
        if call in self.fail_on:
            raise VectorStoreError("rate limited")
        return {"result": "Success"}


def make_service(store, **kwargs):
    sleeps = []
    service = IngestionService(store, chunker=TextChunker(persona_name="悠"), sleep=sleeps.append, **kwargs)
    return service, sleeps


def test_qa_file_yields_one_chunk_per_complete_pair():
    chunks = TextChunker(persona_name="悠").parse_qa_file(QA_TEXT, "daily")

    assert [c.id for c in chunks] == ["qa_daily_0", "qa_daily_1"]
    assert chunks[0].data == "问: 你喜欢什么\n悠的回答: 喜欢猫"
    assert chunks[1].metadata == {"type": "qa", "source": "daily"}


def test_style_file_groups_samples_and_skips_comments():
    chunks = TextChunker(persona_name="悠", style_group_size=5).parse_style_file(STYLE_TEXT, "chat")

    assert [c.id for c in chunks] == ["style_chat_0", "style_chat_1"]
    assert chunks[0].data == "悠的说话风格示例:\n嗯嗯\n好呀\n哈哈哈\n真的假的\n绝了"
    assert chunks[1].data == "悠的说话风格示例:\n晚安"
    assert chunks[0].metadata == {"type": "style", "source": "chat"}


def test_other_files_are_not_chunked():
    assert TextChunker().chunk_file("notes.txt", QA_TEXT) == []


def test_index_directory_uploads_in_batches(tmp_path):
    (tmp_path / "daily_qa.txt").write_text(QA_TEXT, encoding="utf-8")
    (tmp_path / "chat_style.txt").write_text(STYLE_TEXT, encoding="utf-8")
    (tmp_path / "profile.txt").write_text("not indexed", encoding="utf-8")
    store = FakeStore()
    service, sleeps = make_service(store, batch_size=1, batch_delay=0.5)

    result = service.index_directory(str(tmp_path))

    assert result["status"] == "success"
    assert result["files"] == 2
    assert result["chunks"] == 4
    assert result["uploaded"] == 4
    # Files are processed in name order
    assert store.batches == [["style_chat_0"], ["style_chat_1"], ["qa_daily_0"], ["qa_daily_1"]]
    assert sleeps == [0.5, 0.5]


def test_rerun_skips_unchanged_files(tmp_path):
    (tmp_path / "daily_qa.txt").write_text(QA_TEXT, encoding="utf-8")
    store = FakeStore()
    service, _ = make_service(store)
    service.index_directory(str(tmp_path))

    result = service.index_directory(str(tmp_path))

    assert result["skipped_files"] == 1
    assert result["uploaded"] == 0
    assert len(store.batches) == 1
    manifest = json.loads((tmp_path / ".index-manifest.json").read_text(encoding="utf-8"))
    assert set(manifest) == {"daily_qa.txt"}

    forced = service.index_directory(str(tmp_path), force=True)
    assert forced["uploaded"] == 2


def test_failed_batch_is_retried_on_next_run(tmp_path):
    (tmp_path / "daily_qa.txt").write_text(QA_TEXT, encoding="utf-8")
    store = FakeStore(fail_on={0})
    service, _ = make_service(store)

    result = service.index_directory(str(tmp_path))

    assert result["status"] == "partial"
    assert result["failed_batches"] == 1

    retry = service.index_directory(str(tmp_path))
    assert retry["status"] == "success"
    assert retry["uploaded"] == 2


def test_missing_directory_is_an_error(tmp_path):
    result = make_service(FakeStore())[0].index_directory(str(tmp_path / "missing"))

    assert result["status"] == "error"


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self.payload = payload or {}
        self.text = json.dumps(self.payload)

    def json(self):
        return self.payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.exceptions.HTTPError(str(self.status_code))


class FakeSession:
    def __init__(self, response):
        self.headers = {}
        self.response = response
        self.posts = []

    def post(self, url, json=None, timeout=None):
        self.posts.append((url, json))
        return self.response

    def get(self, url, timeout=None):
        return self.response


def test_vector_store_upsert_posts_raw_records():
    session = FakeSession(FakeResponse(200, {"result": "Success"}))
    store = VectorStore(url="https://vector.example/", token="t", session=session)
    chunk = TextChunker(persona_name="悠").parse_qa_file(QA_TEXT, "daily")[0]

    store.upsert([chunk])

    assert session.headers["Authorization"] == "Bearer t"
    url, body = session.posts[0]
    assert url == "https://vector.example/upsert-data"
    assert body == [{"id": "qa_daily_0", "data": chunk.data, "metadata": {"type": "qa", "source": "daily"}}]


def test_vector_store_rejection_raises():
    store = VectorStore(url="https://vector.example", token="t", session=FakeSession(FakeResponse(429)))

    with pytest.raises(VectorStoreError):
        store.upsert([])
    with pytest.raises(VectorStoreError):
        store.info()


def test_vector_store_requires_credentials():
    with pytest.raises(VectorStoreError):
        VectorStore(url=None, token=None)
